"""
Referrer handling for the new-visit heuristic.

Only the referrer's host is ever stored. A referrer whose host is the
site's own domain means in-site navigation; anything else (including no
referrer at all) starts a new visit.
"""

from urllib.parse import urlsplit


def normalize_host(host: str) -> str:
    """Remove www. prefix and lowercase."""
    host = host.lower().strip().rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def extract_host(referrer: str | None) -> str | None:
    """
    Extract the host component from a referrer URL.

    Returns None if the referrer is empty or unparseable.

    Examples:
        >>> extract_host("https://www.google.com/search?q=test")
        'www.google.com'

        >>> extract_host("news.ycombinator.com/item?id=1")
        'news.ycombinator.com'

        >>> extract_host("") is None
        True
    """
    if not referrer or not referrer.strip():
        return None

    referrer = referrer.strip()
    # Handle URLs without scheme
    if "://" not in referrer:
        referrer = "https://" + referrer

    try:
        host = urlsplit(referrer).hostname
    except ValueError:
        return None

    return host or None


def is_same_site(referrer_host: str | None, site_domain: str) -> bool:
    """Check if the referrer host is the site's own (normalized) domain."""
    if not referrer_host:
        return False
    return normalize_host(referrer_host) == normalize_host(site_domain)
