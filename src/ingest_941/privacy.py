"""
Privacy filtering driven by each site's settings.

Three rules, applied in order:

1. IP exclusion: the request IP matches a listed address or CIDR block.
2. Bot exclusion: the site excludes bots and the user agent is one.
3. Query redaction: listed query parameters are removed from the page URL
   before anything is stored ("&" removes the whole query string).

The first two reject the request outright. Redaction never rejects; it
only shapes what the normalizer gets to see.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum
from urllib.parse import parse_qsl, urlencode, urlsplit

from .errors import BotExcludedError, IpExcludedError, PrivacyRejection
from .models import MATCH_ALL_PARAMS, Site, TrackRequest
from .user_agent import AgentInfo

logger = logging.getLogger(__name__)


class RejectReason(str, Enum):
    IP_EXCLUDED = "ip_excluded"
    BOT_EXCLUDED = "bot_excluded"

    def to_error(self) -> PrivacyRejection:
        if self is RejectReason.IP_EXCLUDED:
            return IpExcludedError()
        return BotExcludedError()


@dataclass(frozen=True)
class Proceed:
    """The request passed; `query` is the redacted query string.

    `params` are the (key, value) pairs available for campaign attribution,
    in the order they were sent. Named exclusions remove pairs from both;
    the match-all token empties `query` only. Both are empty for events.
    """
    query: str = ""
    params: list[tuple[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class Reject:
    reason: RejectReason


FilterDecision = Proceed | Reject


def ip_is_excluded(ip: str, entries: list[str]) -> bool:
    """Check an address against single IPs and CIDR blocks (v4 and v6)."""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False

    for entry in entries:
        try:
            network = ipaddress.ip_network(entry, strict=False)
        except ValueError:
            logger.debug(f"Skipping invalid excluded IP entry: {entry!r}")
            continue
        if address.version == network.version and address in network:
            return True
    return False


def split_page(page: str) -> tuple[str, str]:
    """Split a page URL (absolute or path-only) into path and query.

    The fragment is dropped. Malformed URLs fall back to splitting on "?".
    """
    try:
        parts = urlsplit(page)
        return parts.path, parts.query
    except ValueError:
        path, _, query = page.split("#", 1)[0].partition("?")
        return path, query


def redact_query(query: str, excluded: list[str]) -> tuple[str, list[tuple[str, str]]]:
    """
    Remove excluded parameters from a query string.

    Returns the re-serialized query and the surviving pairs. With no
    exclusions the query is returned untouched. The match-all token drops
    the whole query string but keeps the pairs, so a campaign is still
    attributed without the URL being stored.

    Examples:
        >>> redact_query("utm_campaign=spring&secret=1", ["secret"])
        ('utm_campaign=spring', [('utm_campaign', 'spring')])

        >>> redact_query("a=1&b=2", ["&"])
        ('', [('a', '1'), ('b', '2')])
    """
    params = parse_qsl(query, keep_blank_values=True)

    if not excluded:
        return query, params

    if MATCH_ALL_PARAMS in excluded:
        return "", params

    blocked = set(excluded)
    kept = [(key, value) for key, value in params if key not in blocked]
    return urlencode(kept), kept


class PrivacyFilter:
    """Applies a site's privacy settings to one request."""

    def check_ip(self, site: Site, request: TrackRequest) -> Reject | None:
        entries = site.excluded_ip_list
        if entries and request.ip and ip_is_excluded(request.ip, entries):
            return Reject(RejectReason.IP_EXCLUDED)
        return None

    def check_bot(self, site: Site, agent: AgentInfo | None) -> Reject | None:
        if site.exclude_bots and agent is not None and agent.is_bot:
            return Reject(RejectReason.BOT_EXCLUDED)
        return None

    def filter(
        self,
        site: Site,
        request: TrackRequest,
        agent: AgentInfo | None = None,
    ) -> FilterDecision:
        """Decide whether the request proceeds, and with which query.

        Args:
            site: Settings snapshot of the resolved site
            request: The validated request
            agent: First-pass user-agent classification, for bot exclusion
        """
        rejection = self.check_ip(site, request) or self.check_bot(site, agent)
        if rejection:
            logger.info(f"Rejected request for {site.domain}: {rejection.reason.value}")
            return rejection

        if request.is_event:
            return Proceed()

        _, query = split_page(request.page)
        redacted, params = redact_query(query, site.excluded_param_list)
        return Proceed(query=redacted, params=params)
