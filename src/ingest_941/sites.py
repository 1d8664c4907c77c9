"""
Site resolution and authorization.

Maps the `domain` a request names to the tracked site's settings and
checks that the site may receive data: it must exist, its owner must be
allowed to track, and with key restriction enabled the request must carry
the site's domain key.
"""

import logging
import threading
import time

import httpx

from .config import IngestConfig, verify_domain_key
from .errors import (
    D1QueryError,
    InvalidDomainKeyError,
    SiteNotFoundError,
    StorageError,
    TrackingDisabledError,
)
from .models import Site
from .storage import IngestStore

logger = logging.getLogger(__name__)


def normalize_domain(domain: str) -> str:
    """
    Normalize a domain the way sites are stored.

    Examples:
        >>> normalize_domain("https://www.Example.com/")
        'example.com'
    """
    domain = domain.strip().lower()
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
            break
    if domain.startswith("www."):
        domain = domain[4:]
    return domain.rstrip("/")


class SiteCache:
    """TTL cache of site snapshots, keyed by normalized domain. Thread-safe.

    Sites change rarely (settings edits, plan changes), so a short TTL
    keeps lookups off the database without serving stale settings for long.
    """

    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._entries: dict[str, tuple[float, Site]] = {}
        self._lock = threading.Lock()

    def get(self, domain: str) -> Site | None:
        if self.ttl_seconds <= 0:
            return None
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(domain)
            if entry is None:
                return None
            stored_at, site = entry
            if now - stored_at >= self.ttl_seconds:
                del self._entries[domain]
                return None
            return site

    def put(self, site: Site) -> None:
        if self.ttl_seconds <= 0:
            return
        with self._lock:
            self._entries[site.domain] = (time.monotonic(), site)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class SiteResolver:
    """Resolves and authorizes the site a request is for."""

    def __init__(self, store: IngestStore, config: IngestConfig):
        self.store = store
        self.config = config
        self.cache = SiteCache(config.cache_ttl_seconds)

    async def _lookup(self, domain: str) -> Site | None:
        site = self.cache.get(domain)
        if site is not None:
            return site

        try:
            site = await self.store.get_site(domain)
        except (httpx.HTTPError, D1QueryError) as e:
            logger.error(f"Site lookup failed for {domain}: {e}")
            raise StorageError() from e

        if site is not None:
            self.cache.put(site)
        return site

    async def resolve(self, domain: str, domain_key: str | None = None) -> Site:
        """Return the site for `domain` or raise an AuthorizationError.

        Args:
            domain: Domain as sent by the client (scheme / www. allowed)
            domain_key: Value of the X-Domain-Key header, if any

        Raises:
            SiteNotFoundError: No site is registered for the domain
            TrackingDisabledError: The owner's account cannot track
            InvalidDomainKeyError: Key restriction is on and the key is wrong
            StorageError: The site lookup itself failed
        """
        normalized = normalize_domain(domain)
        site = await self._lookup(normalized)

        if site is None:
            logger.info(f"Unknown domain: {normalized}")
            raise SiteNotFoundError()

        if not site.tracking_enabled:
            logger.info(f"Tracking disabled for {normalized}")
            raise TrackingDisabledError()

        if self.config.key_restriction and not verify_domain_key(site.domain_key, domain_key):
            logger.info(f"Invalid domain key for {normalized}")
            raise InvalidDomainKeyError()

        return site
