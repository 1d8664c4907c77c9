"""Tests for site resolution, authorization and the site cache."""

from unittest.mock import AsyncMock

import httpx
import pytest

from conftest import make_site, run_async
from ingest_941.config import IngestConfig, verify_domain_key
from ingest_941.errors import (
    InvalidDomainKeyError,
    SiteNotFoundError,
    StorageError,
    TrackingDisabledError,
)
from ingest_941.sites import SiteCache, SiteResolver, normalize_domain
from ingest_941.storage import MemoryStore


class TestNormalizeDomain:
    def test_strips_scheme_and_www(self):
        assert normalize_domain("https://www.Example.com/") == "example.com"
        assert normalize_domain("http://example.com") == "example.com"

    def test_plain_domain_unchanged(self):
        assert normalize_domain("blog.example.com") == "blog.example.com"

    def test_whitespace(self):
        assert normalize_domain("  EXAMPLE.com ") == "example.com"


class TestVerifyDomainKey:
    def test_matching_key(self):
        assert verify_domain_key("key-123", "key-123") is True

    def test_wrong_key(self):
        assert verify_domain_key("key-123", "key-124") is False

    def test_missing_values(self):
        assert verify_domain_key("key-123", None) is False
        assert verify_domain_key(None, "key-123") is False
        assert verify_domain_key("", "") is False


class TestSiteResolver:
    """Test resolve() authorization outcomes."""

    def _get_resolver(self, *sites, **config):
        return SiteResolver(MemoryStore(list(sites)), IngestConfig(**config))

    def test_resolves_known_domain(self):
        site = make_site()
        resolver = self._get_resolver(site)
        assert run_async(resolver.resolve("example.com")) == site

    def test_normalizes_requested_domain(self):
        """Scheme, www. and case do not matter."""
        resolver = self._get_resolver(make_site())
        assert run_async(resolver.resolve("https://www.EXAMPLE.com")).id == 1

    def test_unknown_domain(self):
        resolver = self._get_resolver(make_site())
        with pytest.raises(SiteNotFoundError) as exc:
            run_async(resolver.resolve("other.org"))
        assert exc.value.status_code == 404
        assert exc.value.message == "Website not found or tracking disabled"

    def test_tracking_disabled(self):
        resolver = self._get_resolver(make_site(tracking_enabled=False))
        with pytest.raises(TrackingDisabledError) as exc:
            run_async(resolver.resolve("example.com"))
        assert exc.value.status_code == 404

    def test_key_ignored_without_restriction(self):
        resolver = self._get_resolver(make_site(), key_restriction=False)
        assert run_async(resolver.resolve("example.com", "wrong")).id == 1
        assert run_async(resolver.resolve("example.com", None)).id == 1

    def test_key_restriction_correct_key(self):
        resolver = self._get_resolver(make_site(), key_restriction=True)
        assert run_async(resolver.resolve("example.com", "key-123")).id == 1

    def test_key_restriction_wrong_key(self):
        resolver = self._get_resolver(make_site(), key_restriction=True)
        with pytest.raises(InvalidDomainKeyError) as exc:
            run_async(resolver.resolve("example.com", "key-999"))
        assert exc.value.status_code == 403
        assert exc.value.message == "Invalid domain key"

    def test_key_restriction_missing_key(self):
        resolver = self._get_resolver(make_site(), key_restriction=True)
        with pytest.raises(InvalidDomainKeyError):
            run_async(resolver.resolve("example.com"))

    def test_site_without_key_rejected_under_restriction(self):
        resolver = self._get_resolver(make_site(domain_key=None), key_restriction=True)
        with pytest.raises(InvalidDomainKeyError):
            run_async(resolver.resolve("example.com", ""))

    def test_lookup_failure_is_storage_error(self):
        """Transport errors from the store surface as StorageError."""
        store = MemoryStore()
        store.get_site = AsyncMock(side_effect=httpx.ConnectError("connection refused"))
        resolver = SiteResolver(store, IngestConfig())

        with pytest.raises(StorageError) as exc:
            run_async(resolver.resolve("example.com"))
        assert exc.value.status_code == 500

    def test_lookups_are_cached(self):
        store = MemoryStore([make_site()])
        store.get_site = AsyncMock(wraps=store.get_site)
        resolver = SiteResolver(store, IngestConfig(cache_ttl_seconds=60))

        run_async(resolver.resolve("example.com"))
        run_async(resolver.resolve("www.example.com"))

        assert store.get_site.await_count == 1

    def test_misses_are_not_cached(self):
        """A site registered after a miss is found on the next request."""
        store = MemoryStore()
        resolver = SiteResolver(store, IngestConfig(cache_ttl_seconds=60))

        with pytest.raises(SiteNotFoundError):
            run_async(resolver.resolve("example.com"))

        store.add_site(make_site())
        assert run_async(resolver.resolve("example.com")).id == 1

    def test_cache_disabled(self):
        store = MemoryStore([make_site()])
        store.get_site = AsyncMock(wraps=store.get_site)
        resolver = SiteResolver(store, IngestConfig(cache_ttl_seconds=0))

        run_async(resolver.resolve("example.com"))
        run_async(resolver.resolve("example.com"))

        assert store.get_site.await_count == 2


class TestSiteCache:
    def test_put_and_get(self):
        cache = SiteCache(ttl_seconds=60)
        site = make_site()
        cache.put(site)
        assert cache.get("example.com") == site
        assert cache.get("other.org") is None

    def test_expiry(self, monkeypatch):
        clock = [1000.0]
        monkeypatch.setattr("ingest_941.sites.time.monotonic", lambda: clock[0])
        cache = SiteCache(ttl_seconds=60)
        cache.put(make_site())

        clock[0] += 59
        assert cache.get("example.com") is not None

        clock[0] += 1
        assert cache.get("example.com") is None

    def test_clear(self):
        cache = SiteCache(ttl_seconds=60)
        cache.put(make_site())
        cache.clear()
        assert cache.get("example.com") is None
