"""Shared fixtures for ingestion tests."""

import asyncio
from datetime import datetime, timezone

import pytest

from ingest_941.config import IngestConfig
from ingest_941.models import Site
from ingest_941.storage import MemoryStore

CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
GOOGLEBOT_UA = "Mozilla/5.0 (compatible; Googlebot/2.1; +http://www.google.com/bot.html)"

NOW = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def make_site(**overrides) -> Site:
    fields = {
        "id": 1,
        "domain": "example.com",
        "tracking_enabled": True,
        "domain_key": "key-123",
    }
    fields.update(overrides)
    return Site(**fields)


def counter_total(store: MemoryStore, name: str, value: str | None = None, site_id: int = 1) -> int:
    """Sum of counts for a metric name (optionally one value), any date."""
    return sum(
        c.count for c in store.counters(site_id)
        if c.name == name and (value is None or c.value == value)
    )


@pytest.fixture
def site():
    return make_site()


@pytest.fixture
def store(site):
    return MemoryStore([site])


@pytest.fixture
def config():
    return IngestConfig()
