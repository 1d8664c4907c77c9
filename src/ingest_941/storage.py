"""
Storage backends for sites, counters and recent activity.

Two implementations of the IngestStore protocol:

- D1Store: Cloudflare D1 over its HTTP API (production)
- MemoryStore: process-local dicts (tests, local development)

Counter increments are a single atomic storage operation in both. D1
relies on SQLite's upsert (INSERT ... ON CONFLICT DO UPDATE); MemoryStore
holds a lock across the read and write of one key.
"""

import threading
from collections import defaultdict
from datetime import date
from typing import Optional, Protocol

import httpx

from .errors import D1QueryError
from .models import Counter, RecentActivityEntry, Site, truncate


class IngestStore(Protocol):
    async def get_site(self, domain: str) -> Site | None: ...

    async def increment_counter(self, site_id: int, name: str, value: str, day: date) -> None: ...

    async def append_recent(self, entry: RecentActivityEntry) -> None: ...

    async def aclose(self) -> None: ...


# =============================================================================
# Cloudflare D1
# =============================================================================

SITE_SQL = """
    SELECT
        websites.id,
        websites.domain,
        websites.domain_key,
        websites.exclude_bots,
        websites.exclude_ips,
        websites.exclude_params,
        users.can_track
    FROM websites
    JOIN users ON users.id = websites.user_id
    WHERE websites.domain = ?
    LIMIT 1
"""

COUNTER_UPSERT_SQL = """
    INSERT INTO stats (website_id, name, value, date, count)
    VALUES (?, ?, ?, ?, 1)
    ON CONFLICT (website_id, name, value, date)
    DO UPDATE SET count = count + 1
"""

RECENT_INSERT_SQL = """
    INSERT INTO recents
        (website_id, page, referrer, os, browser, device, country, city, language, created_at)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class D1Store:
    """Ingestion store backed by a Cloudflare D1 database."""

    def __init__(
        self,
        d1_database_id: str,
        cf_account_id: str,
        cf_api_token: str,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.database_id = d1_database_id
        self.account_id = cf_account_id
        self.api_token = cf_api_token
        self.timeout = timeout
        # One pooled client for every query; a client passed in stays owned by the caller
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.base_url = f"https://api.cloudflare.com/client/v4/accounts/{cf_account_id}/d1/database/{d1_database_id}"

    async def _query(self, sql: str, params: Optional[list] = None) -> list[dict]:
        """Execute a SQL query against D1."""
        return await self._post(self.http_client, sql, params)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

    async def _post(self, client: httpx.AsyncClient, sql: str, params: Optional[list]) -> list[dict]:
        response = await client.post(
            f"{self.base_url}/query",
            headers={
                "Authorization": f"Bearer {self.api_token}",
                "Content-Type": "application/json",
            },
            json={"sql": sql, "params": params or []},
        )
        response.raise_for_status()
        data = response.json()

        if not data.get("success"):
            raise D1QueryError(data.get("errors"))

        results = data.get("result", [])
        if results and len(results) > 0:
            return results[0].get("results", [])
        return []

    async def get_site(self, domain: str) -> Site | None:
        rows = await self._query(SITE_SQL, [domain])
        if not rows:
            return None

        row = rows[0]
        return Site(
            id=row["id"],
            domain=row["domain"],
            tracking_enabled=bool(row.get("can_track")),
            domain_key=row.get("domain_key"),
            excluded_ips=row.get("exclude_ips") or "",
            excluded_params=row.get("exclude_params") or "",
            exclude_bots=bool(row.get("exclude_bots")),
        )

    async def increment_counter(self, site_id: int, name: str, value: str, day: date) -> None:
        await self._query(
            COUNTER_UPSERT_SQL,
            [site_id, name, truncate(value), day.isoformat()],
        )

    async def append_recent(self, entry: RecentActivityEntry) -> None:
        await self._query(
            RECENT_INSERT_SQL,
            [
                entry.site_id,
                truncate(entry.path),
                truncate(entry.referrer),
                entry.os,
                entry.browser,
                entry.device,
                truncate(entry.country),
                truncate(entry.city),
                entry.language,
                entry.timestamp.isoformat(),
            ],
        )


# =============================================================================
# In-memory
# =============================================================================

class MemoryStore:
    """Process-local store. Thread-safe."""

    def __init__(self, sites: list[Site] | None = None):
        self._sites: dict[str, Site] = {}
        self._counters: dict[tuple[int, str, str, date], int] = defaultdict(int)
        self._recent: list[RecentActivityEntry] = []
        self._lock = threading.Lock()
        for site in sites or []:
            self.add_site(site)

    def add_site(self, site: Site) -> None:
        with self._lock:
            self._sites[site.domain] = site

    async def get_site(self, domain: str) -> Site | None:
        return self._sites.get(domain)

    async def increment_counter(self, site_id: int, name: str, value: str, day: date) -> None:
        key = (site_id, name, truncate(value), day)
        with self._lock:
            self._counters[key] += 1

    async def append_recent(self, entry: RecentActivityEntry) -> None:
        with self._lock:
            self._recent.append(entry)

    async def aclose(self) -> None:
        pass

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def count(self, site_id: int, name: str, value: str, day: date) -> int:
        """Current count for a key, 0 if it was never written."""
        with self._lock:
            return self._counters.get((site_id, name, value, day), 0)

    def counters(self, site_id: int | None = None) -> list[Counter]:
        with self._lock:
            items = list(self._counters.items())
        return [
            Counter(site_id=key[0], name=key[1], value=key[2], date=key[3], count=count)
            for key, count in items
            if site_id is None or key[0] == site_id
        ]

    def recent(self, site_id: int | None = None) -> list[RecentActivityEntry]:
        with self._lock:
            entries = list(self._recent)
        return [e for e in entries if site_id is None or e.site_id == site_id]
