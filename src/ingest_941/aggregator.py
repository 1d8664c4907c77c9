"""
Applies normalized records to the counter store.

Each (name, value) pair is its own atomic increment; there is no
transaction across them. All increments for a record are attempted even if
some fail, and the ones that succeeded stay applied. A failed increment
still fails the request (StorageError), because silently losing counts
would corrupt the analytics.

The recent-activity append is best effort: any error is logged and
swallowed.
"""

import asyncio
import logging

import httpx

from .errors import D1QueryError, StorageError
from .models import AggregationResult, EventRecord, PageviewRecord
from .storage import IngestStore

logger = logging.getLogger(__name__)

# Errors a store may raise for a failed write
STORE_ERRORS = (httpx.HTTPError, D1QueryError, OSError)


class Aggregator:
    """Writes counters and recent activity for one record at a time."""

    def __init__(self, store: IngestStore):
        self.store = store

    async def apply(self, site_id: int, record: PageviewRecord | EventRecord) -> AggregationResult:
        """Increment every counter of `record` and log recent activity.

        The recent-activity append runs alongside the increments.

        Raises:
            StorageError: One or more counter increments failed
        """
        pairs = record.counters()
        writes = [
            self.store.increment_counter(site_id, name, value, record.date)
            for name, value in pairs
        ]
        is_pageview = isinstance(record, PageviewRecord)
        if is_pageview:
            writes.append(self._append_recent(record))

        results = await asyncio.gather(*writes, return_exceptions=True)

        failed = []
        for (name, _), result in zip(pairs, results):
            if isinstance(result, BaseException):
                if not isinstance(result, STORE_ERRORS):
                    raise result
                logger.error(f"Counter '{name}' failed for site {site_id}: {result}")
                failed.append(name)

        recent_recorded = is_pageview and results[-1] is True

        if failed:
            logger.error(
                f"Site {site_id}: {len(failed)} of {len(pairs)} counters failed "
                f"({', '.join(failed)})"
            )
            raise StorageError()

        return AggregationResult(
            counters_applied=len(pairs),
            recent_recorded=recent_recorded,
        )

    async def _append_recent(self, record: PageviewRecord) -> bool:
        try:
            await self.store.append_recent(record.recent)
        except Exception as e:
            logger.warning(f"Recent activity append failed for site {record.site_id}: {e!r}")
            return False
        return True
