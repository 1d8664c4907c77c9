"""
The ingestion pipeline for one tracking request.

    resolve site -> parse user agent -> privacy filter
        -> classify (geo) -> normalize -> aggregate

Every rejection raises before anything is written.
"""

import logging
from datetime import datetime

from .aggregator import Aggregator
from .classifier import Classifier
from .config import IngestConfig
from .models import AggregationResult, TrackRequest
from .normalizer import Normalizer
from .privacy import PrivacyFilter, Reject
from .sites import SiteResolver
from .storage import IngestStore

logger = logging.getLogger(__name__)


class IngestPipeline:
    """Wires the ingestion stages together around a store."""

    def __init__(
        self,
        store: IngestStore,
        config: IngestConfig,
        classifier: Classifier | None = None,
    ):
        self.config = config
        self.store = store
        self.resolver = SiteResolver(store, config)
        self.privacy = PrivacyFilter()
        self.classifier = classifier or Classifier()
        self.normalizer = Normalizer()
        self.aggregator = Aggregator(store)

    async def aclose(self) -> None:
        """Close the store's connections and the geo database."""
        await self.store.aclose()
        self.classifier.close()

    def now(self) -> datetime:
        """Current time in the configured timezone."""
        return datetime.now(self.config.tzinfo)

    async def track(
        self,
        request: TrackRequest,
        domain_key: str | None = None,
        now: datetime | None = None,
    ) -> AggregationResult:
        """Process one pageview or event.

        Args:
            request: Validated request body
            domain_key: X-Domain-Key header value, if sent
            now: Request time (defaults to now in the configured timezone)

        Raises:
            AuthorizationError: Unknown site, tracking disabled, bad key
            PrivacyRejection: Excluded IP or bot
            StorageError: Site lookup or counter write failed
        """
        site = await self.resolver.resolve(request.domain, domain_key)

        agent = self.classifier.parse_agent(request.user_agent)
        decision = self.privacy.filter(site, request, agent)
        if isinstance(decision, Reject):
            raise decision.reason.to_error()

        classification = self.classifier.classify(request.user_agent, request.ip, agent=agent)

        if now is None:
            now = self.now()
        record = self.normalizer.normalize(site, request, classification, decision, now)

        result = await self.aggregator.apply(site.id, record)
        logger.debug(
            f"Tracked {'event' if request.is_event else 'pageview'} for {site.domain}: "
            f"{result.counters_applied} counters"
        )
        return result
