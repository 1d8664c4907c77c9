"""
Turns a filtered, classified request into the record that gets counted.

Events become a single composite value. Pageviews always count toward
`pageviews`; they count as a visit (and contribute their dimensions) only
when the referrer is not the site itself. There are no cookies and no
session store: a visitor arriving again from an external link is a new
visit every time.
"""

import math
from datetime import datetime

from .classifier import ClassificationResult
from .models import (
    MAX_EVENT_UNIT_LENGTH,
    MAX_EVENT_VALUE_LENGTH,
    MAX_LANGUAGE_LENGTH,
    EventPayload,
    EventRecord,
    PageviewRecord,
    RecentActivityEntry,
    Site,
    TrackRequest,
    truncate,
)
from .privacy import Proceed, split_page
from .referrer import extract_host, is_same_site

CAMPAIGN_PARAM = "utm_campaign"


def format_event_value(value: int | float | None) -> str | None:
    """
    Render an event value for storage, or None if it is not storable.

    The value must be finite, positive and at most 10 characters long as
    text. JSON bodies may carry NaN and Infinity, which are dropped.

    Examples:
        >>> format_event_value(12345)
        '12345'
        >>> format_event_value(99999999999) is None
        True
        >>> format_event_value(-3) is None
        True
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        if value.is_integer():
            value = int(value)
    if value <= 0:
        return None
    text = str(value)
    if len(text) > MAX_EVENT_VALUE_LENGTH:
        return None
    return text


def event_composite(event: EventPayload) -> str:
    """Build the stored "name:value:unit" string for an event.

    Colons in the name become spaces so the delimiter stays unambiguous.
    Missing or rejected segments are left empty.
    """
    name = event.name.replace(":", " ")
    value = format_event_value(event.value)
    unit = event.unit if event.unit is not None and len(event.unit) <= MAX_EVENT_UNIT_LENGTH else None
    return ":".join([name, value or "", unit or ""])


def build_path(page: str, query: str) -> str:
    path, _ = split_page(page)
    path = path or "/"
    if query:
        path = f"{path}?{query}"
    return truncate(path)


def find_campaign(params: list[tuple[str, str]]) -> str | None:
    for key, value in params:
        if key == CAMPAIGN_PARAM and value:
            return value
    return None


class Normalizer:
    """Builds PageviewRecord / EventRecord values."""

    def normalize(
        self,
        site: Site,
        request: TrackRequest,
        classification: ClassificationResult,
        decision: Proceed,
        now: datetime,
    ) -> PageviewRecord | EventRecord:
        """
        Normalize one accepted request.

        Args:
            site: The resolved site
            request: The validated request
            classification: User-agent and geo classification
            decision: The privacy filter's Proceed (redacted query and params)
            now: Request time in the configured timezone
        """
        if request.event is not None:
            return EventRecord(
                site_id=site.id,
                date=now.date(),
                composite_value=truncate(event_composite(request.event)),
            )

        return self._pageview(site, request, classification, decision, now)

    def _pageview(
        self,
        site: Site,
        request: TrackRequest,
        classification: ClassificationResult,
        decision: Proceed,
        now: datetime,
    ) -> PageviewRecord:
        path = build_path(request.page, decision.query)
        referrer_host = truncate(extract_host(request.referrer))
        language = request.language[:MAX_LANGUAGE_LENGTH] if request.language else None

        recent = RecentActivityEntry(
            site_id=site.id,
            path=path,
            referrer=referrer_host,
            os=classification.os,
            browser=classification.browser,
            device=classification.device_type,
            country=classification.country,
            city=classification.city,
            language=language,
            timestamp=now,
        )

        record = PageviewRecord(
            site_id=site.id,
            date=now.date(),
            hour=now.strftime("%H"),
            path=path,
            is_new_visit=not is_same_site(referrer_host, site.domain),
            recent=recent,
        )
        if not record.is_new_visit:
            return record

        return record.model_copy(update={
            "landing_page": path,
            "referrer_host": referrer_host,
            "campaign": truncate(find_campaign(decision.params)),
            "continent": truncate(classification.continent),
            "country": truncate(classification.country),
            "city": truncate(classification.city),
            "browser": classification.browser,
            "os": classification.os,
            "device": classification.device_type,
            "language": language,
            "resolution": truncate(request.screen_resolution) or None,
        })
