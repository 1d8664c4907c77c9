"""Pydantic models for ingestion requests and stored analytics data."""

import ipaddress
from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Storage limits
MAX_VALUE_LENGTH = 255
MAX_AGENT_FIELD_LENGTH = 64
MAX_LANGUAGE_LENGTH = 2
MAX_EVENT_UNIT_LENGTH = 32
MAX_EVENT_VALUE_LENGTH = 10

# Reserved exclude_params token meaning "strip every query parameter"
MATCH_ALL_PARAMS = "&"


def truncate(value: str | None, length: int = MAX_VALUE_LENGTH) -> str | None:
    """Cut a free-text value to the storage limit, passing None through."""
    if value is None:
        return None
    return value[:length]


def split_lines(value: str | None) -> list[str]:
    """Split a newline-separated settings field, dropping blank entries."""
    if not value:
        return []
    return [line.strip() for line in value.replace("\r", "\n").split("\n") if line.strip()]


# =============================================================================
# Request Models
# =============================================================================

class EventPayload(BaseModel):
    """A custom event attached to a tracking request."""

    name: str
    value: int | float | None = None
    unit: str | None = None


class TrackRequest(BaseModel):
    """Incoming pageview or event collection request."""

    domain: str = Field(min_length=1)
    page: str = Field(min_length=1)  # required even for events, ignored when event is set
    event: EventPayload | None = None
    referrer: str | None = None
    user_agent: str | None = None
    ip: str | None = None
    language: str | None = None
    screen_resolution: str | None = None

    @field_validator("ip")
    @classmethod
    def _validate_ip(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        ipaddress.ip_address(value)  # raises ValueError -> 422
        return value

    @property
    def is_event(self) -> bool:
        return self.event is not None


# =============================================================================
# Site
# =============================================================================

class Site(BaseModel):
    """Read-only snapshot of a tracked website's settings."""

    model_config = ConfigDict(frozen=True)

    id: int
    domain: str  # normalized: lower-case, no scheme, no www.
    tracking_enabled: bool = True
    domain_key: str | None = None
    excluded_ips: str = ""  # newline-separated IPs / CIDR blocks
    excluded_params: str = ""  # newline-separated names, "&" strips all
    exclude_bots: bool = False

    @property
    def excluded_ip_list(self) -> list[str]:
        return split_lines(self.excluded_ips)

    @property
    def excluded_param_list(self) -> list[str]:
        return split_lines(self.excluded_params)


# =============================================================================
# Stored Records
# =============================================================================

class Counter(BaseModel):
    """One aggregate row, unique on (site_id, name, value, date)."""

    site_id: int
    name: str
    value: str
    date: date
    count: int = 1

    @field_validator("value")
    @classmethod
    def _truncate_value(cls, value: str) -> str:
        return value[:MAX_VALUE_LENGTH]

    @property
    def key(self) -> tuple[int, str, str, date]:
        return (self.site_id, self.name, self.value, self.date)


class RecentActivityEntry(BaseModel):
    """A single pageview in the recent-activity feed."""

    site_id: int
    path: str
    referrer: str | None = None
    os: str | None = None
    browser: str | None = None
    device: str | None = None
    country: str | None = None
    city: str | None = None
    language: str | None = None
    timestamp: datetime


class EventRecord(BaseModel):
    """Normalized custom event."""

    site_id: int
    date: date
    composite_value: str

    def counters(self) -> list[tuple[str, str]]:
        return [("event", self.composite_value)]


class PageviewRecord(BaseModel):
    """Normalized pageview.

    Dimension fields are only set for new visits; `recent` always describes
    the pageview for the recent-activity feed.
    """

    site_id: int
    date: date
    hour: str  # "00" - "23"
    path: str
    is_new_visit: bool

    # Visit dimensions
    landing_page: str | None = None
    referrer_host: str | None = None
    campaign: str | None = None
    continent: str | None = None
    country: str | None = None
    city: str | None = None
    browser: str | None = None
    os: str | None = None
    device: str | None = None
    language: str | None = None
    resolution: str | None = None

    recent: RecentActivityEntry

    def counters(self) -> list[tuple[str, str]]:
        """(name, value) pairs to increment, in write order."""
        day = self.date.isoformat()
        pairs = [
            ("pageviews", day),
            ("pageviews_hours", self.hour),
            ("page", self.path),
        ]
        if not self.is_new_visit:
            return pairs

        dimensions = [
            ("campaign", self.campaign),
            ("continent", self.continent),
            ("country", self.country),
            ("city", self.city),
            ("browser", self.browser),
            ("os", self.os),
            ("device", self.device),
            ("language", self.language),
            ("visitors", day),
            ("visitors_hours", self.hour),
            ("resolution", self.resolution),
            ("landing_page", self.landing_page),
            ("referrer", self.referrer_host),
        ]
        pairs.extend((name, value) for name, value in dimensions if value)
        return pairs


class AggregationResult(BaseModel):
    """Outcome of applying one normalized record."""

    counters_applied: int = 0
    recent_recorded: bool = False
