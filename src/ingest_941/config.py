"""
Configuration for 941 Analytics Ingest.
"""
import logging
import os
import secrets
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

ENV_PREFIX = "INGEST_"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def verify_domain_key(stored: str | None, provided: str | None) -> bool:
    """Compare a supplied domain key with the stored one, byte for byte.

    A site without a stored key never verifies, neither does a missing header.
    """
    if not stored or not provided:
        return False
    return secrets.compare_digest(stored.encode(), provided.encode())


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class IngestConfig:
    """Deployment-wide settings for the ingestion endpoint.

    Immutable once built; pass the same instance to every component that
    needs it.

    Usage:
        config = IngestConfig(
            d1_database_id="your-d1-id",
            cf_account_id="your-account-id",
            cf_api_token="your-api-token",
            key_restriction=True,
            geoip_db_path="/geoip/GeoLite2-City.mmdb",
        )
    """

    # Cloudflare D1 (required unless a store is injected)
    d1_database_id: str | None = None
    cf_account_id: str | None = None
    cf_api_token: str | None = None
    d1_timeout_seconds: float = 10.0

    # Require X-Domain-Key on every request
    key_restriction: bool = False

    # Date/hour bucketing for counters
    timezone: str = "UTC"

    # Offline MaxMind GeoLite2-City database; geolocation is skipped if unset
    geoip_db_path: str | None = None

    # Site configuration cache
    cache_ttl_seconds: int = 60

    # Fall back to the User-Agent header / client address when the body omits them
    use_request_metadata: bool = False

    # Origins allowed to POST from the browser snippet
    cors_allow_origins: tuple[str, ...] = field(default_factory=lambda: ("*",))

    def __post_init__(self):
        """Validate configuration after initialization."""
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.timezone!r}") from e

        if self.cache_ttl_seconds < 0:
            raise ValueError("cache_ttl_seconds must be >= 0")

        if self.d1_timeout_seconds <= 0:
            raise ValueError("d1_timeout_seconds must be > 0")

        if self.geoip_db_path and not os.path.exists(self.geoip_db_path):
            logger.warning(
                f"GeoIP database not found at {self.geoip_db_path}; "
                f"geolocation will be skipped"
            )

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def has_d1(self) -> bool:
        """Check if Cloudflare D1 credentials are configured."""
        return bool(self.d1_database_id and self.cf_account_id and self.cf_api_token)

    @classmethod
    def from_env(cls, environ: dict | None = None) -> "IngestConfig":
        """Build a config from INGEST_* environment variables.

        Recognized variables: INGEST_D1_DATABASE_ID, INGEST_CF_ACCOUNT_ID,
        INGEST_CF_API_TOKEN, INGEST_D1_TIMEOUT_SECONDS, INGEST_KEY_RESTRICTION,
        INGEST_TIMEZONE, INGEST_GEOIP_DB_PATH, INGEST_CACHE_TTL_SECONDS,
        INGEST_USE_REQUEST_METADATA, INGEST_CORS_ALLOW_ORIGINS (comma-separated).
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        kwargs = {
            "d1_database_id": get("D1_DATABASE_ID"),
            "cf_account_id": get("CF_ACCOUNT_ID"),
            "cf_api_token": get("CF_API_TOKEN"),
            "key_restriction": _env_bool(get("KEY_RESTRICTION"), False),
            "geoip_db_path": get("GEOIP_DB_PATH") or None,
            "use_request_metadata": _env_bool(get("USE_REQUEST_METADATA"), False),
        }
        if get("TIMEZONE"):
            kwargs["timezone"] = get("TIMEZONE")
        if get("CACHE_TTL_SECONDS"):
            kwargs["cache_ttl_seconds"] = int(get("CACHE_TTL_SECONDS"))
        if get("D1_TIMEOUT_SECONDS"):
            kwargs["d1_timeout_seconds"] = float(get("D1_TIMEOUT_SECONDS"))
        origins = _env_list(get("CORS_ALLOW_ORIGINS"))
        if origins:
            kwargs["cors_allow_origins"] = origins

        return cls(**kwargs)
