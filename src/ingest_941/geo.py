"""
IP geolocation against an offline MaxMind GeoLite2-City database.

Geolocation is best-effort: a missing or corrupt database, an address the
database does not know, or anything else going wrong yields an empty
GeoInfo. Ingestion never fails because of it.

Values are stored as compound display strings (code plus name) so the
dashboard can show them without a second lookup:

    continent  "EU:Europe"
    country    "DE:Germany"
    city       "DE: Berlin, BE"
"""

import logging
import os
import threading
from dataclasses import dataclass

import geoip2.database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeoInfo:
    """Location of an IP address; every field is optional."""

    continent: str | None = None
    country: str | None = None
    city: str | None = None


EMPTY_GEO = GeoInfo()


class NullLocator:
    """Locator used when no geo database is configured."""

    def locate(self, ip: str | None) -> GeoInfo:
        return EMPTY_GEO

    def close(self) -> None:
        pass


class GeoIP2Locator:
    """Looks addresses up in a GeoLite2-City `.mmdb` file.

    The reader is opened on first use and shared afterwards. If the file
    cannot be opened the locator stays disabled instead of retrying on
    every request.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._reader = None
        self._disabled = False
        self._lock = threading.Lock()

    def _get_reader(self):
        if self._reader is not None or self._disabled:
            return self._reader

        with self._lock:
            if self._reader is None and not self._disabled:
                if not os.path.exists(self.db_path):
                    logger.warning(f"GeoIP database missing: {self.db_path}")
                    self._disabled = True
                else:
                    try:
                        self._reader = geoip2.database.Reader(self.db_path)
                    except Exception as e:
                        logger.warning(f"GeoIP database unreadable ({self.db_path}): {e}")
                        self._disabled = True
        return self._reader

    def locate(self, ip: str | None) -> GeoInfo:
        if not ip:
            return EMPTY_GEO

        reader = self._get_reader()
        if reader is None:
            return EMPTY_GEO

        try:
            response = reader.city(ip)
        except Exception as e:
            # AddressNotFoundError, invalid address, corrupt records, ...
            logger.debug(f"GeoIP lookup failed for {ip}: {e}")
            return EMPTY_GEO

        return format_geo(response)

    def close(self) -> None:
        with self._lock:
            if self._reader is not None:
                self._reader.close()
                self._reader = None


def format_geo(response) -> GeoInfo:
    """Turn a geoip2 City response into display strings."""
    continent = country = city = None

    if response.continent.code:
        continent = f"{response.continent.code}:{response.continent.name or ''}"

    iso_code = response.country.iso_code
    if iso_code:
        country = f"{iso_code}:{response.country.name or ''}"

        if response.city.name:
            city = f"{iso_code}: {response.city.name}"
            subdivision = response.subdivisions.most_specific.iso_code
            if subdivision:
                city += f", {subdivision}"

    return GeoInfo(continent=continent, country=country, city=city)


def create_locator(db_path: str | None):
    """Pick a locator for the configured database path."""
    if not db_path:
        return NullLocator()
    return GeoIP2Locator(db_path)
