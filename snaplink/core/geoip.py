"""
GeoIP lookup module.

Resolves visitor IP addresses to ISO 3166-1 alpha-2 country codes using a local
MaxMind country database. Lookups are offline and best-effort.
"""

from typing import Optional

import geoip2.database
from loguru import logger


class GeoIPResolver:
    """
    Country resolver backed by a GeoLite2/GeoIP2 Country database.

    Without a database every lookup returns None. ``lookup`` never raises.
    """

    def __init__(self, database_path: Optional[str] = None, reader=None):
        """
        Args:
            database_path: Path to a ``.mmdb`` country database
            reader: Pre-built reader exposing ``country(ip)``; takes precedence over the path
        """
        self._reader = reader
        if self._reader is None and database_path:
            try:
                self._reader = geoip2.database.Reader(database_path)
                logger.info(f"GeoIP database loaded from {database_path}")
            except (OSError, ValueError) as e:
                logger.warning(f"GeoIP database {database_path} unavailable, countries will not be resolved: {e}")
                self._reader = None

    @property
    def available(self) -> bool:
        return self._reader is not None

    def lookup(self, ip: Optional[str]) -> Optional[str]:
        """
        Resolve an IP address to a country code.

        Args:
            ip: IPv4 or IPv6 address as text

        Returns:
            Two-letter country code, or None when unknown
        """
        if not ip or self._reader is None:
            return None
        try:
            response = self._reader.country(ip)
            return response.country.iso_code or None
        except Exception as e:
            # Private ranges, malformed input and reader faults all resolve to unknown
            logger.debug(f"GeoIP lookup failed: {e}")
            return None

    def close(self) -> None:
        if self._reader is not None and hasattr(self._reader, "close"):
            self._reader.close()
        self._reader = None
