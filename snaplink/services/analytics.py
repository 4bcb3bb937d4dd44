"""Analytics processing service for the URL shortener application.

Turns queued click jobs into stored analytics events. Raw IP addresses never
reach the database: they are salted and hashed here, and used only for the
country lookup.
"""

import hashlib
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.core.geoip import GeoIPResolver
from snaplink.models.analytics import AnalyticsEvent
from snaplink.queue.models import ClickJob
from snaplink.repositories.analytics_repository import AnalyticsRepository
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

USER_AGENT_MAX_LENGTH = 1024
REFERER_MAX_LENGTH = 2048


def hash_ip(ip: Optional[str], salt: str, length: int = 64) -> Optional[str]:
    """
    One-way digest of a client IP address.

    Args:
        ip: IP address as text, or None
        salt: Secret appended to the address before hashing
        length: Number of hex characters kept (SHA-256 yields 64)

    Returns:
        The first ``length`` hex characters of SHA-256(ip + salt), or None without an IP
    """
    if not ip:
        return None
    digest = hashlib.sha256(f"{ip}{salt}".encode("utf-8")).hexdigest()
    return digest[:length]


def _as_naive_utc(value: datetime) -> datetime:
    # Columns store naive UTC
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _truncate(value: Optional[str], limit: int) -> Optional[str]:
    if not value:
        return None
    return value[:limit]


class AnalyticsProcessor:
    """
    Service recording one analytics event per click job.

    Store errors propagate so the worker can retry the job. A job whose short
    code no longer exists is dropped.
    """

    def __init__(
        self,
        url_repository: URLRepository,
        analytics_repository: AnalyticsRepository,
        geoip_resolver: GeoIPResolver,
        ip_hash_salt: Optional[str],
        hashed_ip_length: int = 64,
    ):
        """
        Args:
            url_repository: Repository for URL data access
            analytics_repository: Repository for analytics events
            geoip_resolver: IP to country resolver
            ip_hash_salt: Secret salt for IP hashing; required
            hashed_ip_length: Number of hex characters stored per hashed IP

        Raises:
            ConfigurationError: If no salt is configured
        """
        if not ip_hash_salt:
            raise ConfigurationError("IP_HASH_SALT must be set to record analytics")
        self.url_repository = url_repository
        self.analytics_repository = analytics_repository
        self.geoip_resolver = geoip_resolver
        self.ip_hash_salt = ip_hash_salt
        self.hashed_ip_length = hashed_ip_length

    async def process(self, db: AsyncSession, job: ClickJob) -> Optional[AnalyticsEvent]:
        """
        Record a click.

        Args:
            db: Database session; the caller commits
            job: Click captured on the redirect path

        Returns:
            The stored event, or None if the short code is unknown

        Raises:
            RepositoryError: On database errors
        """
        url = await self.url_repository.get_by_short_code(db, job.short_code)
        if url is None:
            logger.warning(f"Dropping click for unknown short code '{job.short_code}'")
            return None

        event = await self.analytics_repository.create_event(db, {
            "url_id": url.id,
            "access_time": _as_naive_utc(job.timestamp),
            "hashed_ip": hash_ip(job.ip, self.ip_hash_salt, self.hashed_ip_length),
            "user_agent": _truncate(job.user_agent, USER_AGENT_MAX_LENGTH),
            "referer": _truncate(job.referer, REFERER_MAX_LENGTH),
            "country_code": self.geoip_resolver.lookup(job.ip) if job.ip else None,
        })
        logger.debug(f"Analytics recorded for '{job.short_code}'")
        return event
