"""Redirect resolution service for the URL shortener application.

Resolves short codes on the hot path: cache first, database on a miss, and a
fire-and-forget click job for every successful resolution.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.core.cache import URLCache
from snaplink.core.telemetry import get_meter
from snaplink.queue.models import ClickJob
from snaplink.repositories.base import RepositoryError
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.exceptions import DependencyUnavailableError, URLNotFoundError

if TYPE_CHECKING:
    from snaplink.queue.analytics_queue import AnalyticsQueue

logger = logging.getLogger(__name__)

meter = get_meter("snaplink.redirect")
redirect_counter = meter.create_counter(
    name="snaplink.redirects",
    description="Number of URL redirects",
    unit="1",
)


class RedirectService:
    """
    Service resolving short codes to their original URLs.

    Mappings never change once created, so cached entries are only refreshed
    by their TTL.
    """

    def __init__(
        self,
        url_repository: URLRepository,
        url_cache: Optional[URLCache],
        analytics_queue: Optional["AnalyticsQueue"],
    ):
        """
        Args:
            url_repository: Repository for URL data access
            url_cache: Cache consulted before the database
            analytics_queue: Queue receiving one click job per resolution
        """
        self.url_repository = url_repository
        self.url_cache = url_cache
        self.analytics_queue = analytics_queue

    async def resolve(
        self,
        db: AsyncSession,
        short_code: str,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
        referer: Optional[str] = None,
    ) -> str:
        """
        Resolve a short code and record the click asynchronously.

        Args:
            db: Database session
            short_code: Code from the request path
            user_agent: User-Agent header of the request
            ip: Client IP address
            referer: Referer header of the request

        Returns:
            str: The original URL to redirect to

        Raises:
            URLNotFoundError: If the code is unknown
            DependencyUnavailableError: If the database fails on a cache miss
        """
        original_url, cache_hit = await self._lookup(db, short_code)
        redirect_counter.add(1, {"cache": "hit" if cache_hit else "miss"})

        if self.analytics_queue is not None:
            self.analytics_queue.submit_nowait(ClickJob(
                short_code=short_code,
                user_agent=user_agent,
                ip=ip,
                referer=referer,
                timestamp=datetime.utcnow(),
            ))

        return original_url

    async def _lookup(self, db: AsyncSession, short_code: str) -> Tuple[str, bool]:
        if self.url_cache is not None:
            cached = await self.url_cache.get(short_code)
            if cached:
                return cached, True

        try:
            original_url = await self.url_repository.get_original_url(db, short_code)
        except RepositoryError as e:
            logger.error(f"Error resolving short code: {e}")
            raise DependencyUnavailableError("URL store is unavailable") from e

        if original_url is None:
            raise URLNotFoundError(f"URL with code '{short_code}' not found")

        if self.url_cache is not None:
            await self.url_cache.set(short_code, original_url)

        return original_url, False
