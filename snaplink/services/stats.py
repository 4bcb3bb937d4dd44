"""Stats service for the URL shortener application.

This module contains the StatsService class which aggregates recorded
analytics events into per-URL statistics.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.core.config import settings
from snaplink.repositories.analytics_repository import AnalyticsRepository
from snaplink.repositories.base import RepositoryError
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.exceptions import DependencyUnavailableError, URLNotFoundError

logger = logging.getLogger(__name__)

# Checked in order; Chromium-based browsers also advertise Chrome and Safari
BROWSER_SIGNATURES: List[Tuple[str, Tuple[str, ...]]] = [
    ("Edge", ("Edg/", "Edge/", "EdgA/", "EdgiOS/")),
    ("Opera", ("OPR/", "Opera")),
    ("Chrome", ("Chrome/", "CriOS/", "Chromium/")),
    ("Firefox", ("Firefox/", "FxiOS/")),
    ("Safari", ("Safari/",)),
    ("Internet Explorer", ("MSIE ", "Trident/")),
]
OTHER_BROWSER = "Other"


def classify_browser(user_agent: Optional[str]) -> str:
    """
    Map a User-Agent string to a browser family.

    Returns:
        One of Edge, Opera, Chrome, Firefox, Safari, Internet Explorer or Other
    """
    if not user_agent:
        return OTHER_BROWSER
    for family, markers in BROWSER_SIGNATURES:
        if any(marker in user_agent for marker in markers):
            return family
    return OTHER_BROWSER


class StatsService:
    """
    Service for URL click statistics.

    Read-only; results are computed from the analytics table on every call.
    """

    def __init__(self, analytics_repository: AnalyticsRepository, url_repository: URLRepository):
        """
        Initialize the stats service.

        Args:
            analytics_repository: Repository for analytics events
            url_repository: Repository for URL data access
        """
        self.analytics_repository = analytics_repository
        self.url_repository = url_repository

    async def get_url_stats(
        self,
        db: AsyncSession,
        short_code: str,
        top_n: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Get click statistics for a specific URL.

        Args:
            db: Database session
            short_code: The short code of the URL
            top_n: Maximum entries in the country and browser rankings

        Returns:
            Dictionary with short_code, original_url, total_clicks,
            clicks_by_day, top_countries and top_browsers

        Raises:
            URLNotFoundError: If no URL with this code exists
            DependencyUnavailableError: If the database fails
        """
        top_n = top_n or settings.STATS_TOP_N
        try:
            url = await self.url_repository.get_by_short_code(db, short_code)
            if url is None:
                raise URLNotFoundError(f"URL with code '{short_code}' not found")

            total_clicks = await self.analytics_repository.count_for_url(db, url.id)
            clicks_by_day = await self.analytics_repository.clicks_by_day(db, url.id)
            top_countries = await self.analytics_repository.top_countries(db, url.id, limit=top_n)
            user_agents = await self.analytics_repository.user_agent_counts(db, url.id)
        except RepositoryError as e:
            logger.error(f"Error retrieving stats for '{short_code}': {e}")
            raise DependencyUnavailableError("Analytics store is unavailable") from e

        return {
            "short_code": url.short_code,
            "original_url": url.original_url,
            "total_clicks": total_clicks,
            "clicks_by_day": clicks_by_day,
            "top_countries": top_countries,
            "top_browsers": self._rank_browsers(user_agents, top_n),
        }

    def _rank_browsers(self, user_agents: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
        totals: Counter = Counter()
        for row in user_agents:
            totals[classify_browser(row["user_agent"])] += row["count"]

        ranked = sorted(totals.items(), key=lambda item: (-item[1], item[0]))
        return [{"browser": browser, "count": count} for browser, count in ranked[:limit]]
