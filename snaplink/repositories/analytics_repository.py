"""Analytics Repository for click tracking in the URL shortener application.

This module provides the AnalyticsRepository class for database operations related
to AnalyticsEvent models: the insert performed by the analytics worker and the
grouped aggregates read by the stats endpoint.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import select, func, desc, asc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from snaplink.models.analytics import AnalyticsEvent, AnalyticsEventCreate
from snaplink.repositories.base import BaseRepository, RepositoryError


def _format_day(value: Union[str, date, datetime, None]) -> Optional[str]:
    # SQLite returns DATE() as text, PostgreSQL as a date object
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


class AnalyticsRepository(BaseRepository[AnalyticsEvent, AnalyticsEventCreate]):
    """
    Repository for AnalyticsEvent model database operations.

    Events are insert-only. Aggregates are always computed per short URL.
    """

    def __init__(self):
        """Initialize the repository with the AnalyticsEvent model type."""
        super().__init__(AnalyticsEvent)

    async def create_event(
        self,
        db: AsyncSession,
        data: Union[AnalyticsEventCreate, Dict[str, Any]]
    ) -> AnalyticsEvent:
        """
        Record a processed click.

        Args:
            db: Database session
            data: Event data (either as an AnalyticsEventCreate model or dictionary)

        Returns:
            The created AnalyticsEvent entity

        Raises:
            RepositoryError: On database errors
        """
        return await self.create(db, data)

    async def count_for_url(self, db: AsyncSession, url_id: int) -> int:
        """Total number of events recorded for a URL."""
        return await self.count(db, url_id=url_id)

    async def clicks_by_day(self, db: AsyncSession, url_id: int) -> List[Dict[str, Any]]:
        """
        Get click counts grouped by calendar day of access_time.

        Args:
            db: Database session
            url_id: ID of the ShortURL

        Returns:
            List of {"date": "YYYY-MM-DD", "count": n}, oldest day first

        Raises:
            RepositoryError: On database errors
        """
        try:
            day = func.date(self.model_type.access_time)
            query = (
                select(day.label("day"), func.count().label("count"))
                .where(self.model_type.url_id == url_id)
                .group_by(day)
                .order_by(day)
            )
            result = await db.execute(query)
            return [
                {"date": _format_day(row.day), "count": row.count}
                for row in result.all()
            ]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving daily click statistics: {e}") from e

    async def top_countries(
        self,
        db: AsyncSession,
        url_id: int,
        limit: int = 10
    ) -> List[Dict[str, Any]]:
        """
        Get click counts grouped by country, most clicks first.

        Events without a country are excluded. Equal counts are ordered by
        country code.

        Args:
            db: Database session
            url_id: ID of the ShortURL
            limit: Maximum number of countries to return

        Returns:
            List of {"country": code, "count": n}

        Raises:
            RepositoryError: On database errors
        """
        try:
            count = func.count().label("count")
            query = (
                select(self.model_type.country_code, count)
                .where(
                    self.model_type.url_id == url_id,
                    self.model_type.country_code.isnot(None),
                )
                .group_by(self.model_type.country_code)
                .order_by(desc("count"), asc(self.model_type.country_code))
                .limit(limit)
            )
            result = await db.execute(query)
            return [
                {"country": row.country_code, "count": row.count}
                for row in result.all()
            ]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving click statistics by country: {e}") from e

    async def user_agent_counts(self, db: AsyncSession, url_id: int) -> List[Dict[str, Any]]:
        """
        Get click counts per distinct user agent string (null included).

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = (
                select(self.model_type.user_agent, func.count().label("count"))
                .where(self.model_type.url_id == url_id)
                .group_by(self.model_type.user_agent)
            )
            result = await db.execute(query)
            return [
                {"user_agent": row.user_agent, "count": row.count}
                for row in result.all()
            ]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving user agent statistics: {e}") from e
