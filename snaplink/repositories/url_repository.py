"""URL Repository for the URL shortener application.

This module provides the URLRepository class for database operations related to ShortURL models.
Following the Repository pattern, it abstracts database interactions for URL shortening operations.
"""

from typing import Any, Dict, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from snaplink.models.url import ShortURL, ShortURLCreate
from snaplink.repositories.base import BaseRepository, RepositoryError


class URLRepository(BaseRepository[ShortURL, ShortURLCreate]):
    """
    Repository for ShortURL model database operations.

    Short URLs are insert-only: the repository creates them and looks them up
    by code, and never updates or deletes them.
    """

    unique_field = "short_code"

    def __init__(self):
        """Initialize the repository with the ShortURL model type."""
        super().__init__(ShortURL)

    async def create_short_url(
        self,
        db: AsyncSession,
        data: Union[ShortURLCreate, Dict[str, Any]]
    ) -> ShortURL:
        """
        Insert a new shortened URL entry.

        There is no existence pre-check: the unique constraint on short_code
        decides between concurrent inserts of the same code.

        Args:
            db: Database session
            data: Short URL data (either as a ShortURLCreate model or dictionary)

        Returns:
            The created ShortURL entity

        Raises:
            DuplicateEntityError: If the short code already exists
            RepositoryError: On other database errors
        """
        return await self.create(db, data)

    async def get_by_short_code(self, db: AsyncSession, short_code: str) -> Optional[ShortURL]:
        """
        Find a URL by its short code.

        Args:
            db: Database session
            short_code: The unique short code to look up

        Returns:
            The ShortURL if found, None otherwise

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = select(self.model_type).where(self.model_type.short_code == short_code)
            result = await db.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving URL by short code: {e}") from e

    async def get_original_url(self, db: AsyncSession, short_code: str) -> Optional[str]:
        """
        Fetch only the target URL for a short code.

        Used on the redirect path so a cache miss loads a single column.

        Raises:
            RepositoryError: On database errors
        """
        try:
            query = select(self.model_type.original_url).where(
                self.model_type.short_code == short_code
            )
            result = await db.execute(query)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise RepositoryError(f"Error retrieving original URL: {e}") from e
