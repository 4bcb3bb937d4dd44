"""URL shortening service for the URL shortener application.

This module contains the ShortenedURLService class which implements business logic
for URL shortening and short URL lookups.
"""

import logging
import re
import secrets
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from snaplink.core.cache import URLCache
from snaplink.core.config import settings
from snaplink.core.telemetry import get_meter
from snaplink.db.session import db_transaction
from snaplink.models.url import ShortURL
from snaplink.repositories.base import DuplicateEntityError, RepositoryError
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.exceptions import (
    AliasConflictError,
    AllocationExhaustedError,
    DependencyUnavailableError,
    InvalidAliasError,
    InvalidURLError,
    URLNotFoundError,
)

logger = logging.getLogger(__name__)

ALIAS_PATTERN = re.compile(r"[a-zA-Z0-9_-]+")
ALLOWED_SCHEMES = ("http", "https")

meter = get_meter("snaplink.shortener")
urls_created_counter = meter.create_counter(
    name="snaplink.urls.created",
    description="Number of URLs shortened",
    unit="1",
)
code_collision_counter = meter.create_counter(
    name="snaplink.urls.code_collisions",
    description="Generated short codes rejected by the unique constraint",
    unit="1",
)


class ShortenedURLService:
    """
    Service for URL shortening business logic.

    Allocates short codes, persists new mappings and warms the cache with
    them. Code uniqueness is decided by the database alone: a generated code
    is inserted directly and regenerated when the insert is rejected.
    """

    def __init__(self, url_repository: URLRepository, url_cache: Optional[URLCache] = None):
        """
        Initialize the URL shortening service.

        Args:
            url_repository: Repository for URL data access
            url_cache: Cache written through after every creation
        """
        self.url_repository = url_repository
        self.url_cache = url_cache

    async def create_short_url(
        self,
        db: AsyncSession,
        original_url: str,
        custom_alias: Optional[str] = None,
    ) -> ShortURL:
        """
        Create a shortened URL, with a caller-chosen alias or a random code.

        Args:
            db: Database session
            original_url: The original URL to shorten
            custom_alias: Optional code requested by the caller

        Returns:
            ShortURL: The created shortened URL

        Raises:
            InvalidURLError: If the URL is malformed
            InvalidAliasError: If the alias has the wrong length or characters
            AliasConflictError: If the alias is already taken
            AllocationExhaustedError: If every generated code collided
            DependencyUnavailableError: If the database fails
        """
        original_url = self._validate_url(original_url)

        if custom_alias is not None:
            self._validate_alias(custom_alias)
            url = await self._create_with_alias(db, original_url, custom_alias)
        else:
            url = await self._create_with_generated_code(db, original_url)

        urls_created_counter.add(1, {"custom_alias": url.is_custom_alias})

        # Write-through; the row is already committed, so a cache failure is only logged
        if self.url_cache is not None:
            await self.url_cache.set(url.short_code, url.original_url)

        return url

    async def get_url_info(self, db: AsyncSession, short_code: str) -> ShortURL:
        """
        Get the stored mapping for a short code without recording a click.

        Args:
            db: Database session
            short_code: The short code to look up

        Returns:
            ShortURL: The stored URL

        Raises:
            URLNotFoundError: If no URL with this code exists
            DependencyUnavailableError: If the database fails
        """
        try:
            url = await self.url_repository.get_by_short_code(db, short_code)
        except RepositoryError as e:
            logger.error(f"Error retrieving URL by code: {e}")
            raise DependencyUnavailableError("URL store is unavailable") from e

        if url is None:
            raise URLNotFoundError(f"URL with code '{short_code}' not found")
        return url

    async def _create_with_alias(self, db: AsyncSession, original_url: str, alias: str) -> ShortURL:
        try:
            return await self._insert_short_url(db, {
                "original_url": original_url,
                "short_code": alias,
                "is_custom_alias": True,
            })
        except DuplicateEntityError as e:
            raise AliasConflictError(f"Alias '{alias}' is already in use") from e
        except (RepositoryError, SQLAlchemyError) as e:
            logger.error(f"Error creating short URL with alias: {e}")
            raise DependencyUnavailableError("URL store is unavailable") from e

    async def _create_with_generated_code(self, db: AsyncSession, original_url: str) -> ShortURL:
        max_attempts = settings.URL_CODE_MAX_ATTEMPTS
        for attempt in range(1, max_attempts + 1):
            candidate_code = self._generate_short_code()
            try:
                return await self._insert_short_url(db, {
                    "original_url": original_url,
                    "short_code": candidate_code,
                    "is_custom_alias": False,
                })
            except DuplicateEntityError:
                code_collision_counter.add(1)
                logger.info(f"Short code collision on attempt {attempt}/{max_attempts}, regenerating")
            except (RepositoryError, SQLAlchemyError) as e:
                logger.error(f"Error creating short URL: {e}")
                raise DependencyUnavailableError("URL store is unavailable") from e

        logger.error(f"Could not allocate a unique short code after {max_attempts} attempts")
        raise AllocationExhaustedError(
            f"Failed to allocate a unique short code after {max_attempts} attempts"
        )

    @db_transaction(db_param_name="db")
    async def _insert_short_url(self, db: AsyncSession, data: Dict[str, Any]) -> ShortURL:
        return await self.url_repository.create_short_url(db, data)

    def _generate_short_code(self, length: Optional[int] = None) -> str:
        """
        Generate a random short code.

        Args:
            length: Length of the code, defaults to URL_CODE_LENGTH

        Returns:
            str: A random code drawn from URL_CODE_ALPHABET
        """
        alphabet = settings.URL_CODE_ALPHABET
        length = length or settings.URL_CODE_LENGTH
        return "".join(secrets.choice(alphabet) for _ in range(length))

    def _validate_url(self, url: Any) -> str:
        """
        Check that a URL is an absolute http(s) URL with a host.

        Returns:
            str: The URL as text

        Raises:
            InvalidURLError: If the URL is invalid
        """
        url_str = str(url) if url is not None else ""

        if not url_str or len(url_str) > settings.URL_MAX_LENGTH:
            raise InvalidURLError(
                f"URL must be between 1 and {settings.URL_MAX_LENGTH} characters"
            )
        if any(ch.isspace() for ch in url_str):
            raise InvalidURLError("URL must not contain whitespace")

        try:
            parts = urlsplit(url_str)
            # Accessing port validates it
            parts.port
        except ValueError as e:
            raise InvalidURLError(f"Invalid URL format: {e}") from e

        if parts.scheme.lower() not in ALLOWED_SCHEMES:
            raise InvalidURLError("URL scheme must be http or https")
        if not parts.hostname:
            raise InvalidURLError("URL must include a host")

        return url_str

    def _validate_alias(self, alias: str) -> None:
        """
        Check that a custom alias meets requirements.

        Raises:
            InvalidAliasError: If the alias is invalid
        """
        min_length = settings.URL_CUSTOM_ALIAS_MIN_LENGTH
        max_length = settings.URL_CUSTOM_ALIAS_MAX_LENGTH
        if not min_length <= len(alias) <= max_length:
            raise InvalidAliasError(
                f"Alias must be between {min_length} and {max_length} characters"
            )
        if not ALIAS_PATTERN.fullmatch(alias):
            raise InvalidAliasError(
                "Alias may only contain letters, numbers, hyphens and underscores"
            )
