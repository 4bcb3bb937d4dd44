"""Repository layer for the URL shortener application.

This module provides repository classes that abstract database operations
and implement the Repository pattern for clean separation of concerns.
"""

from snaplink.repositories.base import (
    BaseRepository,
    RepositoryError,
    DuplicateEntityError
)
from snaplink.repositories.url_repository import URLRepository
from snaplink.repositories.analytics_repository import AnalyticsRepository

__all__ = [
    # Base classes and exceptions
    "BaseRepository",
    "RepositoryError",
    "DuplicateEntityError",

    # Concrete repositories
    "URLRepository",
    "AnalyticsRepository",
]
