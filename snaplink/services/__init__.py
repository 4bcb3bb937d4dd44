"""Service layer for the URL shortener application.

This package contains service classes implementing the business logic of the application.
Services orchestrate interactions between repositories, the cache and the analytics queue.
"""

from snaplink.services.shortener import ShortenedURLService
from snaplink.services.redirect import RedirectService
from snaplink.services.analytics import AnalyticsProcessor, hash_ip
from snaplink.services.stats import StatsService, classify_browser

__all__ = [
    "ShortenedURLService",
    "RedirectService",
    "AnalyticsProcessor",
    "StatsService",
    "hash_ip",
    "classify_browser",
]
