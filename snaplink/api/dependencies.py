"""API dependencies for FastAPI.

This module provides dependency injection functions for FastAPI endpoints
to access service instances. Process-wide handles (cache, analytics queue)
are created at startup and read from ``app.state``.
"""

from typing import Optional

from fastapi import Depends, Request

from snaplink.core.cache import URLCache
from snaplink.core.config import settings
from snaplink.queue.analytics_queue import AnalyticsQueue
from snaplink.repositories.analytics_repository import AnalyticsRepository
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.redirect import RedirectService
from snaplink.services.shortener import ShortenedURLService
from snaplink.services.stats import StatsService


async def get_url_repository():
    """Get an instance of the URL repository."""
    return URLRepository()


async def get_analytics_repository():
    """Get an instance of the analytics repository."""
    return AnalyticsRepository()


def get_url_cache(request: Request) -> Optional[URLCache]:
    """Get the shared URL cache, if one was configured at startup."""
    return getattr(request.app.state, "url_cache", None)


def get_analytics_queue(request: Request) -> Optional[AnalyticsQueue]:
    """Get the shared analytics queue, if one was configured at startup."""
    return getattr(request.app.state, "analytics_queue", None)


async def get_shortener_service(
    url_repo: URLRepository = Depends(get_url_repository),
    url_cache: Optional[URLCache] = Depends(get_url_cache),
) -> ShortenedURLService:
    """Get an instance of the URL shortening service."""
    return ShortenedURLService(url_repository=url_repo, url_cache=url_cache)


async def get_redirect_service(
    url_repo: URLRepository = Depends(get_url_repository),
    url_cache: Optional[URLCache] = Depends(get_url_cache),
    analytics_queue: Optional[AnalyticsQueue] = Depends(get_analytics_queue),
) -> RedirectService:
    """Get an instance of the redirect service."""
    return RedirectService(
        url_repository=url_repo,
        url_cache=url_cache,
        analytics_queue=analytics_queue,
    )


async def get_stats_service(
    analytics_repo: AnalyticsRepository = Depends(get_analytics_repository),
    url_repo: URLRepository = Depends(get_url_repository),
) -> StatsService:
    """Get an instance of the statistics service."""
    return StatsService(analytics_repository=analytics_repo, url_repository=url_repo)


def get_base_url():
    """Get the base URL for shortened links."""
    return settings.BASE_URL.rstrip("/")


def get_client_ip(request: Request) -> Optional[str]:
    """
    Resolve the client IP address.

    Uses the first X-Forwarded-For entry when proxy headers are trusted,
    otherwise the socket peer.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            first = forwarded_for.split(",")[0].strip()
            if first:
                return first
    return request.client.host if request.client else None
