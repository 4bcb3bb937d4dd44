"""Routes package initialization.

This module exports the route collection for the application.
"""

from fastapi import APIRouter

from snaplink.api.routes import shortener, stats, redirect
from snaplink.core.config import settings

# Create root router
api_router = APIRouter()

api_router.include_router(
    shortener.router,
    prefix=settings.API_PREFIX
)

api_router.include_router(
    stats.router,
    prefix=settings.API_PREFIX
)

# Redirect routes go last and at the root path so short URLs are /{short_code}
api_router.include_router(
    redirect.router
)

__all__ = ["api_router"]
