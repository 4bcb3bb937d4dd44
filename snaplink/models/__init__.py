"""
Data models for the URL shortener application.

This module imports and exports all SQLModel models used in the application.
"""

# First import SQLModel itself to ensure metadata is initialized
from sqlmodel import SQLModel

# Then import table models in correct order (parent before child)
from snaplink.models.url import ShortURL, ShortURLBase, ShortURLCreate, ShortURLRead
from snaplink.models.analytics import AnalyticsEvent, AnalyticsEventBase, AnalyticsEventCreate

__all__ = [
    "SQLModel",
    # Analytics event models
    "AnalyticsEvent",
    "AnalyticsEventBase",
    "AnalyticsEventCreate",

    # Short URL models
    "ShortURL",
    "ShortURLBase",
    "ShortURLCreate",
    "ShortURLRead",
]
