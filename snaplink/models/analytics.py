"""
Analytics event data models.

This module defines the AnalyticsEvent model, one row per processed click on a
shortened URL.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class AnalyticsEventBase(SQLModel):
    """Base model for analytics event data."""

    access_time: datetime = Field(
        default_factory=datetime.utcnow,
        description="Timestamp when the short URL was resolved"
    )
    hashed_ip: Optional[str] = Field(
        default=None,
        max_length=64,
        description="Salted SHA-256 digest of the visitor IP; the raw address is never stored"
    )
    user_agent: Optional[str] = Field(
        default=None,
        max_length=1024,
        description="User agent string of the visitor's browser/device"
    )
    referer: Optional[str] = Field(
        default=None,
        max_length=2048,
        description="Referer header sent with the redirect request"
    )
    country_code: Optional[str] = Field(
        default=None,
        max_length=2,
        description="ISO 3166-1 alpha-2 country derived from the IP"
    )


class AnalyticsEvent(AnalyticsEventBase, table=True):
    """
    Analytics event model for clicks on shortened URLs.

    Events are written by the analytics worker, never by the redirect path.
    Deleting a short URL removes its events.
    """

    __tablename__ = "analytics_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    url_id: int = Field(
        foreign_key="short_urls.id",
        ondelete="CASCADE",
        description="Foreign key reference to the shortened URL"
    )

    __table_args__ = (
        # Per-URL time-series queries
        Index("ix_analytics_events_url_id_access_time", "url_id", "access_time"),
    )


class AnalyticsEventCreate(AnalyticsEventBase):
    """Schema for creating a new analytics event."""
    url_id: int
