"""URL shortener data models.

This module defines the ShortURL model for storing shortened URLs in the database.
"""
from datetime import datetime
from typing import Optional

from pydantic import field_validator
from sqlalchemy import Index
from sqlmodel import Field, SQLModel


class ShortURLBase(SQLModel):
    """Base model for short URL data."""

    original_url: str = Field(
        max_length=2048,
        description="The original (long) URL to redirect to"
    )
    short_code: str = Field(
        max_length=20,
        unique=True,   # Creates necessary index
        description="Unique code for the shortened URL",
    )
    is_custom_alias: bool = Field(
        default=False,
        description="Whether the short code was chosen by the caller"
    )

    @field_validator("original_url", mode="before")
    @classmethod
    def ensure_str_url(cls, v):
        if v is not None and not isinstance(v, str):
            return str(v)
        return v


class ShortURL(ShortURLBase, table=True):
    """
    Short URL model for storing shortened URLs in the database.

    Rows are immutable once created. The unique constraint on short_code is
    the only arbiter of code ownership when two creations race.
    """

    __tablename__ = "short_urls"

    id: Optional[int] = Field(default=None, primary_key=True)
    created_at: datetime = Field(
        default_factory=datetime.utcnow,
        description="Timestamp when this short URL was created"
    )

    __table_args__ = (
        Index("ix_short_urls_created_at", "created_at"),
    )


class ShortURLCreate(ShortURLBase):
    """Schema for creating a new short URL."""
    pass


class ShortURLRead(ShortURLBase):
    """Schema for reading a short URL."""
    id: int
    created_at: datetime
