"""API request and response schemas.

This module contains Pydantic models for API request validation
and response serialization. JSON field names are camelCase.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serializing fields as camelCase and accepting either case."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class ShortenRequest(CamelModel):
    """Request schema for creating a shortened URL."""
    url: str = Field(..., min_length=1, description="Absolute http(s) URL to shorten")
    custom_alias: Optional[str] = Field(None, description="Optional code, 3-20 of [a-zA-Z0-9_-]")


class URLResponse(CamelModel):
    """Response schema for a created short URL."""
    short_url: str  # Full URL including base domain
    short_code: str
    original_url: str
    created_at: datetime


class URLInfoResponse(URLResponse):
    """Response schema for short URL metadata."""
    is_custom_alias: bool


class DailyClicks(CamelModel):
    date: str
    count: int


class CountryClicks(CamelModel):
    country: str
    count: int


class BrowserClicks(CamelModel):
    browser: str
    count: int


class StatsResponse(CamelModel):
    """Response schema for URL statistics."""
    short_code: str
    original_url: str
    total_clicks: int
    clicks_by_day: List[DailyClicks]
    top_countries: List[CountryClicks]
    top_browsers: List[BrowserClicks]


class ErrorResponse(BaseModel):
    """Response schema for errors."""
    detail: str
