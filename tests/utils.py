"""Test utilities for URL shortener tests."""

import random
import string
from datetime import datetime
from typing import Any, Dict, Optional

from snaplink.models.analytics import AnalyticsEvent
from snaplink.models.url import ShortURL


def random_string(length: int = 10) -> str:
    """Generate a random alphanumeric string."""
    return ''.join(random.choice(string.ascii_letters + string.digits) for _ in range(length))


def random_url() -> str:
    """Generate a random URL for testing."""
    domain = f"{random_string(8).lower()}.com"
    path = random_string(12)
    return f"https://{domain}/{path}"


def create_test_url_data(
    original_url: Optional[str] = None,
    short_code: Optional[str] = None,
    is_custom_alias: bool = False,
) -> Dict[str, Any]:
    """Create test data dict for a ShortURL."""
    return {
        "original_url": original_url or random_url(),
        "short_code": short_code or random_string(8),
        "is_custom_alias": is_custom_alias,
    }


async def create_test_url(
    db,
    original_url: Optional[str] = None,
    short_code: Optional[str] = None,
    is_custom_alias: bool = False,
) -> ShortURL:
    """Create and commit a test ShortURL."""
    url = ShortURL(**create_test_url_data(
        original_url=original_url,
        short_code=short_code,
        is_custom_alias=is_custom_alias,
    ))
    db.add(url)
    await db.commit()
    await db.refresh(url)
    return url


async def create_test_event(
    db,
    url_id: int,
    access_time: Optional[datetime] = None,
    country_code: Optional[str] = None,
    user_agent: Optional[str] = None,
    hashed_ip: Optional[str] = None,
) -> AnalyticsEvent:
    """Create and commit a test AnalyticsEvent."""
    event = AnalyticsEvent(
        url_id=url_id,
        access_time=access_time or datetime.utcnow(),
        country_code=country_code,
        user_agent=user_agent,
        hashed_ip=hashed_ip,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)
    return event
