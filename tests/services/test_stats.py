"""Tests for the stats aggregator."""

from datetime import datetime
from unittest.mock import patch

import pytest

from snaplink.repositories.analytics_repository import AnalyticsRepository
from snaplink.repositories.base import RepositoryError
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.exceptions import DependencyUnavailableError, URLNotFoundError
from snaplink.services.stats import StatsService, classify_browser
from tests.utils import create_test_event, create_test_url

CHROME = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
SAFARI = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.2 Safari/605.1.15"
EDGE = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91"
OPERA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 OPR/106.0.0.0"
IE = "Mozilla/5.0 (Windows NT 10.0; Trident/7.0; rv:11.0) like Gecko"


@pytest.mark.parametrize("user_agent, browser", [
    (CHROME, "Chrome"),
    (FIREFOX, "Firefox"),
    (SAFARI, "Safari"),
    (EDGE, "Edge"),
    (OPERA, "Opera"),
    (IE, "Internet Explorer"),
    ("curl/8.4.0", "Other"),
    ("", "Other"),
    (None, "Other"),
])
def test_classify_browser(user_agent, browser):
    assert classify_browser(user_agent) == browser


@pytest.mark.service
class TestStatsService:
    """Test suite for per-URL statistics."""

    @pytest.fixture
    def analytics_repository(self):
        return AnalyticsRepository()

    @pytest.fixture
    def service(self, analytics_repository):
        return StatsService(analytics_repository=analytics_repository, url_repository=URLRepository())

    @pytest.mark.asyncio
    async def test_stats_without_clicks(self, test_db, service):
        await create_test_url(test_db, original_url="https://example.com/quiet", short_code="quiet1")

        stats = await service.get_url_stats(test_db, "quiet1")

        assert stats == {
            "short_code": "quiet1",
            "original_url": "https://example.com/quiet",
            "total_clicks": 0,
            "clicks_by_day": [],
            "top_countries": [],
            "top_browsers": [],
        }

    @pytest.mark.asyncio
    async def test_stats_aggregates(self, test_db, service):
        url = await create_test_url(test_db, short_code="busy01")
        other = await create_test_url(test_db, short_code="other1")
        clicks = [
            (datetime(2026, 3, 1, 9, 0), "BR", CHROME),
            (datetime(2026, 3, 1, 18, 0), "US", FIREFOX),
            (datetime(2026, 3, 2, 7, 0), "BR", CHROME),
            (datetime(2026, 3, 2, 8, 0), None, None),
        ]
        for access_time, country, user_agent in clicks:
            await create_test_event(test_db, url.id, access_time=access_time, country_code=country, user_agent=user_agent)
        await create_test_event(test_db, other.id, country_code="DE", user_agent=SAFARI)

        stats = await service.get_url_stats(test_db, "busy01")

        assert stats["total_clicks"] == 4
        assert stats["clicks_by_day"] == [
            {"date": "2026-03-01", "count": 2},
            {"date": "2026-03-02", "count": 2},
        ]
        assert stats["top_countries"] == [
            {"country": "BR", "count": 2},
            {"country": "US", "count": 1},
        ]
        assert stats["top_browsers"] == [
            {"browser": "Chrome", "count": 2},
            {"browser": "Firefox", "count": 1},
            {"browser": "Other", "count": 1},
        ]

    @pytest.mark.asyncio
    async def test_daily_counts_sum_to_total(self, test_db, service):
        url = await create_test_url(test_db, short_code="sum01")
        for day in (1, 1, 3, 5, 5, 5):
            await create_test_event(test_db, url.id, access_time=datetime(2026, 4, day, 12))

        stats = await service.get_url_stats(test_db, "sum01")

        assert sum(day["count"] for day in stats["clicks_by_day"]) == stats["total_clicks"] == 6
        assert [day["date"] for day in stats["clicks_by_day"]] == ["2026-04-01", "2026-04-03", "2026-04-05"]

    @pytest.mark.asyncio
    async def test_rankings_respect_top_n(self, test_db, service):
        url = await create_test_url(test_db, short_code="topn01")
        for country, user_agent in [("US", CHROME), ("BR", FIREFOX), ("DE", SAFARI), ("US", CHROME)]:
            await create_test_event(test_db, url.id, country_code=country, user_agent=user_agent)

        stats = await service.get_url_stats(test_db, "topn01", top_n=2)

        assert stats["top_countries"] == [{"country": "US", "count": 2}, {"country": "BR", "count": 1}]
        assert stats["top_browsers"] == [{"browser": "Chrome", "count": 2}, {"browser": "Firefox", "count": 1}]

    @pytest.mark.asyncio
    async def test_unknown_short_code(self, test_db, service):
        with pytest.raises(URLNotFoundError):
            await service.get_url_stats(test_db, "nothere")

    @pytest.mark.asyncio
    async def test_store_failure_is_unavailable(self, test_db, service, analytics_repository):
        await create_test_url(test_db, short_code="fail01")

        with patch.object(analytics_repository, "clicks_by_day", side_effect=RepositoryError("down")):
            with pytest.raises(DependencyUnavailableError):
                await service.get_url_stats(test_db, "fail01")
