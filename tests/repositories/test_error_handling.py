"""Tests for repository error handling."""

import pytest
from unittest.mock import patch
from sqlalchemy.exc import SQLAlchemyError

from snaplink.repositories.analytics_repository import AnalyticsRepository
from snaplink.repositories.base import RepositoryError
from snaplink.repositories.url_repository import URLRepository


@pytest.mark.repository
class TestRepositoryErrorHandling:
    """Tests for error handling in repositories."""

    @pytest.fixture
    def url_repository(self):
        return URLRepository()

    @pytest.fixture
    def analytics_repository(self):
        return AnalyticsRepository()

    @pytest.mark.asyncio
    async def test_lookup_error_wrapped(self, test_db, url_repository):
        with patch.object(test_db, "execute", side_effect=SQLAlchemyError("Test database error")):
            with pytest.raises(RepositoryError) as excinfo:
                await url_repository.get_by_short_code(test_db, "errortest")

        assert "Test database error" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_original_url_error_wrapped(self, test_db, url_repository):
        with patch.object(test_db, "execute", side_effect=SQLAlchemyError("boom")):
            with pytest.raises(RepositoryError):
                await url_repository.get_original_url(test_db, "errortest")

    @pytest.mark.asyncio
    async def test_create_error_wrapped(self, test_db, url_repository):
        with patch.object(test_db, "flush", side_effect=SQLAlchemyError("flush failed")):
            with pytest.raises(RepositoryError) as excinfo:
                await url_repository.create_short_url(
                    test_db, {"original_url": "https://example.com", "short_code": "flushfail"}
                )

        assert "flush failed" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_aggregate_errors_wrapped(self, test_db, analytics_repository):
        with patch.object(test_db, "execute", side_effect=SQLAlchemyError("aggregate failed")):
            with pytest.raises(RepositoryError):
                await analytics_repository.clicks_by_day(test_db, 1)
            with pytest.raises(RepositoryError):
                await analytics_repository.top_countries(test_db, 1)
            with pytest.raises(RepositoryError):
                await analytics_repository.user_agent_counts(test_db, 1)
            with pytest.raises(RepositoryError):
                await analytics_repository.count_for_url(test_db, 1)
