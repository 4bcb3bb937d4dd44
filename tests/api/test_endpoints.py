"""Tests for the HTTP API."""

import pytest

from snaplink.core.config import settings
from snaplink.queue.worker import AnalyticsWorker

API = settings.API_PREFIX


async def shorten(client, url, alias=None):
    payload = {"url": url}
    if alias is not None:
        payload["customAlias"] = alias
    return await client.post(f"{API}/shorten", json=payload)


@pytest.mark.api
class TestShortenEndpoint:
    """POST /shorten."""

    @pytest.mark.asyncio
    async def test_create_short_url(self, async_client):
        response = await shorten(async_client, "https://example.com/very/long/path")

        assert response.status_code == 201
        data = response.json()
        assert len(data["shortCode"]) == 8
        assert data["shortUrl"] == f"{settings.BASE_URL.rstrip('/')}/{data['shortCode']}"
        assert data["originalUrl"] == "https://example.com/very/long/path"
        assert "createdAt" in data

    @pytest.mark.asyncio
    async def test_create_with_alias(self, async_client):
        response = await shorten(async_client, "https://example.com", alias="launch")

        assert response.status_code == 201
        assert response.json()["shortCode"] == "launch"

    @pytest.mark.asyncio
    async def test_alias_conflict(self, async_client):
        assert (await shorten(async_client, "https://a.example", alias="taken")).status_code == 201

        response = await shorten(async_client, "https://b.example", alias="taken")

        assert response.status_code == 409
        assert "taken" in response.json()["detail"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("url", ["not-a-url", "ftp://example.com", ""])
    async def test_invalid_url(self, async_client, url):
        response = await shorten(async_client, url)

        assert response.status_code == 400
        assert response.json()["detail"]

    @pytest.mark.asyncio
    async def test_invalid_alias(self, async_client):
        response = await shorten(async_client, "https://example.com", alias="no spaces")

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_malformed_body(self, async_client):
        response = await async_client.post(f"{API}/shorten", json={"link": "https://example.com"})

        assert response.status_code == 400
        assert "url" in response.json()["detail"]


@pytest.mark.api
class TestRedirectEndpoint:
    """GET /{short_code}."""

    @pytest.mark.asyncio
    async def test_redirect(self, async_client, analytics_queue):
        created = (await shorten(async_client, "https://example.com/target")).json()

        response = await async_client.get(f"/{created['shortCode']}", follow_redirects=False)

        assert response.status_code == 301
        assert response.headers["location"] == "https://example.com/target"

        await analytics_queue.wait_for_pending()
        assert (await analytics_queue.get_job_counts())["waiting"] == 1

    @pytest.mark.asyncio
    async def test_unknown_code(self, async_client, analytics_queue):
        response = await async_client.get("/doesnotexist", follow_redirects=False)

        assert response.status_code == 404
        await analytics_queue.wait_for_pending()
        assert (await analytics_queue.get_job_counts())["waiting"] == 0

    @pytest.mark.asyncio
    async def test_forwarded_for_used_as_client_ip(self, async_client, queue_backend, analytics_queue):
        created = (await shorten(async_client, "https://example.com/ip")).json()

        await async_client.get(
            f"/{created['shortCode']}",
            headers={
                "X-Forwarded-For": "203.0.113.5, 10.0.0.1",
                "User-Agent": "Mozilla/5.0 Firefox/121.0",
                "Referer": "https://ref.example/",
            },
            follow_redirects=False,
        )
        await analytics_queue.wait_for_pending()

        envelope = await queue_backend.reserve()
        assert envelope.data["ip"] == "203.0.113.5"
        assert envelope.data["user_agent"] == "Mozilla/5.0 Firefox/121.0"
        assert envelope.data["referer"] == "https://ref.example/"


@pytest.mark.api
class TestInfoAndStatsEndpoints:
    """GET /urls/{short_code} and GET /stats/{short_code}."""

    @pytest.mark.asyncio
    async def test_url_info(self, async_client, analytics_queue):
        await shorten(async_client, "https://example.com/info", alias="info01")

        response = await async_client.get(f"{API}/urls/info01")

        assert response.status_code == 200
        data = response.json()
        assert data["shortCode"] == "info01"
        assert data["originalUrl"] == "https://example.com/info"
        assert data["isCustomAlias"] is True

        # Metadata lookups are not clicks
        await analytics_queue.wait_for_pending()
        assert (await analytics_queue.get_job_counts())["waiting"] == 0

    @pytest.mark.asyncio
    async def test_url_info_unknown(self, async_client):
        assert (await async_client.get(f"{API}/urls/missing1")).status_code == 404

    @pytest.mark.asyncio
    async def test_stats_after_click(self, async_client, analytics_queue, analytics_worker: AnalyticsWorker):
        created = (await shorten(async_client, "https://example.com/stats")).json()
        code = created["shortCode"]

        await async_client.get(
            f"/{code}",
            headers={"X-Forwarded-For": "203.0.113.5", "User-Agent": "Mozilla/5.0 Firefox/121.0"},
            follow_redirects=False,
        )
        await analytics_queue.wait_for_pending()
        await analytics_worker.drain()

        response = await async_client.get(f"{API}/stats/{code}")

        assert response.status_code == 200
        data = response.json()
        assert data["shortCode"] == code
        assert data["originalUrl"] == "https://example.com/stats"
        assert data["totalClicks"] == 1
        assert len(data["clicksByDay"]) == 1
        assert data["clicksByDay"][0]["count"] == 1
        assert data["topCountries"] == [{"country": "BR", "count": 1}]
        assert data["topBrowsers"] == [{"browser": "Firefox", "count": 1}]

    @pytest.mark.asyncio
    async def test_stats_before_processing(self, async_client):
        await shorten(async_client, "https://example.com/fresh", alias="fresh1")

        data = (await async_client.get(f"{API}/stats/fresh1")).json()

        assert data["totalClicks"] == 0
        assert data["clicksByDay"] == []

    @pytest.mark.asyncio
    async def test_stats_unknown(self, async_client):
        assert (await async_client.get(f"{API}/stats/missing1")).status_code == 404


@pytest.mark.api
@pytest.mark.asyncio
async def test_shorten_redirect_and_count(async_client, analytics_queue, analytics_worker):
    created = await shorten(async_client, "https://example.com/long/path")
    assert created.status_code == 201
    code = created.json()["shortCode"]
    assert len(code) == 8

    redirect = await async_client.get(f"/{code}", follow_redirects=False)
    assert redirect.status_code == 301
    assert redirect.headers["location"] == "https://example.com/long/path"

    await analytics_queue.wait_for_pending()
    assert await analytics_worker.drain() == 1

    stats = (await async_client.get(f"{API}/stats/{code}")).json()
    assert stats["totalClicks"] == 1
