"""Tests for the URL cache and GeoIP resolver."""

import pytest
from loguru import logger

from snaplink.core.cache import URLCache
from snaplink.core.geoip import GeoIPResolver


@pytest.mark.asyncio
async def test_cache_roundtrip_uses_prefix_and_ttl(url_cache, mock_redis):
    assert await url_cache.set("abc", "https://example.com", ttl=60) is True

    assert await url_cache.get("abc") == "https://example.com"
    assert mock_redis.expiry["url:abc"] == 60
    assert await url_cache.ping() is True


@pytest.mark.asyncio
async def test_failing_cache_degrades(failing_cache):
    assert await failing_cache.get("abc") is None
    assert await failing_cache.set("abc", "https://example.com") is False
    assert await failing_cache.ping() is False


@pytest.mark.asyncio
async def test_cache_failure_logs_cause(failing_cache):
    messages = []
    sink_id = logger.add(messages.append, format="{message}", level="WARNING")
    try:
        await failing_cache.get("abc")
    finally:
        logger.remove(sink_id)

    output = "".join(messages)
    assert "Cache read failed for 'abc'" in output
    assert "Connection refused" in output


@pytest.mark.asyncio
async def test_disabled_cache():
    cache = URLCache(None)

    assert cache.enabled is False
    assert await cache.get("abc") is None
    assert await cache.set("abc", "https://example.com") is False


def test_geoip_lookup(geoip_resolver):
    assert geoip_resolver.available is True
    assert geoip_resolver.lookup("192.0.2.10") == "DE"
    assert geoip_resolver.lookup("10.0.0.1") is None
    assert geoip_resolver.lookup(None) is None


def test_geoip_missing_database(tmp_path):
    resolver = GeoIPResolver(str(tmp_path / "missing.mmdb"))

    assert resolver.available is False
    assert resolver.lookup("203.0.113.5") is None
    resolver.close()
