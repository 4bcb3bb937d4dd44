"""
URL cache module.

Read-through/write-through cache of short code -> original URL mappings kept in
Redis. Every Redis failure degrades to a cache miss so the database remains
the source of truth.
"""

from typing import Optional

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError


class URLCache:
    """
    Cache of resolved short codes.

    A cache built without a client is disabled: reads always miss and writes
    are dropped.
    """

    def __init__(
        self,
        client: Optional[redis.Redis],
        ttl_seconds: int = 3600,
        key_prefix: str = "url:",
    ):
        """
        Args:
            client: Redis client with decode_responses enabled, or None to disable caching
            ttl_seconds: Expiry applied to every cached mapping
            key_prefix: Namespace prepended to the short code
        """
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _key(self, short_code: str) -> str:
        return f"{self.key_prefix}{short_code}"

    async def get(self, short_code: str) -> Optional[str]:
        """
        Look up the original URL for a short code.

        Returns:
            The cached URL, or None on a miss or when Redis is unavailable
        """
        if self.client is None:
            return None
        try:
            return await self.client.get(self._key(short_code))
        except (RedisError, ConnectionError, OSError) as e:
            logger.warning(f"Cache read failed for '{short_code}', falling back to database: {e}")
            return None

    async def set(self, short_code: str, original_url: str, ttl: Optional[int] = None) -> bool:
        """
        Store a mapping with an expiry.

        Returns:
            bool: True if the value was written
        """
        if self.client is None:
            return False
        try:
            await self.client.set(self._key(short_code), original_url, ex=ttl or self.ttl_seconds)
            return True
        except (RedisError, ConnectionError, OSError) as e:
            logger.warning(f"Cache write failed for '{short_code}': {e}")
            return False

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except (RedisError, ConnectionError, OSError):
            return False
