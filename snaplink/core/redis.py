"""
Redis client management module.

This module provides a Redis client manager with connection pooling
and error handling for async Redis operations. One manager is created per
process and shared by the URL cache and the analytics queue.
"""

import asyncio
import time
from typing import Optional

import redis.asyncio as redis
from loguru import logger
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError


class RedisClientManager:
    """
    Async Redis client manager with connection pooling.

    Features:
    - Automatic connection pooling
    - Connection health checking
    - Reconnection with exponential backoff
    """

    def __init__(self, uri: str, max_connections: int = 20):
        """
        Args:
            uri: Redis connection URI
            max_connections: Upper bound on pooled connections
        """
        self.uri = uri
        self.max_connections = max_connections
        self._connection_pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._initialize()

    def _initialize(self) -> None:
        """Initialize the Redis connection pool."""
        try:
            self._connection_pool = redis.ConnectionPool.from_url(
                self.uri,
                max_connections=self.max_connections,
                decode_responses=True
            )
            logger.debug(f"Redis connection pool created for {self.uri}")
        except (RedisError, ValueError) as e:
            logger.error(f"Failed to create Redis connection pool: {str(e)}")
            self._connection_pool = None

    @property
    def client(self) -> redis.Redis:
        """
        Get a Redis client bound to the shared connection pool.

        Raises:
            ConnectionError: If the pool could not be created
        """
        if self._client is None:
            if self._connection_pool is None:
                self._initialize()

            if self._connection_pool:
                self._client = redis.Redis(connection_pool=self._connection_pool)
            else:
                raise ConnectionError("Redis connection pool is not available")

        return self._client

    async def ping(self) -> bool:
        """
        Test the Redis connection with a ping command.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            result = await self.client.ping()
            return bool(result)
        except (RedisError, ConnectionError, OSError) as e:
            logger.error(f"Redis ping failed: {str(e)}")
            return False

    async def reconnect(self, max_retries: int = 3, delay: float = 1.0) -> bool:
        """
        Attempt to reconnect to Redis with exponential backoff.

        Args:
            max_retries: Maximum number of reconnection attempts
            delay: Initial delay between attempts (seconds)

        Returns:
            bool: True if reconnection was successful
        """
        await self.close()
        self._initialize()

        for attempt in range(max_retries):
            logger.debug(f"Redis reconnection attempt {attempt + 1}/{max_retries}")
            if await self.ping():
                logger.info("Redis reconnection successful")
                return True

            # Exponential backoff with jitter
            backoff_time = delay * (2 ** attempt) * (0.9 + 0.2 * (time.time() % 1))
            await asyncio.sleep(backoff_time)

        logger.error(f"Redis reconnection failed after {max_retries} attempts")
        return False

    async def close(self) -> None:
        """Close the Redis client and connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None

        if self._connection_pool:
            await self._connection_pool.disconnect()
            self._connection_pool = None

        logger.debug("Redis connections closed")
