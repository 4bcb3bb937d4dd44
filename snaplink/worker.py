"""
Analytics worker entry point.

Usage:
    python -m snaplink.worker
    snaplink-worker
"""

import asyncio
import signal
import sys
from typing import Optional

import redis.asyncio as redis
from loguru import logger

from snaplink.core.config import QueueBackendType, settings
from snaplink.core.geoip import GeoIPResolver
from snaplink.core.logging import setup_logging
from snaplink.core.redis import RedisClientManager
from snaplink.core.telemetry import instrument_clients, setup_telemetry
from snaplink.db.base import create_db_and_tables, engine
from snaplink.queue.backends import QueueBackend, create_queue_backend
from snaplink.queue.worker import AnalyticsWorker
from snaplink.repositories.analytics_repository import AnalyticsRepository
from snaplink.repositories.url_repository import URLRepository
from snaplink.services.analytics import AnalyticsProcessor
from snaplink.services.exceptions import ConfigurationError


def build_analytics_worker(
    backend: QueueBackend,
    geoip_resolver: Optional[GeoIPResolver] = None,
) -> AnalyticsWorker:
    """
    Wire an AnalyticsWorker from settings.

    Raises:
        ConfigurationError: If IP_HASH_SALT is not set
    """
    geoip_resolver = geoip_resolver or GeoIPResolver(settings.GEOIP_DATABASE_PATH)
    if not geoip_resolver.available:
        logger.warning("No GeoIP database loaded; click events will be stored without a country")

    processor = AnalyticsProcessor(
        url_repository=URLRepository(),
        analytics_repository=AnalyticsRepository(),
        geoip_resolver=geoip_resolver,
        ip_hash_salt=settings.IP_HASH_SALT,
        hashed_ip_length=settings.IP_HASH_LENGTH,
    )
    return AnalyticsWorker(
        backend,
        processor,
        concurrency=settings.ANALYTICS_WORKER_CONCURRENCY,
        max_attempts=settings.ANALYTICS_QUEUE_MAX_ATTEMPTS,
        backoff_seconds=settings.ANALYTICS_QUEUE_BACKOFF_SECONDS,
        poll_timeout=settings.ANALYTICS_WORKER_POLL_TIMEOUT,
        promote_interval=settings.ANALYTICS_WORKER_PROMOTE_INTERVAL,
        stall_timeout=settings.ANALYTICS_QUEUE_STALL_TIMEOUT,
    )


async def run_worker() -> int:
    """Run the analytics worker until SIGINT or SIGTERM."""
    if settings.QUEUE_BACKEND != QueueBackendType.REDIS:
        logger.error("The standalone worker needs QUEUE_BACKEND=redis; the in-memory queue is per process")
        return 1

    redis_manager = RedisClientManager(settings.REDIS_URI, settings.REDIS_MAX_CONNECTIONS)
    if not await redis_manager.ping() and not await redis_manager.reconnect():
        logger.error(f"Redis is unreachable at {settings.REDIS_HOST}:{settings.REDIS_PORT}, worker not started")
        await redis_manager.close()
        return 1

    redis_client: redis.Redis = redis_manager.client
    instrument_clients(db_engine=engine, redis_client=redis_client)

    if settings.DB_AUTO_CREATE:
        await create_db_and_tables()

    geoip_resolver = GeoIPResolver(settings.GEOIP_DATABASE_PATH)
    try:
        worker = build_analytics_worker(
            create_queue_backend(settings.QUEUE_BACKEND, redis_client),
            geoip_resolver,
        )
    except ConfigurationError as e:
        logger.error(f"Worker misconfigured: {e}")
        await redis_manager.close()
        return 1

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    await worker.start()
    logger.info(f"Analytics worker consuming '{settings.ANALYTICS_QUEUE_NAME}'")
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down analytics worker")
        await worker.stop()
        geoip_resolver.close()
        await redis_manager.close()
        await engine.dispose()
    return 0


def main() -> None:
    setup_logging("worker")
    setup_telemetry("worker")
    sys.exit(asyncio.run(run_worker()))


if __name__ == "__main__":
    main()
