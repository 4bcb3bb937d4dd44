"""Main application module.

This module initializes the FastAPI application, includes routes,
and configures middleware and exception handlers.
"""

import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snaplink.api import api_router
from snaplink.core.cache import URLCache
from snaplink.core.config import QueueBackendType, settings
from snaplink.core.geoip import GeoIPResolver
from snaplink.core.logging import setup_logging
from snaplink.core.redis import RedisClientManager
from snaplink.core.telemetry import instrument_clients, setup_telemetry
from snaplink.db.base import create_db_and_tables, engine
from snaplink.middleware.tracing import TracingMiddleware
from snaplink.queue.analytics_queue import AnalyticsQueue
from snaplink.queue.backends import create_queue_backend
from snaplink.worker import build_analytics_worker

# Setup logging
logger = setup_logging("api")
setup_telemetry("api")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description=settings.APP_DESCRIPTION,
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.OTEL_ENABLED:
    app.add_middleware(TracingMiddleware)

# Include API router
app.include_router(api_router)


# Add exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400 like other input errors."""
    errors = exc.errors()
    logger.info(f"Request validation error on {request.url.path}: {len(errors)} error(s)")
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"detail": f"{location}: {message}" if location else message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler to catch and log all unhandled exceptions."""
    error_id = f"error-{uuid.uuid4().hex[:12]}"

    # Positional arguments keep braces in the path out of the format string
    logger.opt(exception=exc).error(
        "Unhandled exception in {} {} ({})", request.method, request.url.path, error_id
    )

    content = {
        "detail": "Internal server error",
        "error_id": error_id,
    }
    if settings.DEBUG:
        content["message"] = str(exc)
    return JSONResponse(status_code=500, content=content)


@app.on_event("startup")
async def startup_event():
    """Create the process-wide handles shared by every request."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT.value}")

    if settings.DB_AUTO_CREATE:
        await create_db_and_tables()

    redis_manager = None
    redis_client = None
    if settings.CACHE_ENABLED or settings.QUEUE_BACKEND == QueueBackendType.REDIS:
        redis_manager = RedisClientManager(settings.REDIS_URI, settings.REDIS_MAX_CONNECTIONS)
        if not await redis_manager.ping():
            logger.warning("Redis is unreachable at startup; cache reads will fall back to the database")
        redis_client = redis_manager.client

    instrument_clients(db_engine=engine, redis_client=redis_client)

    app.state.redis_manager = redis_manager
    app.state.url_cache = URLCache(
        redis_client if settings.CACHE_ENABLED else None,
        ttl_seconds=settings.CACHE_TTL_SECONDS,
        key_prefix=settings.CACHE_KEY_PREFIX,
    )
    if not app.state.url_cache.enabled:
        logger.info("URL cache disabled; every redirect reads from the database")
    queue_backend = create_queue_backend(settings.QUEUE_BACKEND, redis_client)
    app.state.analytics_queue = AnalyticsQueue(queue_backend)

    app.state.geoip_resolver = None
    app.state.analytics_worker = None
    if settings.ANALYTICS_WORKER_IN_PROCESS:
        app.state.geoip_resolver = GeoIPResolver(settings.GEOIP_DATABASE_PATH)
        # Raises ConfigurationError without IP_HASH_SALT, aborting startup
        worker = build_analytics_worker(queue_backend, app.state.geoip_resolver)
        await worker.start()
        app.state.analytics_worker = worker
    elif settings.QUEUE_BACKEND == QueueBackendType.MEMORY:
        logger.warning("In-memory analytics queue without an in-process worker; clicks will not be processed")


@app.on_event("shutdown")
async def shutdown_event():
    """Flush queued clicks and release connections."""
    logger.info(f"Shutting down {settings.APP_NAME}")

    analytics_queue = getattr(app.state, "analytics_queue", None)
    if analytics_queue is not None:
        await analytics_queue.wait_for_pending()

    worker = getattr(app.state, "analytics_worker", None)
    if worker is not None:
        await worker.stop()

    geoip_resolver = getattr(app.state, "geoip_resolver", None)
    if geoip_resolver is not None:
        geoip_resolver.close()

    redis_manager = getattr(app.state, "redis_manager", None)
    if redis_manager is not None:
        await redis_manager.close()

    await engine.dispose()
