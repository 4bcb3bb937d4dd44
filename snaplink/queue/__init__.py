"""
Analytics queue for the URL shortener.

Clicks are published by the redirect path and consumed by AnalyticsWorker.
Backends are interchangeable (Redis lists, in-memory).
"""

from snaplink.queue.models import ClickJob, JobEnvelope
from snaplink.queue.backends import (
    QueueBackend,
    RedisQueueBackend,
    InMemoryQueueBackend,
    create_queue_backend,
)
from snaplink.queue.analytics_queue import AnalyticsQueue
from snaplink.queue.worker import AnalyticsWorker, backoff_delay

__all__ = [
    "ClickJob",
    "JobEnvelope",
    "QueueBackend",
    "RedisQueueBackend",
    "InMemoryQueueBackend",
    "create_queue_backend",
    "AnalyticsQueue",
    "AnalyticsWorker",
    "backoff_delay",
]
