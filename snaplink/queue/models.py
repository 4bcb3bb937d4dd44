"""
Data models for analytics queue messages.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class ClickJob(BaseModel):
    """
    Click captured on the redirect path.

    Published to the analytics queue every time a short code resolves.
    Carries the raw request metadata; hashing and enrichment happen in the worker.
    """

    short_code: str = Field(..., description="The short code that was accessed")
    user_agent: Optional[str] = Field(None, description="User agent string")
    ip: Optional[str] = Field(None, description="Client IP address")
    referer: Optional[str] = Field(None, description="HTTP referer")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="When the redirect was served (UTC)")


class JobEnvelope(BaseModel):
    """
    Queue-side bookkeeping around a job payload.

    ``data`` is kept as a plain mapping so a payload that no longer matches
    ClickJob can still be moved to the failed list for inspection.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    data: Dict[str, Any]
    attempts: int = 0
    enqueued_at: datetime = Field(default_factory=datetime.utcnow)
    last_error: Optional[str] = None
