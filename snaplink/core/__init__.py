"""Core module for the URL shortener application."""

from snaplink.core.config import settings

__all__ = ["settings"]
