"""Database module for the URL shortener application."""
from snaplink.db.base import engine, get_engine, async_session_factory, create_db_and_tables
from snaplink.db.session import get_db, db_transaction, SessionManager

__all__ = [
    "engine",
    "get_engine",
    "async_session_factory",
    "create_db_and_tables",
    "get_db",
    "db_transaction",
    "SessionManager",
]
