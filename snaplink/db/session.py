"""Session management for database operations.

This module provides utilities for handling SQLAlchemy async sessions
with proper lifecycle management, error handling, and transaction support.
It includes dependency injection patterns optimized for FastAPI.
"""

from typing import AsyncGenerator, Callable, Optional, TypeVar
import logging
import inspect
from contextlib import asynccontextmanager
from functools import wraps

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError

from snaplink.db.base import get_session

logger = logging.getLogger(__name__)

# Generic return type for function decorators
T = TypeVar("T")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions.

    Yields:
        AsyncSession: A SQLAlchemy async session object.
    """
    async with get_session() as session:
        try:
            yield session
        except SQLAlchemyError:
            logger.exception("Database error occurred")
            await session.rollback()
            raise


def _is_session_annotation(annotation) -> bool:
    return annotation is AsyncSession or annotation == "AsyncSession" or (
        hasattr(annotation, "__origin__") and AsyncSession in getattr(annotation, "__args__", [])
    )


def db_transaction(db_param_name: Optional[str] = None) -> Callable:
    """Decorator to wrap functions in a database transaction.

    Finds the session parameter, commits on success or rolls back on error.
    Domain errors raised inside the wrapped function are propagated unchanged.

    Args:
        db_param_name: Optional name of the database session parameter.
            If not provided, the first parameter annotated as AsyncSession is used.

    Returns:
        Callable: Decorator function

    Raises:
        ValueError: If no database session is passed to the wrapped function
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        parameters = inspect.signature(func).parameters
        db_param_pos = None
        db_param_key = None

        for i, (param_name, param) in enumerate(parameters.items()):
            if db_param_name and param_name == db_param_name:
                db_param_pos, db_param_key = i, param_name
                break
            if db_param_name is None and _is_session_annotation(param.annotation):
                db_param_pos, db_param_key = i, param_name
                break

        if db_param_key is None:
            logger.warning(
                f"Unable to find database session parameter in function '{func.__name__}'"
            )

        @wraps(func)
        async def wrapper(*args, **kwargs):
            db = None

            if db_param_pos is not None and len(args) > db_param_pos:
                db = args[db_param_pos]
            elif db_param_key is not None and db_param_key in kwargs:
                db = kwargs[db_param_key]
            else:
                for value in list(args) + list(kwargs.values()):
                    if isinstance(value, AsyncSession):
                        db = value
                        break

            if db is None:
                raise ValueError(
                    f"Database session not found in function arguments for '{func.__name__}'"
                )

            try:
                result = await func(*args, **kwargs)
                await db.commit()
                return result
            except Exception:
                await db.rollback()
                raise

        return wrapper
    return decorator


class SessionManager:
    """Session manager for database operations with context manager support.

    The analytics worker opens one transaction per job through
    ``transaction_context``.
    """

    @staticmethod
    @asynccontextmanager
    async def transaction_context() -> AsyncGenerator[AsyncSession, None]:
        """Context manager for a database session with transaction support.

        Automatically commits on successful completion or rolls back on error.

        Yields:
            AsyncSession: SQLAlchemy async session
        """
        async with get_session() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.debug(f"Transaction rolled back: {e}")
                raise
