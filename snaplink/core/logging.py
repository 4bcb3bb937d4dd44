"""
Core logging module.

This module configures the application logging with Loguru.
"""

import logging
import os
import sys

from loguru import logger

from snaplink.core.config import settings


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging and redirect to loguru.

    Services and repositories log through the standard library; this handler
    forwards those records so every component ends up in the same sinks.
    """

    def emit(self, record: logging.LogRecord) -> None:
        # Try to get corresponding Loguru level or use level number
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where the logged message originated
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(component: str = "api"):
    """
    Configure application logging using Loguru.

    Args:
        component: Name bound to every record ("api" or "worker") so the two
            processes can share a log directory.
    """
    os.makedirs(settings.LOG_DIR, exist_ok=True)

    # Remove default handlers
    logger.remove()

    if settings.DEBUG:
        logger.add(
            sys.stderr,
            level=settings.LOG_LEVEL.upper(),
            format=settings.LOG_FORMAT,
            backtrace=True,
            diagnose=True,
        )
    else:
        logger.add(
            sys.stderr,
            level=settings.LOG_LEVEL.upper(),
            format=settings.LOG_FORMAT,
            backtrace=False,
            diagnose=False,
        )

    root, ext = os.path.splitext(settings.LOG_FILENAME)
    log_file_path = os.path.join(settings.LOG_DIR, f"{root}.{component}{ext}")

    if settings.LOG_JSON:
        logger.add(
            log_file_path,
            level=settings.LOG_LEVEL.upper(),
            serialize=True,
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            compression="gz",
            enqueue=True,
        )
    else:
        logger.add(
            log_file_path,
            level=settings.LOG_LEVEL.upper(),
            format=settings.LOG_FORMAT,
            rotation=settings.LOG_ROTATION,
            retention=settings.LOG_RETENTION,
            compression="gz",
            enqueue=True,
        )

    logger.configure(extra={"component": component})

    # Intercept standard library logging
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # Modify existing loggers to use InterceptHandler
    for name in logging.root.manager.loggerDict.keys():
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    for log_name in ["uvicorn", "uvicorn.access", "uvicorn.error", "fastapi"]:
        logging_logger = logging.getLogger(log_name)
        logging_logger.handlers = [InterceptHandler()]
        logging_logger.propagate = False

    # SQLAlchemy echoes every statement at INFO; keep it behind DB_ECHO
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DB_ECHO else logging.WARNING
    )

    return logger
