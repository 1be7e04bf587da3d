"""
Logging setup: loguru console and file sinks, stdlib interception,
and the per-request access log.
"""

from __future__ import annotations

import logging
import sys
import time
from pathlib import Path

from fastapi import Request
from loguru import logger

from bikerhub.config import Settings

CONSOLE_FORMAT = (
    "<dim>{time:YYYY-MM-DD HH:mm:ss}</dim> "
    "<level>{level: <7}</level>: "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Route records from stdlib loggers (uvicorn, apscheduler) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(settings: Settings) -> None:
    logger.remove()
    level = settings.LOG_LEVEL.upper()

    console_enabled = settings.LOG_CONSOLE_ENABLED
    if settings.is_production and "LOG_CONSOLE_ENABLED" not in settings.model_fields_set:
        console_enabled = False

    if console_enabled:
        logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True, backtrace=False)

    if settings.LOG_FILE_ENABLED:
        Path(settings.LOG_FILE_NAME).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.LOG_FILE_NAME,
            level=level,
            rotation=settings.LOG_FILE_MAX_SIZE,
            retention=settings.LOG_FILE_MAX_FILES,
            serialize=True,
            enqueue=True,
        )
        error_file = str(Path(settings.LOG_FILE_NAME).with_name("error.log"))
        logger.add(
            error_file,
            level="ERROR",
            rotation=settings.LOG_FILE_MAX_SIZE,
            retention=settings.LOG_FILE_MAX_FILES,
            serialize=True,
            enqueue=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "apscheduler"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


async def log_requests(request: Request, call_next):
    """Access log line per request: method, path, status and duration."""
    start = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "{} {} {} - {:.1f} ms",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response
