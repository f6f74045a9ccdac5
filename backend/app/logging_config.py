"""Application logging setup and timing helper."""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from app.config import get_settings


class LogColors:
    RESET = "\033[0m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    YELLOW = "\033[93m"
    MAGENTA = "\033[95m"
    GRAY = "\033[90m"


class ColoredFormatter(logging.Formatter):
    """Formatter that colours the level name for terminal output."""

    COLORS = {
        logging.DEBUG: LogColors.GRAY,
        logging.INFO: LogColors.BLUE,
        logging.WARNING: LogColors.YELLOW,
        logging.ERROR: LogColors.RED,
        logging.CRITICAL: LogColors.MAGENTA,
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if record.levelno in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelno]}{levelname}{LogColors.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging() -> None:
    """Configure the root logger once at startup."""
    settings = get_settings()

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(settings.log_level)

    if settings.is_development:
        formatter = ColoredFormatter(
            fmt="%(levelname)s:\t%(asctime)s - %(name)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(levelname)s:%(asctime)s:%(name)s:%(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("pylast").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )

    logging.getLogger("uvicorn").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()
    logging.getLogger("uvicorn.error").handlers.clear()


@asynccontextmanager
async def log_timing(logger: logging.Logger, label: str) -> AsyncIterator[None]:
    """Log how long the wrapped block took.

    Usage::

        async with log_timing(logger, "Upsert song"):
            song = await client.song.upsert(...)
    """
    started = time.perf_counter()
    try:
        yield
    except Exception:
        duration_ms = round((time.perf_counter() - started) * 1000)
        logger.error(f"{label} failed after {duration_ms} ms", extra={"duration_ms": duration_ms})
        raise
    duration_ms = round((time.perf_counter() - started) * 1000)
    logger.debug(f"{label} completed", extra={"duration_ms": duration_ms})
