"""
Structured Logging Configuration for the Karaoke Together backend

Uses loguru with:
- Human readable console output
- File rotation with compression
- A separate websocket log for protocol debugging
"""

import sys
import logging
from pathlib import Path

from loguru import logger as loguru_logger

from karaoke.config import Settings, settings as default_settings


class InterceptHandler(logging.Handler):
    """
    Intercept standard logging messages and redirect to Loguru.
    uvicorn and httpx log through the standard library.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find caller from where originated the logged message
        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure Loguru. Call this once at application startup.
    """
    settings = settings or default_settings
    loguru_logger.remove()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level> | {extra}"
    )

    loguru_logger.add(
        sys.stdout,
        format=log_format,
        level=settings.LOG_LEVEL,
        colorize=True,
        backtrace=True,
        diagnose=settings.DEBUG,
    )

    if settings.LOG_TO_FILE:
        log_dir = Path(settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_format = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message} | {extra}"

        loguru_logger.add(
            log_dir / "app.log",
            format=file_format,
            level="INFO",
            rotation="00:00",
            retention="14 days",
            compression="zip",
            backtrace=True,
            diagnose=settings.DEBUG,
            encoding="utf-8",
        )

        loguru_logger.add(
            log_dir / "error.log",
            format=file_format,
            level="ERROR",
            rotation="00:00",
            retention="60 days",
            compression="zip",
            backtrace=True,
            diagnose=True,
            encoding="utf-8",
        )

        # Gateway traffic, kept apart since playback reports arrive every second
        loguru_logger.add(
            log_dir / "websocket.log",
            format=file_format,
            level="DEBUG",
            rotation="200 MB",
            retention="3 days",
            compression="zip",
            filter=lambda record: record["extra"].get("name") == "websocket",
            encoding="utf-8",
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def get_logger(name: str):
    """
    Get a logger for a specific module.

    Usage:
        from karaoke.utils.logging_config import get_logger
        logger = get_logger(__name__)
    """
    return loguru_logger.bind(name=name)


fastapi_logger = loguru_logger.bind(name="fastapi")
websocket_logger = loguru_logger.bind(name="websocket")
room_logger = loguru_logger.bind(name="room")
sweeper_logger = loguru_logger.bind(name="sweeper")
search_logger = loguru_logger.bind(name="search")


__all__ = [
    "setup_logging",
    "get_logger",
    "loguru_logger",
    "fastapi_logger",
    "websocket_logger",
    "room_logger",
    "sweeper_logger",
    "search_logger",
]
