"""
Logging configuration using loguru.

JSON lines in production, colorized text in development. uvicorn's own
loggers are routed through loguru so a deployment emits a single format.
"""

import logging
import sys

from loguru import logger

from keygate.config.settings import settings

# stdlib loggers forwarded into loguru (uvicorn runs with log_config=None)
FORWARDED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def _text_formatter(record: dict) -> str:
    """Text line format. The {extra} section is only appended when non-empty."""
    base_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    if record["extra"]:
        base_format += " | {extra}"

    return base_format + "\n{exception}"


class _InterceptHandler(logging.Handler):
    """Re-emit stdlib log records through loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        logger.opt(depth=6, exception=record.exc_info).log(level, record.getMessage())


def normalize_level(level: str) -> str:
    """Map a configured level (any case, ``warn`` allowed) to a loguru level name."""
    level = level.strip().upper()
    return _LEVEL_ALIASES.get(level, level)


def setup_logging(level: str | None = None, log_format: str | None = None) -> None:
    """Configure the loguru sink.

    Args:
        level: Minimum level. Defaults to KEYGATE_LOG_LEVEL.
        log_format: ``text`` or ``json``. Defaults to KEYGATE_LOG_FORMAT.
    """
    level = normalize_level(level or settings.log_level)
    log_format = (log_format or settings.log_format).lower()

    logger.remove()
    if log_format == "text":
        logger.add(sys.stdout, format=_text_formatter, level=level, colorize=True)
    else:
        logger.add(sys.stdout, format="{message}", level=level, serialize=True)

    handler = _InterceptHandler()
    for name in FORWARDED_LOGGERS:
        std_logger = logging.getLogger(name)
        std_logger.handlers = [handler]
        std_logger.propagate = False

    logger.info(f"Logging configured (level={level}, format={log_format})")
