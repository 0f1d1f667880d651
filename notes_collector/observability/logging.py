"""
Structured logging configuration using structlog.

Console output in development, JSON lines in production. Every event
passes through `normalize_fields`, so services can log enum members and
ids as they hold them and still get flat, greppable values:

    logger.info("Subscription fetched", platform=Platform.RSS, subscription_id=12)
    # -> platform=rss subscription_id=12
"""

import logging
import sys
from enum import Enum
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from notes_collector.config.settings import get_settings

# Per-request chatter from the HTTP and database clients used by adapters
QUIET_LOGGERS = ("httpx", "httpcore", "feedparser", "asyncpg", "asyncio")

# Fields carried by scheduler, pipeline and bot events
ID_FIELDS = ("subscription_id", "user_id", "note_id")


def normalize_fields(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
    """Render enum values by their value and id fields as integers."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
    for key in ID_FIELDS:
        value = event_dict.get(key)
        if isinstance(value, str) and value.isdigit():
            event_dict[key] = int(value)
    return event_dict


def setup_logging(level: str | None = None) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Overrides LOG_LEVEL from settings
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        normalize_fields,
    ]
    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level),
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs) -> None:
    """Bind fields (the bot binds user_id per event) to every following log line."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
