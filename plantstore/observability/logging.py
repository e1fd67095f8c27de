"""
Structured logging with structlog.

Every module obtains its logger through ``get_logger(__name__)`` and logs
snake_case events with keyword context, e.g.::

    logger.info("session_revoked", user_id=user.id, jti=jti)
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from plantstore.config import settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service name and version to every entry."""
    event_dict["service"] = settings.SERVICE_NAME
    event_dict["version"] = settings.API_VERSION
    return event_dict


def setup_logging() -> None:
    """Configure stdlib logging and structlog once at startup."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]
