"""
Structured logging setup.

Configures structlog on top of the standard library logging module so that
events emitted by ``structlog.get_logger(__name__)`` carry the logger name,
level and an ISO timestamp.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import get_settings


def configure_logging(level: Optional[str] = None, json: Optional[bool] = None) -> None:
    """Configure structlog and the root stdlib handler.

    Args:
        level: Log level name, defaults to ``LOG_LEVEL`` from settings
        json: Render JSON instead of console output, defaults to ``LOG_JSON``
    """
    settings = get_settings()
    level = (level or settings.LOG_LEVEL).upper()
    json = settings.LOG_JSON if json is None else json

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger("lazycache").setLevel(level)

    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
