"""
Structured logging setup.

Services log event names with key/value context through structlog. The
configuration is applied once per process; ``get_logger`` is safe to call
at import time because structlog binds lazily.
"""

import logging
import sys
from typing import Optional

import structlog

from budget.core.config import get_settings

_configured = False


def configure_logging(level: Optional[str] = None, json: Optional[bool] = None) -> None:
    """Configure structlog and the stdlib root handler."""
    global _configured

    settings = get_settings()
    level_name = (level or settings.LOG_LEVEL).upper()
    render_json = settings.LOG_JSON if json is None else json

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if render_json
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
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)
