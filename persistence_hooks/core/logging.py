"""
Structured logging setup.

Configures structlog on top of the standard library logging module so that
library loggers obtained with ``structlog.get_logger(__name__)`` render JSON.
"""

import logging
from typing import Optional

import structlog

from .config import settings


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure structlog and the root stdlib logger.

    Args:
        level: Log level name, defaults to settings.LOG_LEVEL
    """
    log_level = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(format="%(message)s", level=log_level)
    logging.getLogger().setLevel(log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=settings.SERVICE_NAME)
