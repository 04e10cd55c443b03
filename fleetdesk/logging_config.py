"""
Structured logging configuration using structlog
JSON logs in production, colored console output during development
"""
import logging
import os
from typing import Any

import structlog

from . import __version__


def add_app_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Stamp service name, release and environment on every entry"""
    event_dict['app'] = 'fleetdesk'
    event_dict['version'] = __version__
    event_dict['environment'] = os.getenv('ENVIRONMENT', 'production')
    return event_dict


def drop_color_message_key(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Uvicorn adds 'color_message' for its own console; it is noise in JSON logs."""
    event_dict.pop('color_message', None)
    return event_dict


def configure_logging(log_level: str = "INFO", json_logs: bool = True):
    """
    Configure structlog and route stdlib logging through the same renderer

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON output when True, human-readable console otherwise

    Usage:
        logger = configure_logging(settings.log_level, settings.json_logs)
        logger.info("reservation_expired", reservation_id=rid, trigger="interval")
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        add_app_context,
        drop_color_message_key,
    ]

    if json_logs:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[structlog.stdlib.filter_by_level] + shared_processors + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level.upper())

    return structlog.get_logger()

