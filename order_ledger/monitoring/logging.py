"""
Structured logging configuration.

Uses structlog for JSON-formatted logs. Command handlers bind the command
name and correlation id through contextvars so every line of one command can
be grepped together.
"""
import logging
import sys
from typing import Any

import structlog
from pythonjsonlogger import jsonlogger

from order_ledger.config import Settings, get_settings


def add_app_context(settings: Settings) -> Any:
    """
    Build a processor that adds application context to log events.

    Args:
        settings: Settings the app name and environment are read from

    Returns:
        Any: structlog processor
    """

    def processor(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["app_name"] = settings.app_name
        event_dict["app_env"] = settings.app_env
        return event_dict

    return processor


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging with JSON formatter.

    Sets up:
    - JSON-formatted logs
    - contextvars-bound fields (command, correlation_id)
    - Structured log fields
    """
    settings = settings or get_settings()

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
            add_app_context(settings),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    json_handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        rename_fields={
            "timestamp": "@timestamp",
            "level": "level",
            "name": "logger",
            "message": "message",
        },
    )
    json_handler.setFormatter(formatter)
    root_logger.addHandler(json_handler)

    # SQL echo is controlled by settings.database_echo, not the root level
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)

    logger = structlog.get_logger(__name__)
    logger.info(
        "logging_configured",
        log_level=settings.log_level,
        app_env=settings.app_env,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name

    Returns:
        Any: Structured logger
    """
    return structlog.get_logger(name)
