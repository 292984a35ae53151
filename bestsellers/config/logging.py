"""
Logging Configuration for the Best-Sellers Ranking Engine

Structured logging through structlog, rendered as JSON or console output.
Every event carries the service name, environment and version so lines from
the API, the scheduler and the Prefect flow can be told apart downstream.
"""

import logging
import sys
from typing import Any, Callable, Dict, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from bestsellers.config.settings import Settings, get_settings

# Third-party loggers that get our handler instead of their own
ROUTED_LOGGERS = ["uvicorn", "uvicorn.error", "uvicorn.access", "sqlalchemy.engine"]


def service_context(settings: Settings) -> Callable[..., Dict[str, Any]]:
    """Processor adding static service fields to every event"""
    context = {
        "service": settings.app_name,
        "environment": settings.app_env,
        "version": settings.version,
    }

    def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        for key, value in context.items():
            event_dict.setdefault(key, value)
        return event_dict

    return add_service_context


def _renderer(log_format: str):
    if log_format == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def _route_library_loggers(handler: logging.Handler, level: int, sql_echo: bool) -> None:
    for name in ROUTED_LOGGERS:
        library_logger = logging.getLogger(name)
        library_logger.handlers = [handler]
        library_logger.propagate = False
        library_logger.setLevel(level)

    # SQL statements only when database echo is on
    if not sql_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def configure_logging(log_level: Optional[str] = None) -> None:
    """
    Configure structured logging for the engine.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
    """
    settings = get_settings()
    level = log_level or settings.monitoring.log_level
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        service_context(settings),
        TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    structlog.configure(
        processors=shared_processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(
        ProcessorFormatter(
            processor=_renderer(settings.monitoring.log_format),
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(numeric_level)

    _route_library_loggers(handler, numeric_level, settings.database.echo)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
    )
