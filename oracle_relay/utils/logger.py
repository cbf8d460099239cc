"""
ORACLE RELAY — Structured Logging Utility
structlog configuration shared by the API, the CLI and the publish loop.
Every logger carries a `component` field naming the module that owns it.
"""
import structlog
import logging
import sys
from typing import Optional

from oracle_relay.config.settings import AppSettings, get_settings

# Chatty third-party loggers kept at WARNING unless the relay itself is more verbose
_QUIET_LIBRARIES = ("aiosqlite", "httpx", "httpcore", "telegram", "hpack")


def setup_logging(settings: Optional[AppSettings] = None) -> None:
    """Configure structlog and stdlib logging from AppSettings."""
    settings = settings or get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # uvicorn and SQLAlchemy echo go through stdlib logging
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """Lazy structured logger tagged with its component name."""
    return structlog.get_logger(component=name or "oracle_relay")
