"""Logging configuration for the Pharmacy domain."""

import logging
import os

import structlog

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Configure structlog once per process.

    ``LOG_LEVEL`` sets the threshold; ``LOG_FORMAT=json`` switches the console
    renderer for a JSON renderer (for log shippers).
    """
    global _configured
    if _configured:
        return

    level_name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    renderer = (
        structlog.processors.JSONRenderer()
        if os.environ.get("LOG_FORMAT") == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    logging.basicConfig(format="%(message)s", level=log_level)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        cache_logger_on_first_use=True,
    )

    # Suppress noisy library loggers
    logging.getLogger("protean").setLevel(logging.WARNING)
    _configured = True


def get_logger(name: str):
    return structlog.get_logger(name)
