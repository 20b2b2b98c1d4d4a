"""Structured logging configuration: structlog on top of stdlib logging."""

from __future__ import annotations

import logging
import logging.config
import os

import structlog

ENV_LOG_LEVEL = "CATALOG_UPDATES_LOG_LEVEL"
ENV_LOG_FORMAT = "CATALOG_UPDATES_LOG_FORMAT"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure structlog and stdlib logging.

    Arguments win over the environment:
        CATALOG_UPDATES_LOG_LEVEL: log level (default: WARNING)
        CATALOG_UPDATES_LOG_FORMAT: console | json (default: console)

    Logs always go to stderr; stdout is reserved for command output.
    """
    log_level = (level or os.environ.get(ENV_LOG_LEVEL) or "WARNING").upper()
    log_format = (fmt or os.environ.get(ENV_LOG_FORMAT) or "console").lower()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "structlog": {
                    "()": structlog.stdlib.ProcessorFormatter,
                    "foreign_pre_chain": shared_processors,
                    "processors": [
                        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                        renderer,
                    ],
                },
            },
            "handlers": {
                "default": {
                    "class": "logging.StreamHandler",
                    "stream": "ext://sys.stderr",
                    "formatter": "structlog",
                },
            },
            "root": {
                "handlers": ["default"],
                "level": log_level,
            },
            "loggers": {
                "catalog_updates": {"level": log_level},
                "httpx": {"level": "WARNING"},
                "httpcore": {"level": "WARNING"},
            },
        }
    )
