"""Structured logging configuration."""
from __future__ import annotations

import logging
import logging.config
from typing import Any

from flowchord.config import Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure logging based on settings.

    ``log_format`` selects the console handler: ``text`` for plain lines,
    ``json`` for one JSON object per line, ``rich`` for a colourised
    interactive console.
    """
    settings = settings or get_settings()
    level = settings.log_level.upper()
    log_format = settings.log_format if settings.log_format in ("text", "json", "rich") else "text"

    handlers: dict[str, Any] = {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": "json" if log_format == "json" else "text",
        },
    }
    if log_format == "rich":
        handlers["console"] = {
            "class": "rich.logging.RichHandler",
            "formatter": "rich",
            "rich_tracebacks": True,
            "show_path": False,
        }

    config: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "text": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "json": {
                "format": '{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
                "datefmt": "%Y-%m-%dT%H:%M:%S",
            },
            "rich": {
                "format": "%(name)s: %(message)s",
                "datefmt": "[%X]",
            },
        },
        "handlers": handlers,
        "root": {
            "level": level,
            "handlers": ["console"],
        },
        "loggers": {
            "apscheduler": {"level": "WARNING"},
            "httpx": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
            "flowchord": {"level": level},
        },
    }

    logging.config.dictConfig(config)
