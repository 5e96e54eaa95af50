"""
Logging configuration for applications using scdgraph.

The package itself only creates module loggers; call setup_logging once at
application start to install a handler on the root logger.
"""

from __future__ import annotations

import logging

import json_log_formatter

from .config import LoggingSettings

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: LoggingSettings | None = None) -> None:
    """Configure logging based on settings.

    Args:
        settings: Logging settings (loaded from env if not provided)
    """
    settings = settings or LoggingSettings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Driver logs every routing/pool event at INFO
    logging.getLogger("neo4j").setLevel(logging.WARNING)
