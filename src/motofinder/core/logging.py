"""
Logging configuration.

A packaged YAML logging config (`motofinder/config/logging.yaml`) is applied with
`dictConfig`, then the level is overridden from settings (`MOTOFINDER_LOG_LEVEL`).
"""

from __future__ import annotations

import logging.config

from motofinder.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    """Configure the Python logging system based on packaged YAML config + settings."""
    settings = get_settings()
    config = get_logging_config()

    level = settings.app.log_level.upper()
    config.setdefault("root", {})["level"] = level
    app_logger = config.get("loggers", {}).get("motofinder")
    if isinstance(app_logger, dict):
        app_logger["level"] = level
    for handler in config.get("handlers", {}).values():
        if isinstance(handler, dict) and "level" in handler:
            handler["level"] = level

    logging.config.dictConfig(config)
