"""
Logging configuration.

We use a YAML logging config (`src/georemind/config/logging.yaml`) and then apply
runtime overrides from settings (e.g., `GEOREMIND_LOG_LEVEL`).
"""

from __future__ import annotations

import logging.config

from georemind.config.settings import get_logging_config, get_settings


def configure_logging() -> None:
    """Configure the Python logging system based on packaged YAML config + settings."""
    settings = get_settings()
    # dictConfig mutates nested dicts; never hand it the cached object.
    config = {k: (dict(v) if isinstance(v, dict) else v) for k, v in get_logging_config().items()}

    level = settings.app.log_level.upper()
    config["root"] = {**config.get("root", {}), "level": level}
    config["handlers"] = {
        name: ({**handler, "level": level} if isinstance(handler, dict) and "level" in handler else handler)
        for name, handler in config.get("handlers", {}).items()
    }

    logging.config.dictConfig(config)
