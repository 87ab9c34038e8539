from __future__ import annotations

import logging
from typing import Optional

ROOT_LOGGER_NAME = "agent_runtime"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def get_logger(component: str) -> logging.Logger:
    """Return the logger for one runtime component, e.g. `OpenAIProvider`."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Install the console sink on the runtime's root logger.

    Called once at process start; later calls only adjust the level.
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    if level:
        root.setLevel(level.upper())

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
        _configured = True

    return root
