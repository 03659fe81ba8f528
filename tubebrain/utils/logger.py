"""
Logging helpers shared by the service entry point and routers
"""

import logging
import sys
from typing import Any

from tubebrain.config import settings

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_ROOT = "tubebrain"


def _level() -> int:
    return getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)


def setup_logger(name: str) -> logging.Logger:
    """Get a logger, attaching one stream handler to the package root on first use"""
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
        root.setLevel(_level())
    return logging.getLogger(name)


def _with_fields(message: str, fields: dict) -> str:
    if not fields:
        return message
    extras = " ".join(f"{k}={v}" for k, v in fields.items())
    return f"{message} | {extras}"


def log_info(message: str, **fields: Any):
    setup_logger(_ROOT).info(_with_fields(message, fields))


def log_warning(message: str, **fields: Any):
    setup_logger(_ROOT).warning(_with_fields(message, fields))


def log_error(message: str, **fields: Any):
    setup_logger(_ROOT).error(_with_fields(message, fields))
