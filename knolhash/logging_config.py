from __future__ import annotations

import logging
import os

DEFAULT_LEVEL = os.getenv("KNOLHASH_LOG_LEVEL", "INFO").upper()


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """Create or reuse a module-level logger with a simple stdout handler."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(fmt="%(asctime)s %(levelname)s %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level if level is not None else DEFAULT_LEVEL)
    return logger


__all__ = ["get_logger"]
