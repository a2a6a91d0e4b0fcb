"""Logging configuration."""

import logging
import sys
from typing import Optional, TextIO

FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO", stream: Optional[TextIO] = None) -> logging.Logger:
    """Attach one stream handler (stdout by default) to the package logger (idempotent)."""
    logger = logging.getLogger("url_risk")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(handler)

    return logger
