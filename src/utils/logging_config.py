"""Logging configuration for drive-auth.

Library modules import `logger` and only log. Commands call
`configure_logging()` once at startup; nothing is configured on import.
"""

from __future__ import annotations

import logging
import sys

logger = logging.getLogger("drive_auth")


def configure_logging(level: str = "INFO") -> None:
    """Attach a stderr handler to the package logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR).
    """
    logger.setLevel(getattr(logging, level.upper()))

    # Only add handler if not already configured
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            ),
        )
        logger.addHandler(handler)
