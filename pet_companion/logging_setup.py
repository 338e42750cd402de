"""Logging configuration for applications embedding pet_companion."""

import logging
import os
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: int | str | None = None) -> None:
    """Send log records to stdout.

    Args:
        level: Log level; defaults to PET_LOG_LEVEL or INFO
    """
    if level is None:
        level = os.getenv("PET_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = level.upper()

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    # websockets logs every frame at DEBUG
    logging.getLogger("websockets").setLevel(logging.INFO)
