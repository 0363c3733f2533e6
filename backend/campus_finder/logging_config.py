"""Centralised logging configuration.

Entry points (the Flask app factory and the Celery app) call
:func:`configure_logging` once. Other modules simply import `logging` and call
`logging.getLogger(__name__)`.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("campus_finder").setLevel(level)


__all__ = ["configure_logging", "LOG_FORMAT"]
