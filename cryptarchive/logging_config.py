"""Logging setup for the command line tool; the library itself never installs handlers."""

from __future__ import annotations

import logging
import logging.config
import os
from typing import Optional


_CONFIGURED = False


def configure_logging(default_level: Optional[str] = None) -> None:
    """Route log records to stderr with a consistent formatter.

    stdout is reserved for command output (keys, info listings). The level
    comes from ``default_level``, then ``LOG_LEVEL``, then WARNING.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    level_name = (default_level or os.getenv("LOG_LEVEL", "WARNING")).upper()

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "standard": {
                    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "stderr": {
                    "class": "logging.StreamHandler",
                    "formatter": "standard",
                    "stream": "ext://sys.stderr",
                }
            },
            "loggers": {
                "cryptarchive": {
                    "level": level_name,
                    "handlers": ["stderr"],
                    "propagate": False,
                },
            },
        }
    )
    _CONFIGURED = True
