"""Logging setup for the command line entry point."""
from __future__ import annotations

import logging
import os
import sys


def setup_logging() -> None:
    """Initialise root logging on stderr.

    The level comes from ``LOG_LEVEL`` (default ``INFO``). Reports and
    summaries go to stdout, so log lines never interleave with them.
    """

    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    if logging.getLogger().handlers:
        logging.getLogger().setLevel(level)
        return

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        stream=sys.stderr,
    )


__all__ = ["setup_logging"]
