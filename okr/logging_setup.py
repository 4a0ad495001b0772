"""Logger wiring for the app.

The ``okr`` logger gets a single stream handler that prints the message as-is;
request lines are logged as dicts so they stay greppable and machine-parsable.
"""

from __future__ import annotations

import logging
import os


def install_request_logger() -> logging.Logger:
    log = logging.getLogger("okr")
    if not log.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(message)s"))
        log.addHandler(h)
    log.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    return log


__all__ = ["install_request_logger"]
