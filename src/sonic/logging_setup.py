"""Process-wide logging configuration."""

from __future__ import annotations

import logging
import sys

_QUIET_LIBRARIES = ("httpx", "httpcore", "sqlalchemy")


def setup_logging(level: str | int = logging.INFO) -> None:
    """Configure a single stderr handler on the root logger.

    Call this once, before the first log record. Child process output goes
    straight to the inherited stdout/stderr and is not routed through here.
    """

    root = logging.getLogger()
    root.setLevel(level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ),
    )
    root.addHandler(handler)

    for name in _QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.captureWarnings(True)
