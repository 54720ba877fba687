"""Loguru setup for the composite pipeline: one stderr sink tagged with the run id."""

from __future__ import annotations

import sys
import uuid

from loguru import logger


def setup_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install the stderr sink at *level*, as plain text or JSON lines (*fmt*).

    Called once by the ``s2-marine`` group.  Steps used as a library without
    it log through loguru's default sink, with no run id.
    """
    logger.remove()
    if fmt == "json":
        logger.add(sys.stderr, level=level.upper(), serialize=True)
    else:
        logger.add(
            sys.stderr,
            level=level.upper(),
            format="<level>{level: <8}</level> | {extra[run_id]:>8} | {message}",
        )


def new_run_id() -> str:
    """Short hex id shared by every log line of one command run."""
    return uuid.uuid4().hex[:8]


def bind_run_context(run_id: str) -> None:
    """Set *run_id* as a default extra value for all subsequent log calls."""
    logger.configure(extra={"run_id": run_id})
