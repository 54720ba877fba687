"""Exit codes for ``s2-marine`` commands, derived from footprint job outcomes."""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s2_marine_pipeline.tracking import JobTracker


class ExitCode(IntEnum):
    SUCCESS = 0
    PARTIAL_FAILURE = 1  # Some footprints or colour grades failed
    TOTAL_FAILURE = 2
    BAD_INPUT = 3  # Bad config, jobs file or image id
    NO_WORK = 6  # No scenes selected, or every export already exists


def exit_code_from_tracker(tracker: JobTracker) -> ExitCode:
    """Map footprint statuses to an exit code.

    ``partial`` footprints wrote some of their colour grades, so they never
    count as outright failures.
    """
    results = tracker.results
    failed = sum(1 for r in results if r.status in ("failed", "error"))
    partial = sum(1 for r in results if r.status == "partial")
    if results and failed == len(results):
        return ExitCode.TOTAL_FAILURE
    elif failed > 0 or partial > 0:
        return ExitCode.PARTIAL_FAILURE
    return ExitCode.SUCCESS
