"""Job tracking and reporting for batch composite runs."""

from s2_marine_pipeline.tracking.job_result import JobResult
from s2_marine_pipeline.tracking.job_tracker import JobTracker

__all__ = [
    "JobResult",
    "JobTracker",
]
