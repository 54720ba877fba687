"""JobResult dataclass: the outcome of one footprint job."""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


@dataclass
class JobResult:
    """Track individual job execution results."""

    job_id: str
    task_type: str  # 'COMPOSITE', 'SELECT'
    footprint: Dict[str, Any]  # name, tile_codes, image_count
    status: str  # 'success', 'partial', 'skipped', 'failed', 'error'
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    duration_sec: Optional[float] = None
    error_message: Optional[str] = None
    error_traceback: Optional[str] = None
    error_type: Optional[str] = None  # exception class name, None on success
    result_data: Optional[Dict[str, Any]] = None
    # Per-style partial-success fields
    styles_succeeded: Optional[List[str]] = None
    styles_failed: Optional[List[str]] = None
    style_errors: Optional[Dict[str, str]] = None
    outputs: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
