"""Run footprint jobs in-process, one bulkhead per job."""

from __future__ import annotations

import time
import traceback
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, List

from loguru import logger

from s2_marine_pipeline.tracking import JobTracker, JobResult


def _footprint_info(kwargs: Dict[str, Any]) -> Dict[str, Any]:
    image_ids = kwargs.get("image_ids") or []
    return {
        "name": kwargs.get("job_name") or (image_ids[0] if image_ids else None),
        "image_count": len(image_ids),
    }


def _invoke_worker(
    worker_fn: Callable,
    kwargs: Dict[str, Any],
    task_type: str,
    tracker: JobTracker,
) -> Dict[str, Any]:
    """Call *worker_fn* with *kwargs* and record the result in *tracker*.

    ``job_name`` labels the job in reports and is not passed to the worker.
    Exceptions stop here: the job is recorded as failed and the batch
    carries on with the next footprint.
    """
    footprint = _footprint_info(kwargs)
    call_kwargs = {k: v for k, v in kwargs.items() if k != "job_name"}
    job_id = f"{task_type}_{footprint['name']}"

    logger.info(f"[local] Starting {task_type} for {footprint['name']}")
    t0 = time.perf_counter()

    try:
        result = worker_fn(**call_kwargs)
        duration = time.perf_counter() - t0

        if isinstance(result, dict):
            footprint.update(result.get("footprint") or {})
            tracker.add_result(JobResult(
                job_id=job_id,
                task_type=task_type,
                footprint=footprint,
                status=result.get("status", "success"),
                duration_sec=duration,
                result_data=result,
                error_message=result.get("error_message"),
                error_type=result.get("error_type"),
                styles_succeeded=result.get("styles_succeeded"),
                styles_failed=result.get("styles_failed"),
                style_errors=result.get("style_errors"),
                outputs=result.get("outputs"),
            ))
        else:
            tracker.add_result(JobResult(
                job_id=job_id,
                task_type=task_type,
                footprint=footprint,
                status="success",
                duration_sec=duration,
                result_data={"raw": str(result)},
            ))

        logger.info(f"[local] Completed {task_type} for {footprint['name']} in {duration:.1f}s")
        return result

    except Exception as exc:
        duration = time.perf_counter() - t0
        logger.error(f"[local] {task_type} failed for {footprint['name']}: {exc}")
        tracker.add_result(JobResult(
            job_id=job_id,
            task_type=task_type,
            footprint=footprint,
            status="failed",
            duration_sec=duration,
            error_message=str(exc),
            error_traceback=traceback.format_exc(),
            error_type=type(exc).__name__,
        ))
        return {"status": "failed", "error_message": str(exc)}


def run_local_tasks(
    worker_fn: Callable,
    task_type: str,
    kwargs_list: List[Dict[str, Any]],
    tracker: JobTracker,
    max_workers: int = 1,
) -> None:
    """Call *worker_fn* for each kwargs dict, sequentially or in parallel.

    Args:
        worker_fn: Job function, e.g. :func:`run_composite`.
        task_type: Label for reporting (e.g. ``"COMPOSITE"``).
        kwargs_list: One dict per footprint with the worker's keyword args.
        tracker: Collects results for every invocation.
        max_workers: ``1`` for sequential (default, safe for memory-heavy
            stacks), ``>1`` for thread-pool parallelism.
    """
    if not kwargs_list:
        return

    logger.info(f"[local] Running {len(kwargs_list)} {task_type} tasks (max_workers={max_workers})")

    if max_workers <= 1:
        for kw in kwargs_list:
            _invoke_worker(worker_fn, kw, task_type, tracker)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(_invoke_worker, worker_fn, kw, task_type, tracker): kw
                for kw in kwargs_list
            }
            for fut in as_completed(futures):
                fut.result()
