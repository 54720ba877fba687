"""JobTracker with multi-format report generation."""

from __future__ import annotations

import csv
import json
import os
from datetime import datetime
from typing import List

from loguru import logger

from s2_marine_pipeline.tracking.job_result import JobResult

STATUSES = ("success", "partial", "skipped", "failed", "error")


class JobTracker:
    """Centralized job tracking and reporting."""

    def __init__(self, output_dir: str = "job_reports"):
        self.output_dir = output_dir
        self.results: List[JobResult] = []
        self.start_time = datetime.now()
        os.makedirs(output_dir, exist_ok=True)

    def add_result(self, result: JobResult) -> None:
        self.results.append(result)

    def count(self, status: str) -> int:
        return sum(1 for r in self.results if r.status == status)

    # ------------------------------------------------------------------
    # Report generation
    # ------------------------------------------------------------------

    def save_reports(self) -> None:
        """Save JSON, CSV, text, and failed-jobs reports."""
        timestamp = self.start_time.strftime("%Y%m%d_%H%M%S")

        json_path = os.path.join(self.output_dir, f"job_report_{timestamp}.json")
        with open(json_path, "w") as f:
            json.dump([r.to_dict() for r in self.results], f, indent=2, default=str)

        self._save_csv_summary(os.path.join(self.output_dir, f"job_summary_{timestamp}.csv"))
        self._save_text_report(os.path.join(self.output_dir, f"job_report_{timestamp}.txt"))

        failed = [r for r in self.results if r.status not in ("success", "skipped")]
        if failed:
            failed_path = os.path.join(self.output_dir, f"failed_jobs_{timestamp}.json")
            with open(failed_path, "w") as f:
                json.dump([r.to_dict() for r in failed], f, indent=2, default=str)

        logger.info(f"Reports saved to {self.output_dir}/")

    def _save_csv_summary(self, path: str) -> None:
        fieldnames = [
            "job_id", "task_type", "status", "name", "tile_codes", "image_count",
            "duration_sec", "error_type", "styles_succeeded", "styles_failed",
            "error_message",
        ]
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            for r in self.results:
                writer.writerow({
                    "job_id": r.job_id,
                    "task_type": r.task_type,
                    "status": r.status,
                    "name": r.footprint.get("name"),
                    "tile_codes": r.footprint.get("tile_codes"),
                    "image_count": r.footprint.get("image_count"),
                    "duration_sec": r.duration_sec,
                    "error_type": r.error_type,
                    "styles_succeeded": (
                        ",".join(r.styles_succeeded) if r.styles_succeeded else None
                    ),
                    "styles_failed": (
                        ",".join(r.styles_failed) if r.styles_failed else None
                    ),
                    "error_message": (
                        r.error_message[:100] if r.error_message else None
                    ),
                })

    def _save_text_report(self, path: str) -> None:
        total = len(self.results)
        if total == 0:
            with open(path, "w") as f:
                f.write("No jobs were executed.\n")
            return

        counts = {s: self.count(s) for s in STATUSES}

        durations = [r.duration_sec for r in self.results if r.duration_sec]
        avg_dur = sum(durations) / len(durations) if durations else 0
        max_dur = max(durations) if durations else 0

        with open(path, "w") as f:
            f.write("=" * 60 + "\n")
            f.write("COMPOSITE JOB REPORT\n")
            f.write(f"Generated: {datetime.now():%Y-%m-%d %H:%M:%S}\n")
            f.write("=" * 60 + "\n\n")

            f.write("OVERALL SUMMARY\n")
            f.write("-" * 40 + "\n")
            f.write(f"Total Jobs:        {total}\n")
            for status, cnt in counts.items():
                f.write(f"{status.capitalize() + ':':19s}{cnt} ({cnt / total * 100:.1f}%)\n")
            f.write(f"\nAvg Duration:   {avg_dur:.2f} sec\n")
            f.write(f"Max Duration:   {max_dur:.2f} sec\n")

            failed_jobs = [r for r in self.results if r.status in ("partial", "failed", "error")]
            if failed_jobs:
                f.write("\nFAILED JOBS DETAIL\n")
                f.write("-" * 40 + "\n")
                for r in failed_jobs[:20]:
                    f.write(f"\nJob ID: {r.job_id}\n")
                    f.write(f"  Status: {r.status} | Error Type: {r.error_type or 'unknown'}\n")
                    f.write(f"  Footprint: {r.footprint.get('name')}\n")
                    if r.styles_failed:
                        f.write(f"  Styles failed: {', '.join(r.styles_failed)}\n")
                    f.write(f"  Error: {r.error_message[:200] if r.error_message else 'Unknown'}\n")
                if len(failed_jobs) > 20:
                    f.write(f"\n... and {len(failed_jobs) - 20} more failed jobs\n")

    def print_summary(self) -> None:
        """Log a quick summary."""
        total = len(self.results)
        if total == 0:
            logger.info("No jobs were executed.")
            return

        succeeded = self.count("success")
        partial = self.count("partial")
        skipped = self.count("skipped")
        failed = total - succeeded - partial - skipped

        logger.info(
            f"Job summary: {succeeded} succeeded, {partial} partial, {skipped} skipped, "
            f"{failed} failed out of {total} total"
        )
