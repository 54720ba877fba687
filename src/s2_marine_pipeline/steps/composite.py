"""Composite step: one footprint's image stack -> colour-graded GeoTIFFs.

A footprint job loads its scenes, removes sun glint, composites them
(cloud-masked when there is more than one image), clips to the tiling-grid
footprint, grades the composite once per style and writes one 8-bit GeoTIFF
per style.  Batch runs fan footprint jobs out through the local executor.
"""

from __future__ import annotations

import os
import time
from typing import Any, Dict, List, Optional, Sequence

import yaml
from loguru import logger

from s2_marine_pipeline.catalog.scenes import SceneRecord, read_scenes_csv, read_stack, resolve_stack
from s2_marine_pipeline.compositing.compositor import composite
from s2_marine_pipeline.config import PipelineConfig
from s2_marine_pipeline.errors import InvalidConfigurationError, NoImagesError, PipelineError
from s2_marine_pipeline.grading.colour_grades import check_style_list, describe, grade_styles
from s2_marine_pipeline.preprocessing.sun_glint import remove_sun_glint
from s2_marine_pipeline.raster.io import write_uint8_geotiff
from s2_marine_pipeline.tiles.geometry import footprint_mask, load_tiling_grid, resolve_tiles_geometry
from s2_marine_pipeline.tiles.naming import date_range_token, export_name, unique_tile_codes
from s2_marine_pipeline.tracking import JobTracker


def output_paths(
    image_ids: Sequence[str],
    styles: Sequence[str],
    basename: str,
    output_dir: str,
) -> Dict[str, str]:
    """``{style: <output_dir>/<export name>.tif}`` for one footprint."""
    return {
        style: os.path.join(output_dir, export_name(basename, style, image_ids) + ".tif")
        for style in styles
    }


def footprint_name(basename: str, image_ids: Sequence[str]) -> str:
    codes = "-".join(unique_tile_codes(image_ids))
    return f"{basename}_{codes}_{date_range_token(image_ids)}"


# ------------------------------------
# Single footprint
# ------------------------------------

def run_composite(
    image_ids: Sequence[str],
    cfg: PipelineConfig,
    *,
    scenes: Optional[Dict[str, SceneRecord]] = None,
    scenes_csv: Optional[str] = None,
    styles: Optional[List[str]] = None,
    basename: Optional[str] = None,
    output_dir: Optional[str] = None,
    include_cloudmask: Optional[bool] = None,
    grid: Optional[Dict[str, object]] = None,
    skip_existing: bool = False,
) -> Dict[str, Any]:
    """Build and export every requested colour grade for one footprint.

    The footprint is made of the requested images that are actually
    usable: ids missing from the manifest, and scenes dropped for lack of
    probability data, are left out of both the composite and the export
    name.  When a single scene is left it is exported unmasked.

    Args:
        image_ids: Acquisition ids forming the footprint's stack.
        cfg: Pipeline configuration; keyword arguments override ``cfg.export``.
        scenes: Scene manifest, or None to read *scenes_csv*.
        scenes_csv: Scene manifest path (defaults to ``cfg.catalog.scenes_csv``).
        styles: Colour grade names.
        basename: Export file name prefix.
        output_dir: Directory for the GeoTIFFs.
        include_cloudmask: Append the composite's cloud mask to each export.
        grid: Tiling grid; loaded from ``cfg.grid.path`` when None and a
            path is configured.  Without a grid no footprint clipping is done.
        skip_existing: Return ``"skipped"`` when every output already exists.

    Returns:
        Result dict with ``status`` (``success`` / ``partial`` / ``failed``
        / ``skipped``), ``footprint``, ``outputs`` and the per-style
        success / failure lists.

    Raises:
        InvalidConfigurationError: *styles* is not a list, or an image id
            has no tile code or acquisition month.
        NoImagesError: *image_ids* is empty or none can be loaded.
        DegenerateGeometryError: The tile codes resolve to no footprint.
        MissingCloudProbabilityError: Probability data is missing and the
            policy is ``error``.
    """
    styles = cfg.export.styles if styles is None else styles
    check_style_list(styles)
    basename = basename or cfg.export.basename
    output_dir = output_dir or cfg.export.output_dir
    include_mask = cfg.export.include_cloudmask if include_cloudmask is None else include_cloudmask

    if not image_ids:
        raise NoImagesError("Composite job has no image ids")
    name = footprint_name(basename, image_ids)

    if scenes is None:
        scenes_csv = scenes_csv or cfg.catalog.scenes_csv
        if not scenes_csv:
            raise InvalidConfigurationError("No scene manifest given (catalog.scenes_csv)")
        scenes = read_scenes_csv(scenes_csv)

    records = resolve_stack(image_ids, scenes, cfg.composite, with_probability=None)
    used_ids = [r.image_id for r in records]
    if len(used_ids) < len(image_ids):
        name = footprint_name(basename, used_ids)
        logger.warning(f"{name}: compositing {len(used_ids)} of {len(image_ids)} requested images")

    footprint_info = {
        "name": name,
        "tile_codes": "-".join(unique_tile_codes(used_ids)),
        "image_count": len(used_ids),
        "requested_count": len(image_ids),
    }
    paths = output_paths(used_ids, styles, basename, output_dir)

    if skip_existing and paths and all(os.path.exists(p) for p in paths.values()):
        logger.info(f"{name}: all {len(paths)} outputs exist; skipping")
        return {
            "status": "skipped",
            "footprint": footprint_info,
            "outputs": list(paths.values()),
        }

    # Resolve the footprint before reading rasters, so bad tile codes fail fast.
    footprint = None
    if grid is None and cfg.grid.path:
        grid = load_tiling_grid(cfg.grid.path)
    if grid is not None:
        footprint = resolve_tiles_geometry(used_ids, grid, cfg.grid.search_bbox)

    apply_mask = len(records) > 1
    t0 = time.perf_counter()
    tiles = read_stack(records, cfg.composite, with_probability=apply_mask)
    tiles = [remove_sun_glint(t, cfg.glint) for t in tiles]
    comp = composite(tiles, apply_mask, cfg.composite, cfg.mask)
    logger.debug(f"{name}: composite of {len(tiles)} images in {time.perf_counter() - t0:.1f}s")

    if footprint is not None:
        comp = comp.with_valid(comp.valid & footprint_mask(footprint, comp))

    graded, errors = grade_styles(comp, styles, include_mask=include_mask)

    written: List[str] = []
    for style, image in graded.items():
        logger.debug(f"{name}: {style} = {describe(style)}")
        try:
            write_uint8_geotiff(
                paths[style],
                image.to_uint8(),
                image.transform,
                image.crs,
                descriptions=image.channel_names,
                scale_m=cfg.export.scale_m,
            )
            written.append(style)
        except (OSError, PipelineError) as exc:
            logger.error(f"{name}: failed to write {style}: {exc}")
            errors[style] = str(exc)

    if not errors:
        status = "success"
    elif written:
        status = "partial"
    else:
        status = "failed"

    return {
        "status": status,
        "footprint": footprint_info,
        "outputs": [paths[s] for s in written],
        "styles_succeeded": written,
        "styles_failed": list(errors),
        "style_errors": errors or None,
        "error_message": "; ".join(f"{s}: {e}" for s, e in errors.items()) or None,
        "error_type": "style" if errors else None,
    }


# ------------------------------------
# Batch execution
# ------------------------------------

def read_jobs_yaml(path: str) -> List[Dict[str, Any]]:
    """Read a jobs file: ``jobs: [{image_ids: [...], styles?, basename?}, ...]``."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    jobs = raw.get("jobs") if isinstance(raw, dict) else None
    if not isinstance(jobs, list):
        raise InvalidConfigurationError(f"{path}: expected a top-level 'jobs' list")
    for i, job in enumerate(jobs):
        if not isinstance(job, dict) or not isinstance(job.get("image_ids"), list):
            raise InvalidConfigurationError(f"{path}: job {i} needs an 'image_ids' list")
    return jobs


def run_composite_jobs(
    jobs_yaml: str,
    cfg: PipelineConfig,
    *,
    scenes_csv: Optional[str] = None,
    output_dir: Optional[str] = None,
    skip_existing: bool = False,
    report_dir: str = "job_reports",
    max_workers: int = 1,
    dry_run: bool = False,
) -> JobTracker:
    """Run every footprint job in *jobs_yaml* locally.

    Each job is isolated: a failure is recorded in the tracker and the
    remaining jobs still run.

    Returns the :class:`JobTracker` with all results.
    """
    from s2_marine_pipeline.execution.local_executor import run_local_tasks

    jobs = read_jobs_yaml(jobs_yaml)
    tracker = JobTracker(report_dir)
    if not jobs:
        logger.warning("No jobs to process")
        return tracker

    scenes_csv = scenes_csv or cfg.catalog.scenes_csv
    if not scenes_csv:
        raise InvalidConfigurationError("No scene manifest given (catalog.scenes_csv)")
    scenes = read_scenes_csv(scenes_csv)
    grid = load_tiling_grid(cfg.grid.path) if cfg.grid.path else None

    kwargs_list: List[Dict[str, Any]] = []
    for job in jobs:
        basename = job.get("basename") or cfg.export.basename
        kwargs_list.append({
            "image_ids": job["image_ids"],
            "cfg": cfg,
            "scenes": scenes,
            "styles": job.get("styles"),
            "basename": basename,
            "output_dir": output_dir,
            "grid": grid,
            "skip_existing": skip_existing,
            "job_name": job.get("name"),
        })

    if dry_run:
        for kw in kwargs_list:
            logger.info(f"[dry-run] {kw['job_name'] or kw['image_ids']}: {len(kw['image_ids'])} images")
        return tracker

    run_local_tasks(run_composite, "COMPOSITE", kwargs_list, tracker, max_workers=max_workers)
    tracker.print_summary()
    tracker.save_reports()
    return tracker
