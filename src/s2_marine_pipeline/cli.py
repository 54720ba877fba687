"""Click CLI: ``s2-marine`` command group."""

from __future__ import annotations

import click
from loguru import logger

from s2_marine_pipeline.config import load_config
from s2_marine_pipeline.errors import InvalidConfigurationError, NoImagesError, PipelineError
from s2_marine_pipeline.exit_codes import ExitCode, exit_code_from_tracker
from s2_marine_pipeline.logging import bind_run_context, new_run_id, setup_logging


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------

@click.group(invoke_without_command=True)
@click.version_option(package_name="s2-marine-pipeline", prog_name="s2-marine")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True),
              help="Path to pipeline YAML config.")
@click.option("--log-level", default="INFO",
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--log-format", default="text",
              type=click.Choice(["text", "json"]),
              help="Log output format.")
@click.option("--run-id", default=None, help="Override auto-generated run ID.")
@click.option("--show-config", is_flag=True, help="Print resolved config as YAML and exit.")
@click.pass_context
def s2_marine(ctx: click.Context, config_path, log_level, log_format, run_id, show_config):
    """Sentinel-2 marine composite pipeline."""
    ctx.ensure_object(dict)

    run_id = run_id or new_run_id()
    ctx.obj["run_id"] = run_id
    bind_run_context(run_id)
    setup_logging(level=log_level, fmt=log_format)

    ctx.obj["cfg"] = load_config(config_path)

    if show_config:
        import dataclasses
        import yaml as _yaml
        click.echo(_yaml.dump(dataclasses.asdict(ctx.obj["cfg"]), default_flow_style=False))
        ctx.exit(ExitCode.SUCCESS)
        return

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# select
# ---------------------------------------------------------------------------

@s2_marine.command()
@click.argument("scenes_csv", type=click.Path(exists=True))
@click.option("--tile", required=True, help="Sentinel-2 tile code, e.g. 55KDV.")
@click.option("--max-cloud", type=float, default=None,
              help="Keep scenes with cloudy pixel percentage below this.")
@click.option("--start", default=None, help="First acquisition date (YYYY-MM-DD), inclusive.")
@click.option("--end", default=None, help="Last acquisition date (YYYY-MM-DD), exclusive.")
@click.option("--remove-small-images", is_flag=True,
              help="Drop small swath-edge fragments.")
@click.option("-o", "--output", default=None, help="Write selected image ids here, one per line.")
@click.pass_context
def select(ctx, scenes_csv, tile, max_cloud, start, end, remove_small_images, output):
    """List the clear acquisitions of one tile."""
    from s2_marine_pipeline.steps.select import run_select

    cfg = ctx.obj["cfg"]
    if max_cloud is not None:
        cfg.catalog.max_cloudy_pixel_percentage = max_cloud
    if start:
        cfg.catalog.start_date = start
    if end:
        cfg.catalog.end_date = end
    if remove_small_images:
        cfg.catalog.remove_small_images = True

    try:
        image_ids = run_select(scenes_csv, tile, cfg, output=output)
    except InvalidConfigurationError as exc:
        logger.error(f"Invalid scene manifest: {exc}")
        ctx.exit(ExitCode.BAD_INPUT)
        return
    if not output:
        for image_id in image_ids:
            click.echo(image_id)
    ctx.exit(ExitCode.SUCCESS if image_ids else ExitCode.NO_WORK)


# ---------------------------------------------------------------------------
# composite
# ---------------------------------------------------------------------------

_STATUS_EXIT = {
    "success": ExitCode.SUCCESS,
    "skipped": ExitCode.NO_WORK,
    "partial": ExitCode.PARTIAL_FAILURE,
    "failed": ExitCode.TOTAL_FAILURE,
}


@s2_marine.command()
@click.argument("image_ids", nargs=-1, required=True)
@click.option("--scenes", "scenes_csv", default=None, type=click.Path(exists=True),
              help="Scene manifest CSV (overrides catalog.scenes_csv).")
@click.option("--styles", default=None,
              help="Comma-separated colour grades (default: export.styles).")
@click.option("--basename", default=None, help="Export file name prefix.")
@click.option("--out", "output_dir", default=None, help="Output directory.")
@click.option("--include-cloudmask", is_flag=True,
              help="Append the cloud mask band to each export.")
@click.option("--skip-existing", is_flag=True, help="Skip when every output already exists.")
@click.pass_context
def composite(ctx, image_ids, scenes_csv, styles, basename, output_dir,
              include_cloudmask, skip_existing):
    """Composite IMAGE_IDS into one footprint and export each colour grade."""
    from s2_marine_pipeline.steps.composite import run_composite

    cfg = ctx.obj["cfg"]
    style_list = [s.strip() for s in styles.split(",") if s.strip()] if styles else None

    try:
        result = run_composite(
            list(image_ids), cfg,
            scenes_csv=scenes_csv,
            styles=style_list,
            basename=basename,
            output_dir=output_dir,
            include_cloudmask=include_cloudmask or None,
            skip_existing=skip_existing,
        )
    except InvalidConfigurationError as exc:
        logger.error(f"Invalid configuration: {exc}")
        ctx.exit(ExitCode.BAD_INPUT)
        return
    except NoImagesError as exc:
        logger.error(str(exc))
        ctx.exit(ExitCode.NO_WORK)
        return
    except PipelineError as exc:
        logger.error(f"Composite failed: {exc}")
        ctx.exit(ExitCode.TOTAL_FAILURE)
        return

    for path in result.get("outputs") or []:
        click.echo(path)
    ctx.exit(_STATUS_EXIT.get(result["status"], ExitCode.TOTAL_FAILURE))


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------

@s2_marine.command()
@click.argument("jobs_yaml", type=click.Path(exists=True))
@click.option("--scenes", "scenes_csv", default=None, type=click.Path(exists=True),
              help="Scene manifest CSV (overrides catalog.scenes_csv).")
@click.option("--out", "output_dir", default=None, help="Output directory.")
@click.option("--max-workers", type=int, default=1, help="Footprints processed in parallel.")
@click.option("--report-dir", default="job_reports")
@click.option("--skip-existing", is_flag=True, help="Skip footprints whose outputs all exist.")
@click.option("--dry-run", is_flag=True, help="List the jobs without running them.")
@click.pass_context
def run(ctx, jobs_yaml, scenes_csv, output_dir, max_workers, report_dir, skip_existing, dry_run):
    """Run every footprint job listed in JOBS_YAML."""
    from s2_marine_pipeline.steps.composite import run_composite_jobs

    cfg = ctx.obj["cfg"]
    try:
        tracker = run_composite_jobs(
            jobs_yaml, cfg,
            scenes_csv=scenes_csv,
            output_dir=output_dir,
            skip_existing=skip_existing,
            report_dir=report_dir,
            max_workers=max_workers,
            dry_run=dry_run,
        )
    except InvalidConfigurationError as exc:
        logger.error(f"Invalid jobs file: {exc}")
        ctx.exit(ExitCode.BAD_INPUT)
        return

    if dry_run:
        ctx.exit(ExitCode.SUCCESS)
        return
    if not tracker.results:
        ctx.exit(ExitCode.NO_WORK)
        return
    if all(r.status == "skipped" for r in tracker.results):
        ctx.exit(ExitCode.NO_WORK)
        return
    ctx.exit(exit_code_from_tracker(tracker))


def main():
    s2_marine(obj={})


if __name__ == "__main__":
    main()
