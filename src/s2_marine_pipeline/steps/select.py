"""Select step: pick the clear acquisitions of one tile from the manifest."""

from __future__ import annotations

from typing import List, Optional

from loguru import logger

from s2_marine_pipeline.catalog.scenes import distinct_dates, read_scenes_csv, select_scenes
from s2_marine_pipeline.config import PipelineConfig


def run_select(
    scenes_csv: str,
    tile: str,
    cfg: PipelineConfig,
    *,
    output: Optional[str] = None,
) -> List[str]:
    """Return (and optionally write, one per line) the selected image ids."""
    scenes = read_scenes_csv(scenes_csv)
    selected = select_scenes(scenes, tile, cfg.catalog)

    dates = distinct_dates(selected)
    if dates:
        logger.info(f"Tile {tile}: {len(dates)} distinct dates, {dates[0]} to {dates[-1]}")

    image_ids = [r.image_id for r in selected]
    if output:
        with open(output, "w") as f:
            for image_id in image_ids:
                f.write(image_id + "\n")
        logger.info(f"Wrote {len(image_ids)} image ids to {output}")
    return image_ids
