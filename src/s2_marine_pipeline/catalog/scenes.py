"""Scene manifest: the local stand-in for an imagery catalog.

A scenes CSV lists one Sentinel-2 acquisition per row::

    image_id,path,probability_path,solar_azimuth,cloudy_pixel_percentage,acquired,asset_size

``path`` points at the multi-band scene GeoTIFF and ``probability_path`` at
its companion cloud-probability GeoTIFF (may be blank).  Relative paths are
resolved against the CSV's directory.  ``acquired`` (``YYYY-MM-DD``) and
``asset_size`` are optional.
"""

from __future__ import annotations

import csv
import os
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Sequence

from loguru import logger

from s2_marine_pipeline.config import CatalogConfig, CompositeConfig
from s2_marine_pipeline.errors import (
    InvalidConfigurationError,
    MissingCloudProbabilityError,
    NoImagesError,
)
from s2_marine_pipeline.raster.io import read_cloud_probability, read_tile
from s2_marine_pipeline.raster.tile import RasterTile, original_id_from_image_id
from s2_marine_pipeline.tiles.naming import tile_code

REQUIRED_COLUMNS = {"image_id", "path"}


@dataclass
class SceneRecord:
    image_id: str
    path: str
    probability_path: Optional[str] = None
    solar_azimuth: Optional[float] = None
    cloudy_pixel_percentage: float = 0.0
    acquired: Optional[date] = None
    asset_size: Optional[float] = None

    @property
    def original_id(self) -> str:
        return original_id_from_image_id(self.image_id)

    @property
    def tile_code(self) -> str:
        return tile_code(self.image_id)

    @property
    def acquisition_date(self) -> date:
        if self.acquired is not None:
            return self.acquired
        oid = self.original_id
        return date(int(oid[0:4]), int(oid[4:6]), int(oid[6:8]))


def _optional_float(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


def _resolve(base: str, value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    value = value.strip()
    return value if os.path.isabs(value) else os.path.join(base, value)


def read_scenes_csv(path: str) -> Dict[str, SceneRecord]:
    """Read a scenes CSV into ``{image_id: SceneRecord}`` (file order kept)."""
    base = os.path.dirname(os.path.abspath(path))
    scenes: Dict[str, SceneRecord] = {}
    with open(path, newline="") as f:
        reader = csv.DictReader(f)
        missing = REQUIRED_COLUMNS - set(reader.fieldnames or [])
        if missing:
            raise InvalidConfigurationError(f"Scenes CSV is missing columns: {sorted(missing)}")
        for row in reader:
            acquired = (row.get("acquired") or "").strip()
            scenes[row["image_id"]] = SceneRecord(
                image_id=row["image_id"],
                path=_resolve(base, row["path"]),
                probability_path=_resolve(base, row.get("probability_path")),
                solar_azimuth=_optional_float(row.get("solar_azimuth")),
                cloudy_pixel_percentage=_optional_float(row.get("cloudy_pixel_percentage")) or 0.0,
                acquired=date.fromisoformat(acquired) if acquired else None,
                asset_size=_optional_float(row.get("asset_size")),
            )
    logger.debug(f"Read {len(scenes)} scenes from {path}")
    return scenes


def select_scenes(
    scenes: Dict[str, SceneRecord],
    tile: str,
    cfg: Optional[CatalogConfig] = None,
) -> List[SceneRecord]:
    """Filter the manifest to the clear acquisitions of one tile.

    Keeps scenes of *tile* with cloud cover strictly below
    ``max_cloudy_pixel_percentage``, acquired in ``[start_date, end_date)``
    and, with ``remove_small_images``, an asset size strictly above
    ``min_asset_size`` (small assets are slivers at the swath edge).
    """
    cfg = cfg or CatalogConfig()
    start = date.fromisoformat(cfg.start_date)
    end = date.fromisoformat(cfg.end_date)

    selected = []
    for rec in scenes.values():
        if rec.tile_code != tile:
            continue
        if not rec.cloudy_pixel_percentage < cfg.max_cloudy_pixel_percentage:
            continue
        if not start <= rec.acquisition_date < end:
            continue
        if cfg.remove_small_images and not (rec.asset_size or 0) > cfg.min_asset_size:
            continue
        selected.append(rec)

    selected.sort(key=lambda r: r.image_id)
    logger.info(
        f"Tile {tile}: {len(selected)} scenes with cloud < {cfg.max_cloudy_pixel_percentage}% "
        f"between {cfg.start_date} and {cfg.end_date}"
    )
    return selected


def distinct_dates(records: Sequence[SceneRecord]) -> List[str]:
    """Sorted distinct acquisition dates as ``YYYY-MM-DD``."""
    return sorted({r.acquisition_date.isoformat() for r in records})


def resolve_stack(
    image_ids: Sequence[str],
    scenes: Dict[str, SceneRecord],
    cfg: Optional[CompositeConfig] = None,
    with_probability: Optional[bool] = True,
) -> List[SceneRecord]:
    """Manifest records of the scenes one footprint will actually composite.

    Ids missing from the manifest are skipped with a warning.  When
    probability layers are needed, scenes without one either fail the
    footprint (``on_missing_probability: error``) or are dropped with a
    warning (``drop``).  ``with_probability=None`` needs them only when
    more than one scene is left, since a single scene is never masked.

    Raises:
        NoImagesError: No requested id is in the manifest, or all were
            dropped.
        MissingCloudProbabilityError: Probability layers are missing and
            the policy is ``error``.
    """
    cfg = cfg or CompositeConfig()

    records = []
    for image_id in image_ids:
        rec = scenes.get(image_id)
        if rec is None:
            logger.warning(f"Image {image_id} is not in the scene manifest; skipping")
            continue
        records.append(rec)
    if not records:
        raise NoImagesError(f"None of {len(image_ids)} requested images are in the manifest")

    if with_probability is None:
        with_probability = len(records) > 1
    if with_probability:
        missing = [r.original_id for r in records if r.probability_path is None]
        if missing:
            if cfg.on_missing_probability != "drop":
                raise MissingCloudProbabilityError(missing)
            logger.warning(
                f"Dropping {len(missing)} images without cloud probability: {', '.join(missing)}"
            )
            records = [r for r in records if r.probability_path is not None]
            if not records:
                raise NoImagesError("Every image lacked cloud probability data")
    return records


def read_stack(
    records: Sequence[SceneRecord],
    cfg: Optional[CompositeConfig] = None,
    with_probability: bool = True,
) -> List[RasterTile]:
    """Read the scenes of *records*, each joined with its probability layer.

    The join key is the acquisition's ``original_id``.
    """
    cfg = cfg or CompositeConfig()
    tiles = []
    for rec in records:
        tile = read_tile(
            rec.path,
            rec.image_id,
            solar_azimuth=rec.solar_azimuth,
            edge_mask_bands=cfg.edge_mask_bands,
        )
        if with_probability:
            layer = read_cloud_probability(rec.probability_path, rec.original_id)
            tile = tile.with_cloud_probability(layer)
        tiles.append(tile)
    return tiles
