"""Pixelwise median compositing of a same-footprint tile stack.

The output band schema is explicit: the sensor band list, plus a trailing
``cloudmask`` band when the stack was cloud-masked.  Single-image stacks are
not masked (there is nothing to fill the holes with) and keep the same band
list without ``cloudmask``.  Downstream grading relies on these names.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

import bottleneck as bn
import numpy as np
from loguru import logger

from s2_marine_pipeline.config import CompositeConfig, MaskConfig
from s2_marine_pipeline.errors import (
    MissingCloudProbabilityError,
    NoImagesError,
    SchemaMismatchError,
)
from s2_marine_pipeline.preprocessing.cloud_shadow import (
    add_cloud_shadow_mask,
    apply_cloud_shadow_mask,
)
from s2_marine_pipeline.raster.tile import CLOUDMASK_BAND, RasterTile


def _check_stack(tiles: Sequence[RasterTile], band_names: Sequence[str]) -> None:
    first = tiles[0]
    for t in tiles:
        if not first.same_grid(t):
            raise SchemaMismatchError(
                f"Tile {t.original_id} grid {t.shape} does not match "
                f"{first.original_id} grid {first.shape}"
            )
        missing = [b for b in band_names if b not in t.bands]
        if missing:
            raise SchemaMismatchError(
                f"Tile {t.original_id} is missing bands: {', '.join(missing)}"
            )


def _mask_tile(tile: RasterTile, mask_cfg: Optional[MaskConfig]) -> RasterTile:
    return apply_cloud_shadow_mask(add_cloud_shadow_mask(tile, mask_cfg))


def _median_band(tiles: Sequence[RasterTile], name: str) -> np.ndarray:
    stack = np.stack([
        np.where(t.valid, t.band(name).astype(np.float32), np.float32(np.nan))
        for t in tiles
    ])
    return bn.nanmedian(stack, axis=0).astype(np.float32)


def composite(
    tiles: Sequence[RasterTile],
    apply_mask: bool,
    cfg: Optional[CompositeConfig] = None,
    mask_cfg: Optional[MaskConfig] = None,
) -> RasterTile:
    """Reduce a tile stack to one median composite tile.

    With *apply_mask*, each tile is cloud/shadow masked first (in parallel
    over ``cfg.max_workers`` threads) and only unmasked samples count
    towards a pixel's median.  Without it, a single tile passes straight
    through (bands copied unchanged, renamed to the schema) and larger
    stacks are reduced unmasked.

    Args:
        tiles: Tiles sharing one grid; order does not affect the result.
        apply_mask: Cloud-mask before reducing.
        cfg: Band schema and worker count.
        mask_cfg: Cloud mask tuning.

    Returns:
        Composite :class:`RasterTile`.  Reflectance pixels with no valid
        sample are NaN and invalid.

    Raises:
        NoImagesError: *tiles* is empty.
        SchemaMismatchError: A tile lacks a schema band or is on another grid.
        MissingCloudProbabilityError: Masking requested for tiles without a
            probability layer.
    """
    cfg = cfg or CompositeConfig()
    band_names: List[str] = list(cfg.band_names)
    if not tiles:
        raise NoImagesError("Cannot composite an empty tile collection")
    _check_stack(tiles, band_names)

    ids = sorted(t.original_id for t in tiles)
    properties = {
        "image_ids": sorted(t.image_id for t in tiles),
        "original_ids": ids,
        "image_count": len(tiles),
        "masked": apply_mask,
    }

    if not apply_mask and len(tiles) == 1:
        only = tiles[0]
        logger.debug(f"Single image {only.original_id}: passing through unmasked")
        return RasterTile(
            bands={name: only.band(name) for name in band_names},
            valid=only.valid.copy(),
            transform=only.transform,
            crs=only.crs,
            properties=properties,
        )

    out_names = list(band_names)
    if apply_mask:
        missing = [t.original_id for t in tiles if t.cloud_probability is None]
        if missing:
            raise MissingCloudProbabilityError(missing)
        workers = max(1, cfg.max_workers)
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                tiles = list(pool.map(lambda t: _mask_tile(t, mask_cfg), tiles))
        else:
            tiles = [_mask_tile(t, mask_cfg) for t in tiles]
        out_names.append(CLOUDMASK_BAND)

    logger.info(f"Median of {len(tiles)} images over {len(out_names)} bands")
    bands = {name: _median_band(tiles, name) for name in out_names}

    reflectance = [bands[n] for n in band_names if n.startswith("B")]
    if reflectance:
        valid = np.all(np.isfinite(np.stack(reflectance)), axis=0)
    else:
        valid = np.any(np.stack([t.valid for t in tiles]), axis=0)

    first = tiles[0]
    return RasterTile(
        bands=bands,
        valid=valid,
        transform=first.transform,
        crs=first.crs,
        properties=properties,
    )
