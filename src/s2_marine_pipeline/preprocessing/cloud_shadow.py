"""Cloud and cloud-shadow masking from a companion cloud-probability layer.

The mask does not try to find the actual shadow outlines in the image.  It
thresholds the cloud probability, optionally removes small clouds with an
erosion/dilation pair, projects what is left away from the sun for a fixed
distance, and pads the result with a buffer.

Two passes are combined:

- **low cloud**: low probability threshold, no erosion, short projection.
  Catches small clouds, which are assumed to be low with short shadows.
- **high cloud**: high threshold, large erosion, long projection.  Keeps
  only big solid clouds, which tend to be tall and throw long shadows.

Over water every pixel passes the dark-pixel test, so the projected cloud
mask is the effective cloud + shadow mask there.
"""

from __future__ import annotations

from functools import partial
from typing import Optional

import numpy as np
from loguru import logger

from s2_marine_pipeline.config import MaskConfig, MaskPass
from s2_marine_pipeline.errors import MissingCloudProbabilityError
from s2_marine_pipeline.preprocessing.morphology import (
    at_working_scale,
    directional_projection,
    focal_max,
    focal_min,
    scale_factor,
    working_scale,
)
from s2_marine_pipeline.raster.tile import (
    CLOUDMASK_BAND,
    HIGH_CLOUDMASK_BAND,
    LOW_CLOUDMASK_BAND,
    CloudProbabilityLayer,
    RasterTile,
    mask_and,
    mask_or,
)


def _erode_dilate(mask: np.ndarray, radius: float) -> np.ndarray:
    return focal_max(focal_min(mask, radius), radius)


def _project(mask: np.ndarray, angle_deg: float, distance: float) -> np.ndarray:
    return directional_projection(mask, angle_deg, distance)


def shadow_azimuth(solar_azimuth: float) -> float:
    """Direction (degrees CCW from east) from a shadow back towards its cloud."""
    return 90.0 - solar_azimuth


def estimate_cloud_shadow_mask(
    tile: RasterTile,
    cloud_probability: CloudProbabilityLayer,
    prob_threshold: float,
    erosion_radius_m: float,
    shadow_projection_distance_m: float,
    buffer_m: float,
    cfg: Optional[MaskConfig] = None,
) -> np.ndarray:
    """Estimate a boolean cloud + shadow mask for one tile.

    Steps: threshold -> (erode -> dilate) -> project along the anti-solar
    bearing -> buffer.  Erosion and buffer run at a working resolution where
    their radius spans ~4 pixels (at least 20 m); the projection runs at a
    fixed coarse scale.

    Args:
        tile: Scene providing the grid, the NIR band and ``solar_azimuth``.
        cloud_probability: Companion probability layer (0 - 100).
        prob_threshold: Probabilities strictly above this are cloud.
        erosion_radius_m: Remove clouds smaller than this; 0 skips the step.
        shadow_projection_distance_m: How far shadows are projected.
        buffer_m: Final dilation of the mask.
        cfg: Tuning constants; defaults to :class:`MaskConfig`.

    Returns:
        ``(H, W)`` boolean mask, True = cloud or shadow.
    """
    cfg = cfg or MaskConfig()
    res = tile.resolution

    def _factor(distance_m: float) -> int:
        scale = working_scale(distance_m, cfg.approx_pixels, cfg.scale_step_m, cfg.min_scale_m)
        return scale_factor(scale, res)

    is_cloud = cloud_probability.probability > prob_threshold

    if erosion_radius_m > 0:
        factor = _factor(erosion_radius_m)
        radius_px = erosion_radius_m / (factor * res)
        is_cloud = at_working_scale(is_cloud, factor, partial(_erode_dilate, radius=radius_px))

    proj_factor = scale_factor(cfg.projection_scale_m, res)
    proj_px = shadow_projection_distance_m / (proj_factor * res)
    cloud_proj = at_working_scale(
        is_cloud,
        proj_factor,
        partial(_project, angle_deg=shadow_azimuth(tile.solar_azimuth), distance=proj_px),
    )

    if cfg.refine_land_shadows:
        # Only sharpens shadows on land; all water is "dark" and keeps the projection.
        dark_pixels = tile.band(cfg.nir_band) < cfg.nir_dark_threshold
        cloud_or_shadow = mask_or(is_cloud, mask_and(cloud_proj, dark_pixels))
    else:
        cloud_or_shadow = cloud_proj

    buf_factor = _factor(buffer_m)
    buf_px = buffer_m / (buf_factor * res)
    return at_working_scale(cloud_or_shadow, buf_factor, partial(focal_max, radius=buf_px))


def _estimate_pass(tile: RasterTile, layer: CloudProbabilityLayer, p: MaskPass, cfg: MaskConfig) -> np.ndarray:
    return estimate_cloud_shadow_mask(
        tile, layer, p.prob_threshold, p.erosion_m, p.projection_m, p.buffer_m, cfg,
    )


def add_cloud_shadow_mask(tile: RasterTile, cfg: Optional[MaskConfig] = None) -> RasterTile:
    """Add ``cloudmask``, ``highcloudmask`` and ``lowcloudmask`` bands to *tile*.

    Uses the tile's joined cloud-probability layer.  ``cloudmask`` is the
    OR of the two passes.  Mask bands are float32 0/1 so they can be reduced
    alongside the reflectance bands.
    """
    cfg = cfg or MaskConfig()
    layer = tile.cloud_probability
    if layer is None:
        raise MissingCloudProbabilityError([tile.original_id])

    low = _estimate_pass(tile, layer, cfg.low_cloud, cfg)
    high = _estimate_pass(tile, layer, cfg.high_cloud, cfg)
    combined = mask_or(low, high)

    logger.debug(
        f"{tile.original_id}: cloud/shadow mask covers {combined.mean() * 100:.1f}% "
        f"(low {low.mean() * 100:.1f}%, high {high.mean() * 100:.1f}%)"
    )
    return tile.with_bands({
        CLOUDMASK_BAND: combined.astype(np.float32),
        HIGH_CLOUDMASK_BAND: high.astype(np.float32),
        LOW_CLOUDMASK_BAND: low.astype(np.float32),
    })


def apply_cloud_shadow_mask(tile: RasterTile) -> RasterTile:
    """Invalidate cloud/shadow pixels in the reflectance (``B*``) bands.

    Masked samples become NaN.  QA bands and ``cloudmask`` pass through
    untouched so they still reduce over every image in the stack; the
    helper ``highcloudmask`` / ``lowcloudmask`` bands are dropped.
    """
    not_cloud = tile.band(CLOUDMASK_BAND) == 0
    bands = {}
    for name, arr in tile.bands.items():
        if name in (HIGH_CLOUDMASK_BAND, LOW_CLOUDMASK_BAND):
            continue
        if name.startswith("B"):
            bands[name] = np.where(not_cloud, arr.astype(np.float32), np.float32(np.nan))
        else:
            bands[name] = arr
    return tile.select([]).with_bands(bands)
