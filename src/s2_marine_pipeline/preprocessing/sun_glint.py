"""Sun glint and land haze removal for the visible bands.

The glint estimate comes from the NIR band (B8): it tracks wave glint in the
visible bands closely, is at 10 m, and barely penetrates water.  In very
shallow water B8 starts to see the bottom, so the SWIR band (B11), which does
not, is used to tone the correction down there.  Over land (bright NIR) the
estimate is replaced by a flat atmospheric offset so land is not blacked out.

Known artifact: cloud edges go dark, because clouds are very bright in NIR
and the full correction is subtracted next to them.  Clouds are expected to
be masked separately.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from s2_marine_pipeline.config import GlintConfig
from s2_marine_pipeline.raster.tile import RasterTile


def sun_glint_correction(tile: RasterTile, cfg: Optional[GlintConfig] = None) -> np.ndarray:
    """Per-pixel amount to subtract from the visible bands (before band scaling)."""
    cfg = cfg or GlintConfig()
    nir = tile.band(cfg.nir_band).astype(np.float32)
    swir = tile.band(cfg.swir_band).astype(np.float32)

    shallow_correct = np.clip((nir - swir) - cfg.shallow_offset, 0, cfg.clamp_max)
    raw_sun_glint = nir - shallow_correct

    # Land/sea split on NIR alone; mangroves come out black if the combined estimate is used.
    return np.where(nir > cfg.land_threshold, np.float32(cfg.land_atmos_offset), raw_sun_glint)


def remove_sun_glint(tile: RasterTile, cfg: Optional[GlintConfig] = None) -> RasterTile:
    """Return a new tile with glint removed from the visible bands.

    Only the bands named in ``cfg.band_scales`` change, each by
    ``correction * scale``; all other bands pass through unchanged.
    """
    cfg = cfg or GlintConfig()
    correction = sun_glint_correction(tile, cfg)
    updates = {
        name: tile.band(name).astype(np.float32) - correction * np.float32(scale)
        for name, scale in cfg.band_scales.items()
    }
    return tile.with_bands(updates)
