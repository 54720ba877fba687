"""In-memory raster types shared by every pipeline stage.

A :class:`RasterTile` is one Sentinel-2 scene (or a composite of several):
named 2-D bands on a common grid, a per-pixel validity mask, and scalar
metadata.  Tiles are treated as immutable values; every stage returns a new
tile instead of editing one in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from affine import Affine

from s2_marine_pipeline.errors import SchemaMismatchError

# Band order of the Sentinel-2 L1C product; also the explicit composite schema.
S2_BANDS: Tuple[str, ...] = (
    "B1", "B2", "B3", "B4", "B5", "B6", "B7", "B8",
    "B8A", "B9", "B10", "B11", "B12", "QA10", "QA20", "QA60",
)
CLOUDMASK_BAND = "cloudmask"
HIGH_CLOUDMASK_BAND = "highcloudmask"
LOW_CLOUDMASK_BAND = "lowcloudmask"

SR_BAND_SCALE = 1e4  # Reflectance bands are stored as 0 - 10000
NATIVE_RESOLUTION = 10.0


def original_id_from_image_id(image_id: str) -> str:
    """``'COPERNICUS/S2/20170812T003031_..._T55KDV'`` -> ``'20170812T003031_..._T55KDV'``."""
    return image_id[image_id.rfind("/") + 1:]


@dataclass(frozen=True, eq=False)
class CloudProbabilityLayer:
    """Per-pixel cloud probability (0 - 100) for one acquisition."""

    original_id: str
    probability: np.ndarray


@dataclass(frozen=True, eq=False)
class RasterTile:
    """One scene: named bands on a shared grid plus metadata.

    Attributes:
        bands: Band name -> ``(H, W)`` array.  Insertion order is band order.
        valid: ``(H, W)`` boolean validity mask (True = usable data).
        transform: Affine geotransform of the grid, or None for bare arrays.
        crs: CRS of the grid (anything rasterio accepts), or None.
        properties: Scalar metadata.  ``image_id``, ``original_id`` and
            ``solar_azimuth`` are used by the pipeline.
        cloud_probability: Joined companion probability layer, if any.
    """

    bands: Mapping[str, np.ndarray]
    valid: np.ndarray
    transform: Optional[Affine] = None
    crs: Any = None
    properties: Mapping[str, Any] = field(default_factory=dict)
    cloud_probability: Optional[CloudProbabilityLayer] = None

    def __post_init__(self) -> None:
        shape = self.valid.shape
        for name, arr in self.bands.items():
            if arr.shape != shape:
                raise SchemaMismatchError(
                    f"Band {name} has shape {arr.shape}, expected {shape}"
                )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @property
    def shape(self) -> Tuple[int, int]:
        return self.valid.shape

    @property
    def band_names(self) -> List[str]:
        return list(self.bands)

    @property
    def resolution(self) -> float:
        """Ground size of one pixel in CRS units (metres for UTM)."""
        if self.transform is None:
            return NATIVE_RESOLUTION
        return abs(self.transform.a)

    @property
    def image_id(self) -> str:
        return str(self.properties.get("image_id", ""))

    @property
    def original_id(self) -> str:
        return str(self.properties.get("original_id") or original_id_from_image_id(self.image_id))

    @property
    def solar_azimuth(self) -> float:
        try:
            return float(self.properties["solar_azimuth"])
        except KeyError:
            raise SchemaMismatchError(
                f"Tile {self.image_id or '<unnamed>'} has no solar_azimuth property"
            ) from None

    # ------------------------------------------------------------------
    # Band access
    # ------------------------------------------------------------------

    def band(self, name: str) -> np.ndarray:
        try:
            return self.bands[name]
        except KeyError:
            raise SchemaMismatchError(
                f"Tile {self.image_id or '<unnamed>'} is missing band {name!r} "
                f"(has {', '.join(self.bands)})"
            ) from None

    def select(self, names: Iterable[str]) -> "RasterTile":
        """Return a tile holding only *names*, in that order."""
        return replace(self, bands={n: self.band(n) for n in names})

    def with_bands(self, updates: Mapping[str, np.ndarray]) -> "RasterTile":
        """Return a tile with *updates* added or replacing existing bands."""
        bands = dict(self.bands)
        bands.update(updates)
        return replace(self, bands=bands)

    def renamed(self, names: Sequence[str]) -> "RasterTile":
        """Return a tile whose bands are renamed positionally to *names*."""
        if len(names) != len(self.bands):
            raise SchemaMismatchError(
                f"Cannot rename {len(self.bands)} bands to {len(names)} names"
            )
        return replace(self, bands=dict(zip(names, self.bands.values())))

    def with_valid(self, valid: np.ndarray) -> "RasterTile":
        return replace(self, valid=valid)

    def with_cloud_probability(self, layer: Optional[CloudProbabilityLayer]) -> "RasterTile":
        if layer is not None and layer.probability.shape != self.shape:
            raise SchemaMismatchError(
                f"Cloud probability grid {layer.probability.shape} does not match "
                f"tile {self.original_id} grid {self.shape}"
            )
        return replace(self, cloud_probability=layer)

    def same_grid(self, other: "RasterTile") -> bool:
        if self.shape != other.shape:
            return False
        if self.transform is None or other.transform is None:
            return True
        return self.transform.almost_equals(other.transform)


# ---------------------------------------------------------------------------
# Mask helpers
# ---------------------------------------------------------------------------

def mask_or(*masks: np.ndarray) -> np.ndarray:
    """Boolean OR of same-grid masks."""
    out = np.zeros(masks[0].shape, dtype=bool)
    for m in masks:
        out |= m.astype(bool)
    return out


def mask_and(*masks: np.ndarray) -> np.ndarray:
    """Boolean AND of same-grid masks."""
    out = np.ones(masks[0].shape, dtype=bool)
    for m in masks:
        out &= m.astype(bool)
    return out
