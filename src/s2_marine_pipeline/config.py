"""YAML config loading with dataclass defaults.

Every empirically tuned constant of the pipeline lives here so it can be
changed per deployment without code changes.  The defaults reproduce the
reference marine composites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from s2_marine_pipeline.raster.tile import S2_BANDS


@dataclass
class MaskPass:
    """Parameters for one cloud/shadow estimation pass."""

    prob_threshold: float
    erosion_m: float
    projection_m: float
    buffer_m: float


@dataclass
class MaskConfig:
    # Low probability picks up small clouds; they are assumed low with short shadows.
    low_cloud: MaskPass = field(
        default_factory=lambda: MaskPass(prob_threshold=40, erosion_m=0, projection_m=400, buffer_m=150)
    )
    # High probability + large erosion isolates big, tall clouds with long shadows.
    high_cloud: MaskPass = field(
        default_factory=lambda: MaskPass(prob_threshold=80, erosion_m=300, projection_m=1500, buffer_m=300)
    )
    nir_band: str = "B8"
    nir_dark_threshold: float = 1500.0  # 0.15 reflectance
    projection_scale_m: float = 100.0
    approx_pixels: int = 4
    scale_step_m: float = 10.0
    min_scale_m: float = 20.0
    refine_land_shadows: bool = False


@dataclass
class GlintConfig:
    nir_band: str = "B8"
    swir_band: str = "B11"
    shallow_offset: float = 200.0
    clamp_max: float = 10000.0
    land_threshold: float = 600.0
    land_atmos_offset: float = 280.0
    band_scales: Dict[str, float] = field(
        default_factory=lambda: {"B1": 0.75, "B2": 0.75, "B3": 0.9, "B4": 1.0}
    )


@dataclass
class CompositeConfig:
    band_names: List[str] = field(default_factory=lambda: list(S2_BANDS))
    edge_mask_bands: List[str] = field(default_factory=lambda: ["B8A", "B9"])
    on_missing_probability: str = "error"  # "error" | "drop"
    max_workers: int = 1


@dataclass
class ExportConfig:
    basename: str = "AU_AIMS_Sentinel2-marine_V1"
    output_dir: str = "output"
    styles: List[str] = field(default_factory=lambda: ["TrueColour", "DeepFalse"])
    scale_m: float = 10.0
    include_cloudmask: bool = False


@dataclass
class CatalogConfig:
    scenes_csv: Optional[str] = None
    max_cloudy_pixel_percentage: float = 1.0
    start_date: str = "2015-01-01"
    end_date: str = "2021-09-20"
    remove_small_images: bool = False
    min_asset_size: float = 500e6


@dataclass
class GridConfig:
    path: Optional[str] = None
    search_bbox: Optional[List[float]] = field(default_factory=lambda: [109.0, -33.0, 158.0, -7.0])


@dataclass
class PipelineConfig:
    mask: MaskConfig = field(default_factory=MaskConfig)
    glint: GlintConfig = field(default_factory=GlintConfig)
    composite: CompositeConfig = field(default_factory=CompositeConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    grid: GridConfig = field(default_factory=GridConfig)


def _update(target: Any, raw: Dict[str, Any], keys: tuple) -> None:
    for key in keys:
        if raw.get(key) is not None:
            setattr(target, key, raw[key])


def load_config(path: Optional[str] = None) -> PipelineConfig:
    """Load config from YAML, falling back to defaults for missing keys."""
    if path is None:
        # Try default location
        default = Path("config.yaml")
        if not default.exists():
            logger.warning("No config file found; using built-in defaults")
            return PipelineConfig()
        path = str(default)

    logger.info(f"Using config: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    cfg = PipelineConfig()

    mk = raw.get("mask", {})
    for pass_name in ("low_cloud", "high_cloud"):
        _update(
            getattr(cfg.mask, pass_name),
            mk.get(pass_name, {}),
            ("prob_threshold", "erosion_m", "projection_m", "buffer_m"),
        )
    _update(cfg.mask, mk, (
        "nir_band", "nir_dark_threshold", "projection_scale_m", "approx_pixels",
        "scale_step_m", "min_scale_m", "refine_land_shadows",
    ))

    gl = raw.get("glint", {})
    _update(cfg.glint, gl, (
        "nir_band", "swir_band", "shallow_offset", "clamp_max",
        "land_threshold", "land_atmos_offset",
    ))
    if gl.get("band_scales"):
        cfg.glint.band_scales = {str(k): float(v) for k, v in gl["band_scales"].items()}

    _update(cfg.composite, raw.get("composite", {}), (
        "band_names", "edge_mask_bands", "on_missing_probability", "max_workers",
    ))
    _update(cfg.export, raw.get("export", {}), (
        "basename", "output_dir", "styles", "scale_m", "include_cloudmask",
    ))
    _update(cfg.catalog, raw.get("catalog", {}), (
        "scenes_csv", "max_cloudy_pixel_percentage", "start_date", "end_date",
        "remove_small_images", "min_asset_size",
    ))

    gr = raw.get("grid", {})
    _update(cfg.grid, gr, ("path",))
    if "search_bbox" in gr:
        cfg.grid.search_bbox = gr["search_bbox"]

    return cfg
