"""Named contrast recipes ("colour grades") for display and export.

Each grade picks one to three bands, scales them from 0 - 10000 to 0 - 1,
and stretches each with :func:`contrast_curve`.

- ``TrueColour``: faithful true colour, widest range.
- ``DeepMarine``: tighter range for deeper features; red is de-emphasised
  because it only carries shallow detail and is noisy with residual waves.
- ``DeepFalse``: green / blue / ultra-violet (B1) false colour; best deep
  contrast in clear water.
- ``Shallow``: SWIR / NIR / red-edge false colour that picks out dry reef,
  cays and islands.
- ``ReefTop``: near-binary threshold on smoothed red, approximating reef tops
  (~5 m depth) in clear oceanic water.  Threshold sits just above the wave
  noise floor of the Coral Sea.
- ``DeepFeature``: smoothed blue minus smoothed green, grey scale.  Aimed at
  deep seagrass; experimental and not well tuned.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from s2_marine_pipeline.errors import InvalidConfigurationError, PipelineError
from s2_marine_pipeline.grading.contrast import contrast_curve, to_uint8
from s2_marine_pipeline.preprocessing.morphology import focal_mean
from s2_marine_pipeline.raster.tile import CLOUDMASK_BAND, SR_BAND_SCALE, RasterTile

RGB_CHANNELS = ("vis-red", "vis-green", "vis-blue")


class ColourGrade(str, Enum):
    TRUE_COLOUR = "TrueColour"
    DEEP_MARINE = "DeepMarine"
    DEEP_FALSE = "DeepFalse"
    SHALLOW = "Shallow"
    REEF_TOP = "ReefTop"
    DEEP_FEATURE = "DeepFeature"

    @classmethod
    def parse(cls, name: str) -> "ColourGrade":
        try:
            return cls(name)
        except ValueError:
            valid = ", ".join(g.value for g in cls)
            raise InvalidConfigurationError(
                f"Unknown colour grade {name!r} (expected one of: {valid})"
            ) from None


@dataclass(frozen=True)
class Curve:
    band: str
    min: float
    max: float
    gamma: float

    def apply(self, scaled: np.ndarray) -> np.ndarray:
        return contrast_curve(scaled, self.min, self.max, self.gamma)


# (R, G, B) curves for the three-channel grades.
RGB_RECIPES: Dict[ColourGrade, Tuple[Curve, Curve, Curve]] = {
    ColourGrade.TRUE_COLOUR: (
        Curve("B4", 0.013, 0.3, 2.2),
        Curve("B3", 0.025, 0.31, 2.2),
        Curve("B2", 0.045, 0.33, 2.2),
    ),
    ColourGrade.DEEP_MARINE: (
        Curve("B4", 0.013, 0.2, 2.2),
        Curve("B3", 0.033, 0.12, 2.5),
        Curve("B2", 0.07, 0.13, 2.5),
    ),
    ColourGrade.DEEP_FALSE: (
        Curve("B3", 0.034, 0.175, 2.5),
        Curve("B2", 0.071, 0.175, 2.5),
        Curve("B1", 0.103, 0.177, 2.5),
    ),
    ColourGrade.SHALLOW: (
        Curve("B11", 0.02, 0.3, 2),
        Curve("B8", 0.02, 0.3, 2),
        Curve("B5", 0.02, 0.3, 2),
    ),
}

REEF_TOP_CURVE = Curve("B4", 0.018, 0.019, 1)
REEF_TOP_SMOOTHING_M = 10.0

DEEP_FEATURE_GREEN = Curve("B3", 0.027, 0.17, 4)
DEEP_FEATURE_BLUE = Curve("B2", 0.06, 0.15, 3.3)
DEEP_FEATURE_DIFF = Curve("B2", 0, 0.15, 2)
DEEP_FEATURE_SMOOTHING_M = 40.0

SMOOTHING_ITERATIONS = 4


@dataclass(frozen=True, eq=False)
class GradedImage:
    """Colour-graded 0 - 1 channels on the composite's grid."""

    grade: ColourGrade
    channels: Dict[str, np.ndarray]
    valid: np.ndarray
    transform: object = None
    crs: object = None

    @property
    def channel_names(self) -> List[str]:
        return list(self.channels)

    def as_array(self) -> np.ndarray:
        return np.stack(list(self.channels.values()))

    def to_uint8(self) -> np.ndarray:
        """``(C, H, W)`` uint8 export array; 0 is no-data."""
        return to_uint8(self.as_array(), self.valid)


def _scaled(tile: RasterTile, band: str) -> np.ndarray:
    return tile.band(band).astype(np.float32) / np.float32(SR_BAND_SCALE)


def _smoothed(values: np.ndarray, radius_m: float, resolution: float) -> np.ndarray:
    return focal_mean(values, radius_m / resolution, iterations=SMOOTHING_ITERATIONS)


def grade(tile: RasterTile, style: str, include_mask: bool = False) -> GradedImage:
    """Apply the colour grade named *style* to a composite tile.

    Args:
        tile: Composite tile with the sensor band schema.
        style: One of the :class:`ColourGrade` names.
        include_mask: Append the tile's ``cloudmask`` band unchanged when
            it has one.

    Raises:
        InvalidConfigurationError: *style* is not a known grade.
        SchemaMismatchError: The tile lacks a band the grade needs.
    """
    g = ColourGrade.parse(style)

    if g in RGB_RECIPES:
        channels = {
            name: curve.apply(_scaled(tile, curve.band))
            for name, curve in zip(RGB_CHANNELS, RGB_RECIPES[g])
        }
    elif g is ColourGrade.REEF_TOP:
        red = _smoothed(_scaled(tile, REEF_TOP_CURVE.band), REEF_TOP_SMOOTHING_M, tile.resolution)
        channels = {REEF_TOP_CURVE.band: REEF_TOP_CURVE.apply(red)}
    else:
        green = DEEP_FEATURE_GREEN.apply(_scaled(tile, DEEP_FEATURE_GREEN.band))
        blue = DEEP_FEATURE_BLUE.apply(_scaled(tile, DEEP_FEATURE_BLUE.band))
        green = _smoothed(green, DEEP_FEATURE_SMOOTHING_M, tile.resolution)
        blue = _smoothed(blue, DEEP_FEATURE_SMOOTHING_M, tile.resolution)
        channels = {DEEP_FEATURE_DIFF.band: DEEP_FEATURE_DIFF.apply(blue - np.clip(green, 0, 1))}

    if include_mask and CLOUDMASK_BAND in tile.bands:
        channels[CLOUDMASK_BAND] = tile.band(CLOUDMASK_BAND)

    return GradedImage(
        grade=g,
        channels=channels,
        valid=tile.valid,
        transform=tile.transform,
        crs=tile.crs,
    )


def check_style_list(styles) -> None:
    """Raise :class:`InvalidConfigurationError` unless *styles* is a list/tuple."""
    if isinstance(styles, (str, bytes)) or not isinstance(styles, (list, tuple)):
        raise InvalidConfigurationError(
            f"Colour grades must be a list of style names, got {type(styles).__name__}"
        )


def grade_styles(
    tile: RasterTile,
    styles: Sequence[str],
    include_mask: bool = False,
) -> Tuple[Dict[str, GradedImage], Dict[str, str]]:
    """Grade *tile* once per style, isolating failures per style.

    Returns:
        ``(outputs, errors)``: style -> :class:`GradedImage` for the styles
        that worked, style -> error message for those that did not.

    Raises:
        InvalidConfigurationError: *styles* is not a list/tuple of names.
    """
    check_style_list(styles)

    outputs: Dict[str, GradedImage] = {}
    errors: Dict[str, str] = {}
    for style in styles:
        try:
            outputs[style] = grade(tile, style, include_mask=include_mask)
        except PipelineError as exc:
            logger.error(f"Skipping colour grade {style!r}: {exc}")
            errors[style] = str(exc)
    return outputs, errors


def describe(style: str) -> Optional[str]:
    """Band recipe of *style* as a short human-readable string."""
    g = ColourGrade.parse(style)
    if g in RGB_RECIPES:
        return " / ".join(f"{c.band}[{c.min}-{c.max}, g{c.gamma}]" for c in RGB_RECIPES[g])
    if g is ColourGrade.REEF_TOP:
        c = REEF_TOP_CURVE
        return f"{c.band} smoothed {REEF_TOP_SMOOTHING_M:g} m [{c.min}-{c.max}, g{c.gamma}]"
    return (
        f"{DEEP_FEATURE_BLUE.band} - {DEEP_FEATURE_GREEN.band} smoothed "
        f"{DEEP_FEATURE_SMOOTHING_M:g} m [{DEEP_FEATURE_DIFF.min}-{DEEP_FEATURE_DIFF.max}]"
    )
