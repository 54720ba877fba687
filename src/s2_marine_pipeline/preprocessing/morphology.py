"""Mask morphology at a chosen working resolution.

Morphological filters on large exports get expensive quickly at 10 m, so
masks are moved to a coarser working grid (block-OR downsampling), filtered
there with circular kernels sized in working pixels, and repeated back up
to the native grid.

Helpers:

- ``working_scale``: pick a working resolution for a filter radius.
- ``downsample_mask`` / ``upsample_mask``: integer-factor grid changes.
- ``focal_min`` / ``focal_max``: circular erosion / dilation.
- ``directional_projection``: reach of a mask along one bearing.
- ``focal_mean``: NaN-aware circular smoothing for continuous bands.
"""

from __future__ import annotations

import math
from typing import Callable

import numpy as np
from scipy import ndimage


# ---------------------------------------------------------------------------
# Working resolution
# ---------------------------------------------------------------------------

def working_scale(
    distance_m: float,
    approx_pixels: int = 4,
    step_m: float = 10.0,
    min_scale_m: float = 20.0,
) -> float:
    """Resolution at which a filter of *distance_m* spans ~*approx_pixels* pixels.

    Rounded half-up to the nearest *step_m* and never finer than *min_scale_m*.
    """
    scaled = math.floor(distance_m / approx_pixels / step_m + 0.5) * step_m
    return max(scaled, min_scale_m)


def scale_factor(scale_m: float, resolution: float) -> int:
    """Integer block size that takes *resolution* pixels to ~*scale_m*."""
    return max(1, int(round(scale_m / resolution)))


def downsample_mask(mask: np.ndarray, factor: int) -> np.ndarray:
    """Block-OR downsample: a coarse pixel is set if any fine pixel in it is."""
    if factor <= 1:
        return mask.astype(bool)
    h, w = mask.shape
    pad_h = (-h) % factor
    pad_w = (-w) % factor
    padded = np.pad(mask.astype(bool), ((0, pad_h), (0, pad_w)), constant_values=False)
    blocks = padded.reshape(padded.shape[0] // factor, factor, padded.shape[1] // factor, factor)
    return blocks.any(axis=(1, 3))


def upsample_mask(mask: np.ndarray, factor: int, shape: tuple) -> np.ndarray:
    """Repeat each coarse pixel *factor* times and crop to *shape*."""
    if factor <= 1:
        return mask[: shape[0], : shape[1]].astype(bool)
    up = mask.repeat(factor, axis=0).repeat(factor, axis=1)
    return up[: shape[0], : shape[1]]


def at_working_scale(
    mask: np.ndarray,
    factor: int,
    fn: Callable[[np.ndarray], np.ndarray],
) -> np.ndarray:
    """Apply *fn* to *mask* on a grid *factor* times coarser, return on the native grid."""
    coarse = downsample_mask(mask, factor)
    return upsample_mask(fn(coarse), factor, mask.shape)


# ---------------------------------------------------------------------------
# Circular focal filters
# ---------------------------------------------------------------------------

def disk(radius: float) -> np.ndarray:
    """Boolean circular footprint of *radius* pixels (centre always included)."""
    n = int(math.floor(radius))
    if n < 1:
        return np.ones((1, 1), dtype=bool)
    yy, xx = np.mgrid[-n:n + 1, -n:n + 1]
    return (xx ** 2 + yy ** 2) <= radius ** 2 + 1e-9


def focal_min(mask: np.ndarray, radius: float) -> np.ndarray:
    """Erode *mask* with a circular kernel of *radius* pixels."""
    return ndimage.minimum_filter(mask.astype(bool), footprint=disk(radius), mode="nearest")


def focal_max(mask: np.ndarray, radius: float) -> np.ndarray:
    """Dilate *mask* with a circular kernel of *radius* pixels."""
    return ndimage.maximum_filter(mask.astype(bool), footprint=disk(radius), mode="nearest")


def focal_mean(values: np.ndarray, radius: float, iterations: int = 1) -> np.ndarray:
    """Circular moving mean that ignores NaN (no-data) samples.

    Each pass is a normalized convolution: the sum of valid neighbours divided
    by their count, so land/no-data edges do not bleed zeros into the result.
    Pixels that are NaN on input stay NaN.
    """
    kernel = disk(radius).astype(np.float64)
    out = values.astype(np.float64)
    nodata = ~np.isfinite(out)
    for _ in range(iterations):
        weights = (~nodata).astype(np.float64)
        filled = np.where(nodata, 0.0, out)
        num = ndimage.convolve(filled, kernel, mode="constant", cval=0.0)
        den = ndimage.convolve(weights, kernel, mode="constant", cval=0.0)
        with np.errstate(invalid="ignore", divide="ignore"):
            out = num / den
        out[nodata] = np.nan
    return out.astype(np.float32)


# ---------------------------------------------------------------------------
# Directional projection
# ---------------------------------------------------------------------------

def _shifted(mask: np.ndarray, drow: int, dcol: int) -> np.ndarray:
    """``out[r, c] = mask[r + drow, c + dcol]``, False where that falls off the grid."""
    h, w = mask.shape
    out = np.zeros_like(mask, dtype=bool)
    if abs(drow) >= h or abs(dcol) >= w:
        return out
    src_r = slice(max(drow, 0), h + min(drow, 0))
    dst_r = slice(max(-drow, 0), h + min(-drow, 0))
    src_c = slice(max(dcol, 0), w + min(dcol, 0))
    dst_c = slice(max(-dcol, 0), w + min(-dcol, 0))
    out[dst_r, dst_c] = mask[src_r, src_c]
    return out


def directional_projection(mask: np.ndarray, angle_deg: float, max_distance: float) -> np.ndarray:
    """Mark every pixel that has a source pixel within *max_distance* along *angle_deg*.

    *angle_deg* is measured counter-clockwise from east on a north-up grid
    (rows grow southwards).  For a source mask of clouds and an angle
    pointing towards the sun, the result is the cloud plus the ground its
    shadow can reach.  Source pixels are included (distance 0).

    Args:
        mask: ``(H, W)`` boolean source mask.
        angle_deg: Search direction in degrees.
        max_distance: Reach in pixels.

    Returns:
        ``(H, W)`` boolean mask.
    """
    theta = math.radians(angle_deg)
    drow_unit = -math.sin(theta)
    dcol_unit = math.cos(theta)

    src = mask.astype(bool)
    out = src.copy()
    seen = {(0, 0)}
    # Half-pixel steps so diagonal bearings leave no gaps.
    for t in np.arange(0.5, max_distance + 1e-9, 0.5):
        offset = (int(round(t * drow_unit)), int(round(t * dcol_unit)))
        if offset in seen:
            continue
        seen.add(offset)
        out |= _shifted(src, *offset)
    return out
