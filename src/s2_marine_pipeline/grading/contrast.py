"""Contrast curve and 8-bit export quantization."""

from __future__ import annotations

import numpy as np

from s2_marine_pipeline.errors import InvalidConfigurationError

NODATA_VALUE = 0


def contrast_curve(values: np.ndarray, min_: float, max_: float, gamma: float) -> np.ndarray:
    """Stretch *values* so *min_* -> 0 and *max_* -> 1, clamp, then apply gamma.

    ``clamp((v - min) / (max - min), 0, 1) ** (1 / gamma)``.  NaN stays NaN.
    """
    if not max_ > min_:
        raise InvalidConfigurationError(f"Contrast range must have min < max, got ({min_}, {max_})")
    if not gamma > 0:
        raise InvalidConfigurationError(f"Contrast gamma must be positive, got {gamma}")
    stretched = np.clip((np.asarray(values, dtype=np.float32) - min_) / (max_ - min_), 0, 1)
    return np.power(stretched, np.float32(1.0 / gamma)).astype(np.float32)


def to_uint8(values: np.ndarray, valid: np.ndarray) -> np.ndarray:
    """Quantize 0-1 graded values to 1-255, reserving 0 for no-data.

    ``0.0 -> 1`` and ``1.0 -> 255``; fractional results are truncated.
    Invalid or non-finite pixels become 0, so exports need no separate
    alpha or no-data band.

    Args:
        values: ``(H, W)`` or ``(C, H, W)`` graded values.
        valid: ``(H, W)`` validity mask shared by all channels.
    """
    values = np.asarray(values, dtype=np.float32)
    ok = np.isfinite(values) & np.broadcast_to(valid, values.shape)
    scaled = np.clip(np.where(ok, values, 0), 0, 1) * 254 + 1
    out = np.floor(scaled).astype(np.uint8)
    out[~ok] = NODATA_VALUE
    return out
