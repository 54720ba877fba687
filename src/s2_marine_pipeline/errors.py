"""Exception hierarchy for the composite pipeline.

Hierarchy::

    PipelineError                       <- catch-all base
    ├── InvalidConfigurationError       <- unknown colour grade, bad style list, bad curve
    ├── SchemaMismatchError             <- missing band, grid mismatch inside one stack
    ├── DegenerateGeometryError         <- tile codes resolve to no footprint
    ├── NoImagesError                   <- a job with zero usable images
    └── MissingCloudProbabilityError    <- no companion probability layer for some scenes

Per-style and per-footprint failures are isolated by the callers that fan
work out (:func:`~s2_marine_pipeline.grading.colour_grades.grade_styles`
and the local executor); everything below them simply raises.
"""

from __future__ import annotations

from typing import List, Sequence


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message: str = message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class InvalidConfigurationError(PipelineError):
    """Raised for configuration the pipeline cannot act on."""


class SchemaMismatchError(PipelineError):
    """Raised when a tile lacks an expected band or a stack's grids differ."""


class DegenerateGeometryError(PipelineError):
    """Raised when the tile-code lookup yields no footprint geometry.

    Kept distinct from :class:`NoImagesError`: an empty footprint is never
    treated as a successful run over an empty area.
    """


class NoImagesError(PipelineError):
    """Raised when a job has no images to composite."""


class MissingCloudProbabilityError(PipelineError):
    """Raised when scenes in a masked stack have no cloud-probability layer.

    Args:
        original_ids: Acquisition ids without a companion layer.
    """

    def __init__(self, original_ids: Sequence[str]) -> None:
        self.original_ids: List[str] = list(original_ids)
        super().__init__(
            f"No cloud probability layer for {len(self.original_ids)} scene(s): "
            + ", ".join(self.original_ids)
        )
