"""Error taxonomy for the exposure pipeline."""

from __future__ import annotations

from typing import Optional


class ExposureError(RuntimeError):
    """Base class for failures that abort an exposure run.

    ``stage`` names the pipeline step that failed and ``source`` the input it was
    working on, so the message alone is enough to diagnose a batch run.
    """

    stage = "pipeline"

    def __init__(self, message: str, *, source: Optional[str] = None, stage: Optional[str] = None) -> None:
        if stage is not None:
            self.stage = stage
        self.source = source
        context = f"[{self.stage}]" if source is None else f"[{self.stage}: {source}]"
        super().__init__(f"{context} {message}")


class SpatialReferenceMismatchError(ExposureError):
    """Raised when inputs cannot be brought to a common CRS (missing or malformed CRS)."""

    stage = "crs"


class EmptyIntersectionError(ExposureError):
    """Raised when two grids share no geographic overlap."""

    stage = "align"


class InvalidCalibrationError(ExposureError):
    """Raised when the raw population total cannot be calibrated (non-positive)."""

    stage = "rescale"


class CategoryConfigurationError(ExposureError):
    """Raised when intensity categories leave gaps or overlap."""

    stage = "classify"
