"""Calibrate a population-density raster to an authoritative national total."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from .errors import InvalidCalibrationError
from .grid import RasterGrid

LOGGER = logging.getLogger(__name__)


def raw_total(grid: RasterGrid) -> float:
    """Sum of all measured cells."""
    return float(grid.data[grid.valid].sum(dtype="float64"))


def scale_factor(raw: float, authoritative_total: float, *, source: Optional[str] = None) -> float:
    """Relative correction ``(authoritative - raw) / raw`` applied to every cell."""

    if not np.isfinite(raw) or raw <= 0:
        raise InvalidCalibrationError(
            f"Raw population total must be positive to calibrate, got {raw!r}.", source=source
        )
    return (authoritative_total - raw) / raw


def rescale_population(
    grid: RasterGrid,
    authoritative_total: float,
    growth_rate: float = 0.0,
    *,
    years: int = 1,
    source: Optional[str] = None,
) -> RasterGrid:
    """Rescale ``grid`` to ``authoritative_total`` and project it forward.

    Parameters
    ----------
    grid:
        Raw population (people per cell) with a nodata sentinel for unmeasured cells.
    authoritative_total:
        External national total the raster should sum to.
    growth_rate:
        Annual growth rate compounded ``years`` times after calibration.
    years:
        Number of compounding steps. The default is a single step.
    source:
        Optional input name used in error messages.

    Returns
    -------
    RasterGrid
        Population counts on the same grid, without a nodata sentinel. Unmeasured
        cells are set to zero population so they drop out of every downstream sum
        instead of propagating missingness.
    """

    if years < 0:
        raise ValueError("years must be non-negative")

    total = raw_total(grid)
    factor = scale_factor(total, authoritative_total, source=source)
    LOGGER.info(
        "Raw population %.0f, target %.0f, scale factor %.6f, growth %.4f over %d year(s)",
        total,
        authoritative_total,
        factor,
        growth_rate,
        years,
    )

    calibrated = grid.filled(0.0) * (1 + factor)
    projected = calibrated * (1 + growth_rate) ** years
    LOGGER.debug("Zero-filled %d unmeasured cells", int((~grid.valid).sum()))
    return grid.with_data(projected, nodata=None)
