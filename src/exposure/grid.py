"""In-memory raster grid shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np
from rasterio.crs import CRS
from rasterio.transform import Affine, array_bounds


@dataclass(frozen=True, eq=False)
class RasterGrid:
    """A single-band raster: cell values plus the grid definition they live on."""

    data: np.ndarray
    """2-D array of cell values, row 0 at the top."""

    transform: Affine
    """Affine mapping from (col, row) to map coordinates."""

    crs: Optional[CRS] = None
    """Coordinate reference system, ``None`` when the source carried none."""

    nodata: Optional[float] = None
    """Sentinel marking unmeasured cells. NaN cells are always treated as missing."""

    def __post_init__(self) -> None:
        if self.data.ndim != 2:
            raise ValueError(f"RasterGrid expects a 2-D array, got shape {self.data.shape}")

    @property
    def height(self) -> int:
        return int(self.data.shape[0])

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    @property
    def res(self) -> Tuple[float, float]:
        return abs(self.transform.a), abs(self.transform.e)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """``(west, south, east, north)`` of the grid."""
        return array_bounds(self.height, self.width, self.transform)

    @property
    def valid(self) -> np.ndarray:
        """Boolean mask of measured cells."""
        mask = np.ones(self.shape, dtype=bool)
        if np.issubdtype(self.data.dtype, np.floating):
            mask &= ~np.isnan(self.data)
        if self.nodata is not None and not np.isnan(self.nodata):
            mask &= self.data != self.nodata
        return mask

    def same_grid(self, other: "RasterGrid") -> bool:
        """True when ``other`` shares this grid's shape, transform and CRS."""
        if self.shape != other.shape:
            return False
        if not self.transform.almost_equals(other.transform):
            return False
        if self.crs is None or other.crs is None:
            return self.crs is None and other.crs is None
        return self.crs == other.crs

    def with_data(self, data: np.ndarray, *, nodata: Optional[float] = None) -> "RasterGrid":
        """New grid on the same definition carrying ``data``."""
        if data.shape != self.shape:
            raise ValueError(f"Shape {data.shape} does not match grid shape {self.shape}")
        return replace(self, data=data, nodata=nodata)

    def filled(self, value: float = np.nan) -> np.ndarray:
        """Float copy of the data with missing cells replaced by ``value``."""
        out = self.data.astype("float64", copy=True)
        out[~self.valid] = value
        return out
