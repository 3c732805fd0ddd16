"""Bring a secondary raster onto a reference raster's grid.

The population raster is the reference: it keeps its cell size and alignment and
is only cropped. The intensity raster is reprojected, cropped and resampled onto
the cropped reference grid in a single warp. Resampling defaults to nearest
neighbour since the secondary raster holds ordinal intensity values.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np
from rasterio.enums import Resampling
from rasterio.warp import reproject, transform_bounds
from rasterio.windows import Window
from rasterio.windows import transform as window_transform

from .errors import EmptyIntersectionError, SpatialReferenceMismatchError
from .grid import RasterGrid

LOGGER = logging.getLogger(__name__)

Bounds = Tuple[float, float, float, float]

# Pixel-space slack so that bounds landing on a cell edge do not pull in a
# neighbouring row or column through floating point noise.
_EDGE_TOLERANCE = 1e-6


def intersect_bounds(a: Bounds, b: Bounds) -> Optional[Bounds]:
    """Intersection of two ``(west, south, east, north)`` boxes, ``None`` if degenerate."""

    west = max(a[0], b[0])
    south = max(a[1], b[1])
    east = min(a[2], b[2])
    north = min(a[3], b[3])
    if east <= west or north <= south:
        return None
    return west, south, east, north


def crop_to_bounds(grid: RasterGrid, bounds: Bounds, *, source: Optional[str] = None) -> RasterGrid:
    """Crop ``grid`` to ``bounds``, snapping outward to whole cells."""

    window = _snap_window(grid, bounds)
    if window is None:
        raise EmptyIntersectionError(f"Bounds {bounds} cover no cell of the grid.", source=source)

    rows, cols = window.toslices()
    data = grid.data[rows, cols].copy()
    return RasterGrid(data, window_transform(window, grid.transform), grid.crs, grid.nodata)


def align_to_reference(
    reference: RasterGrid,
    secondary: RasterGrid,
    *,
    resampling: Resampling = Resampling.nearest,
    source: Optional[str] = None,
) -> Tuple[RasterGrid, RasterGrid]:
    """Align ``secondary`` to ``reference``.

    Returns the reference cropped to the common extent and the secondary warped
    onto exactly that grid. Secondary cells outside its own footprint come back
    as NaN. Neither input is modified.
    """

    if reference.same_grid(secondary):
        LOGGER.debug("Grids already aligned; returning copies")
        return (
            reference.with_data(reference.data.copy(), nodata=reference.nodata),
            secondary.with_data(secondary.data.copy(), nodata=secondary.nodata),
        )

    if reference.crs is None or secondary.crs is None:
        raise SpatialReferenceMismatchError(
            "Both rasters need a CRS to be aligned "
            f"(reference={reference.crs}, secondary={secondary.crs}).",
            source=source,
        )

    secondary_bounds = secondary.bounds
    if secondary.crs != reference.crs:
        LOGGER.info("Reprojecting secondary raster from %s to %s", secondary.crs, reference.crs)
        secondary_bounds = transform_bounds(secondary.crs, reference.crs, *secondary_bounds, densify_pts=21)

    common = intersect_bounds(reference.bounds, secondary_bounds)
    if common is None:
        raise EmptyIntersectionError(
            f"Rasters do not overlap (reference {reference.bounds}, secondary {secondary_bounds}).",
            source=source,
        )

    cropped = crop_to_bounds(reference, common, source=source)
    LOGGER.info(
        "Common extent %s -> %dx%d cells at %s",
        tuple(round(v, 6) for v in common),
        cropped.width,
        cropped.height,
        cropped.res,
    )

    destination = np.full(cropped.shape, np.nan, dtype="float64")
    reproject(
        source=secondary.data.astype("float64"),
        destination=destination,
        src_transform=secondary.transform,
        src_crs=secondary.crs,
        src_nodata=secondary.nodata,
        dst_transform=cropped.transform,
        dst_crs=cropped.crs,
        dst_nodata=np.nan,
        resampling=resampling,
    )
    aligned = RasterGrid(destination, cropped.transform, cropped.crs, np.nan)
    return cropped, aligned


def _snap_window(grid: RasterGrid, bounds: Bounds) -> Optional[Window]:
    inverse = ~grid.transform
    west, south, east, north = bounds
    corners = [inverse @ (x, y) for x in (west, east) for y in (south, north)]
    cols = [c for c, _ in corners]
    rows = [r for _, r in corners]

    col_start = max(0, math.floor(min(cols) + _EDGE_TOLERANCE))
    col_stop = min(grid.width, math.ceil(max(cols) - _EDGE_TOLERANCE))
    row_start = max(0, math.floor(min(rows) + _EDGE_TOLERANCE))
    row_stop = min(grid.height, math.ceil(max(rows) - _EDGE_TOLERANCE))
    if col_stop <= col_start or row_stop <= row_start:
        return None
    return Window(col_start, row_start, col_stop - col_start, row_stop - row_start)
