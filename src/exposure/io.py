"""Reading and writing raster grids and polygon layers."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

import geopandas as gpd
import rasterio

from .grid import RasterGrid

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]

_VECTOR_DRIVERS = {
    ".geojson": "GeoJSON",
    ".json": "GeoJSON",
    ".gpkg": "GPKG",
}


def read_raster(path: PathLike, band: int = 1) -> RasterGrid:
    """Load one band of a raster file as a float64 ``RasterGrid``."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster not found: {path}")

    with rasterio.open(path) as src:
        data = src.read(band).astype("float64")
        grid = RasterGrid(data, src.transform, src.crs, src.nodata)

    LOGGER.info("Loaded %s (%dx%d, crs=%s, nodata=%s)", path.name, grid.width, grid.height, grid.crs, grid.nodata)
    return grid


def write_raster(grid: RasterGrid, path: PathLike) -> Path:
    """Write ``grid`` as a single-band GeoTIFF, atomically."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        "driver": "GTiff",
        "height": grid.height,
        "width": grid.width,
        "count": 1,
        "dtype": str(grid.data.dtype),
        "crs": grid.crs,
        "transform": grid.transform,
        "nodata": grid.nodata,
    }
    tmp = _partial_path(path)
    with rasterio.open(tmp, "w", **profile) as dst:
        dst.write(grid.data, 1)
    os.replace(tmp, path)
    return path


def read_polygons(path: PathLike) -> gpd.GeoDataFrame:
    """Load a polygon layer (GeoJSON, GeoPackage, Shapefile...)."""

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Polygon layer not found: {path}")
    gdf = gpd.read_file(path)
    LOGGER.info("Loaded %d features from %s (crs=%s)", len(gdf), path.name, gdf.crs)
    return gdf


def write_polygons(gdf: gpd.GeoDataFrame, path: PathLike) -> Path:
    """Write a polygon layer so that ``path`` only ever holds a complete file.

    The layer is written to a hidden sibling first and moved into place once the
    driver has finished.
    """

    path = Path(path)
    driver = _VECTOR_DRIVERS.get(path.suffix.lower())
    if driver is None:
        raise ValueError(f"Unsupported vector output format: {path.suffix} (use .geojson or .gpkg)")

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _partial_path(path)
    try:
        gdf.to_file(tmp, driver=driver)
        os.replace(tmp, path)
    finally:
        if tmp.exists():
            tmp.unlink()
    LOGGER.info("Wrote %d features to %s", len(gdf), path)
    return path


def write_table(df, path: PathLike, **kwargs) -> Path:
    """Write a pandas table as CSV, atomically."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = _partial_path(path)
    df.to_csv(tmp, **kwargs)
    os.replace(tmp, path)
    return path


def _partial_path(path: Path) -> Path:
    tmp = path.with_name(f".{path.stem}.partial{path.suffix}")
    if tmp.exists():
        tmp.unlink()
    return tmp

