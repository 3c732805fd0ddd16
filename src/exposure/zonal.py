"""Exact area-weighted zonal sums of population over polygons.

Each raster cell contributes ``value * coverage``, where ``coverage`` is the
fraction of the cell's area that lies inside the polygon. Coverage fractions
come from ``exactextract``.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, Optional

import geopandas as gpd
import numpy as np
import pandas as pd
from exactextract import exact_extract
from rasterio.io import DatasetReader, MemoryFile
from rasterio.transform import Affine, array_bounds
from shapely.geometry import box
from tqdm import tqdm

from .errors import SpatialReferenceMismatchError
from .grid import RasterGrid

LOGGER = logging.getLogger(__name__)

TOTAL_COLUMN = "pop"
UNCLASSIFIED_COLUMN = "pop_unclassified"


@contextmanager
def _open_in_memory(values: np.ndarray, transform: Affine, crs=None) -> Iterator[DatasetReader]:
    """Single-band in-memory GeoTIFF holding ``values``."""

    profile = {
        "driver": "GTiff",
        "height": values.shape[0],
        "width": values.shape[1],
        "count": 1,
        "dtype": "float64",
        "crs": crs,
        "transform": transform,
    }
    with MemoryFile() as memfile:
        with memfile.open(**profile) as dst:
            dst.write(values.astype("float64"), 1)
        with memfile.open() as src:
            yield src


def _stat_from_value(value, key: str) -> float:
    """Pull ``key`` out of an exact_extract result, given as a plain dict or a GeoJSON feature."""

    if value is None:
        return np.nan
    if isinstance(value, dict):
        if key in value:
            return value.get(key, np.nan)
        props = value.get("properties")
        if isinstance(props, dict):
            return props.get(key, np.nan)
    return np.nan


def _overlapping(geometries: gpd.GeoSeries, transform: Affine, shape) -> np.ndarray:
    """Boolean mask of geometries that intersect the raster footprint."""

    west, south, east, north = array_bounds(shape[0], shape[1], transform)
    footprint = box(west, south, east, north)
    present = geometries.notna() & ~geometries.is_empty
    return (present & geometries.intersects(footprint)).to_numpy()


def area_weighted_sums(
    values: np.ndarray,
    transform: Affine,
    geometries: gpd.GeoSeries,
    *,
    crs=None,
) -> np.ndarray:
    """Coverage-weighted sum of ``values`` for every geometry, in input order.

    NaN cells count as 0 and geometries that miss the raster get 0.0.
    """

    sums = np.zeros(len(geometries), dtype="float64")
    if len(geometries) == 0:
        return sums

    geometries = gpd.GeoSeries(geometries.to_numpy(), crs=crs).make_valid()
    hit = _overlapping(geometries, transform, values.shape)
    if not hit.any():
        return sums

    filled = np.where(np.isfinite(values), values, 0.0)
    features = gpd.GeoDataFrame(geometry=geometries[hit].reset_index(drop=True), crs=crs)
    with _open_in_memory(filled, transform, crs) as src:
        results = exact_extract(src, features, ["sum"])
    sums[hit] = [_stat_from_value(v, "sum") for v in results]
    return np.nan_to_num(sums, nan=0.0)


def area_weighted_sum(values: np.ndarray, transform: Affine, geometry, *, crs=None) -> float:
    """Coverage-weighted sum of ``values`` inside one geometry; 0.0 when nothing overlaps."""
    return float(area_weighted_sums(values, transform, gpd.GeoSeries([geometry]), crs=crs)[0])


def ensure_crs(polygons: gpd.GeoDataFrame, crs, *, source: Optional[str] = None) -> gpd.GeoDataFrame:
    """Return ``polygons`` in ``crs``; a missing CRS on either side is an error."""

    if crs is None:
        raise SpatialReferenceMismatchError("Raster has no CRS; polygons cannot be matched to it.", source=source)
    if polygons.crs is None:
        raise SpatialReferenceMismatchError("Polygon layer has no CRS.", source=source)
    if polygons.crs == crs:
        return polygons
    LOGGER.info("Reprojecting %d polygons from %s to %s", len(polygons), polygons.crs, crs)
    return polygons.to_crs(crs)


def zonal_population(
    polygons: gpd.GeoDataFrame,
    population: RasterGrid,
    masks: Optional[Mapping[str, np.ndarray]] = None,
    *,
    progress: bool = False,
    source: Optional[str] = None,
) -> pd.DataFrame:
    """Area-weighted population per polygon, in total and per category mask.

    Parameters
    ----------
    polygons:
        Polygon layer; reprojected to the population grid's CRS first.
    population:
        Calibrated population counts.
    masks:
        Ordered mapping of column name to boolean mask on the population grid.
        Each category column is the area-weighted sum of ``population * mask``.
    progress:
        Show a ``tqdm`` progress bar over the extracted layers.

    Returns
    -------
    pandas.DataFrame
        Indexed like ``polygons`` with ``pop``, one column per mask and
        ``pop_unclassified`` (population on cells outside every mask). Polygons
        that miss the grid get 0 in every column.
    """

    polygons = ensure_crs(polygons, population.crs, source=source)
    values = population.filled(0.0)

    layers: Dict[str, np.ndarray] = OrderedDict()
    layers[TOTAL_COLUMN] = values
    in_any = np.zeros(population.shape, dtype=bool)
    for name, mask in (masks or {}).items():
        if mask.shape != population.shape:
            raise ValueError(f"Mask {name!r} has shape {mask.shape}, expected {population.shape}")
        layers[name] = values * mask
        in_any |= mask.astype(bool)
    if masks:
        layers[UNCLASSIFIED_COLUMN] = values * ~in_any

    table = pd.DataFrame(index=polygons.index)
    for name, layer in tqdm(layers.items(), desc="Zonal sums", disable=not progress, total=len(layers)):
        table[name] = area_weighted_sums(layer, population.transform, polygons.geometry, crs=population.crs)

    LOGGER.info(
        "Aggregated %d polygons; %.0f people in total (%d without overlap)",
        len(table),
        table[TOTAL_COLUMN].sum(),
        int((table[TOTAL_COLUMN] == 0).sum()),
    )
    return table


def attach_population(polygons: gpd.GeoDataFrame, table: pd.DataFrame) -> gpd.GeoDataFrame:
    """Copy of ``polygons`` with the aggregated columns appended."""

    out = polygons.copy()
    for column in table.columns:
        out[column] = table[column].to_numpy()
    return out


def check_conservation(table: pd.DataFrame, categories, *, rtol: float = 1e-6) -> pd.Series:
    """Per-polygon flag: category sums (plus unclassified) reproduce the total."""

    parts = table[list(categories)].sum(axis=1)
    if UNCLASSIFIED_COLUMN in table:
        parts = parts + table[UNCLASSIFIED_COLUMN]
    return pd.Series(
        np.isclose(parts, table[TOTAL_COLUMN], rtol=rtol, atol=1e-9),
        index=table.index,
        name="conserved",
    )
