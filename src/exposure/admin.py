"""Select and group administrative units by name.

Some regions are split into several parts (``Bago (East)``, ``Bago (West)``) and
are requested by their common prefix.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, Sequence

import geopandas as gpd
import pandas as pd


def match_admin(values: pd.Series, name: str, prefixes: Iterable[str] = ()) -> pd.Series:
    """Boolean mask of ``values`` equal to ``name``, or starting with it if it is a prefix group."""

    text = values.astype("string")
    if name in set(prefixes):
        return text.str.startswith(name).fillna(False).astype(bool)
    return (text == name).fillna(False).astype(bool)


def select_admin(
    gdf: gpd.GeoDataFrame,
    column: str,
    names: Sequence[str],
    prefixes: Iterable[str] = (),
) -> gpd.GeoDataFrame:
    """Rows of ``gdf`` whose ``column`` matches any of ``names``, in original order."""

    if column not in gdf.columns:
        raise KeyError(f"Administrative column {column!r} not found; available: {list(gdf.columns)}")
    prefixes = tuple(prefixes)
    mask = pd.Series(False, index=gdf.index)
    for name in names:
        mask |= match_admin(gdf[column], name, prefixes)
    return gdf.loc[mask].copy()


def group_admin(
    gdf: gpd.GeoDataFrame,
    column: str,
    names: Sequence[str],
    prefixes: Iterable[str] = (),
) -> Dict[str, gpd.GeoDataFrame]:
    """One subset per requested name, keyed and ordered as ``names``."""

    if column not in gdf.columns:
        raise KeyError(f"Administrative column {column!r} not found; available: {list(gdf.columns)}")
    prefixes = tuple(prefixes)
    groups: Dict[str, gpd.GeoDataFrame] = OrderedDict()
    for name in names:
        groups[name] = gdf.loc[match_admin(gdf[column], name, prefixes)].copy()
    return groups


def slugify(name: str) -> str:
    """File-name friendly version of an administrative name."""
    return "_".join(name.lower().replace("-", " ").split())
