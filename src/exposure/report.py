"""Presentation tables and choropleth maps built from aggregated exposure."""

from __future__ import annotations

import html
import logging
import os
from pathlib import Path
from typing import Optional, Sequence

import geopandas as gpd
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from .zonal import TOTAL_COLUMN

LOGGER = logging.getLogger(__name__)

WARD_COLUMNS = ["TS", "WARD", "WARD_MMR"]
TOWNSHIP_COLUMNS = ["DT", "TS", "TS_MMR"]


def share_pct(
    df: pd.DataFrame,
    numerators: Sequence[str],
    *,
    total_col: str = TOTAL_COLUMN,
    decimals: int = 2,
) -> pd.Series:
    """``100 * sum(numerators) / total`` per row; rows with zero total get 0."""

    part = df[list(numerators)].sum(axis=1).to_numpy(dtype="float64")
    total = df[total_col].to_numpy(dtype="float64")
    pct = np.divide(100.0 * part, total, out=np.zeros_like(part), where=total > 0)
    return pd.Series(np.round(pct, decimals), index=df.index)


def exposure_table(
    gdf: gpd.GeoDataFrame,
    id_columns: Sequence[str],
    category_columns: Sequence[str],
    *,
    pct_name: str,
    pct_of: Sequence[str],
) -> gpd.GeoDataFrame:
    """Identifier columns, populations and one percentage column, ranked by that percentage."""

    keep = [c for c in id_columns if c in gdf.columns] + [TOTAL_COLUMN] + list(category_columns)
    table = gdf[keep + ["geometry"]].copy()
    table[pct_name] = share_pct(table, pct_of)
    return table.sort_values(pct_name, ascending=False, kind="mergesort")


def ward_table(gdf: gpd.GeoDataFrame, category_columns: Sequence[str], severe: str = "pop_9") -> gpd.GeoDataFrame:
    """Wards ranked by the share of population in the most severe category."""
    return exposure_table(gdf, WARD_COLUMNS, category_columns, pct_name="extreme_pct", pct_of=[severe])


def township_table(
    gdf: gpd.GeoDataFrame,
    category_columns: Sequence[str],
    strong: Sequence[str] = ("pop_8", "pop_9"),
) -> gpd.GeoDataFrame:
    """Townships ranked by the share of population in the strongest categories."""
    return exposure_table(gdf, TOWNSHIP_COLUMNS, category_columns, pct_name="vstrong_pct", pct_of=list(strong))


def write_html_table(table: pd.DataFrame, path: Path, *, title: Optional[str] = None) -> Path:
    """Ranked table as a standalone HTML page."""

    frame = pd.DataFrame(table.drop(columns="geometry", errors="ignore"))
    body = frame.to_html(index=False, float_format=lambda v: f"{v:,.2f}", border=0, classes="exposure")
    title = html.escape(title or "")
    heading = f"<h2>{title}</h2>\n" if title else ""
    page = f"<!DOCTYPE html>\n<html>\n<head><meta charset=\"utf-8\"><title>{title}</title></head>\n<body>\n{heading}{body}\n</body>\n</html>\n"

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.stem}.partial{path.suffix}")
    tmp.write_text(page, encoding="utf-8")
    os.replace(tmp, path)
    return path


def choropleth(gdf: gpd.GeoDataFrame, column: str, path: Path, *, title: str, k: int = 5) -> Path:
    """Quantile choropleth of ``column`` saved as PNG."""

    fig, ax = plt.subplots(1, 1, figsize=(8, 10))
    values = gdf[column]
    if values.nunique() >= 2:
        gdf.plot(
            column=column,
            cmap="YlOrRd",
            scheme="quantiles",
            k=min(k, int(values.nunique())),
            edgecolor="grey",
            linewidth=0.2,
            legend=True,
            legend_kwds={"title": column, "loc": "lower left"},
            ax=ax,
        )
    else:
        # a constant column has no quantile classes
        gdf.plot(color="#fd8d3c", edgecolor="grey", linewidth=0.2, ax=ax)
    gdf.boundary.plot(ax=ax, color="black", linewidth=0.3)
    ax.set_title(title, fontsize=14)
    ax.set_axis_off()

    path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    fig.savefig(path, dpi=200)
    plt.close(fig)
    LOGGER.info("Saved map %s", path)
    return path
