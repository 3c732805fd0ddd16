"""End-to-end exposure pipeline: rasters and boundaries in, augmented layers out."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import geopandas as gpd
import numpy as np
import pandas as pd

from . import io
from .admin import group_admin, select_admin, slugify
from .align import align_to_reference
from .classify import IntensityClasses, classify_intensity, derive_masks, population_by_class
from .config import ExposureConfig
from .grid import RasterGrid
from .report import choropleth, township_table, ward_table, write_html_table
from .rescale import rescale_population
from .zonal import attach_population, check_conservation, ensure_crs, zonal_population

LOGGER = logging.getLogger(__name__)


@dataclass
class ExposureSurfaces:
    """Aligned rasters ready for zonal aggregation."""

    population: RasterGrid
    intensity: IntensityClasses
    masks: Dict[str, np.ndarray]


@dataclass
class PipelineResult:
    """Augmented layers produced by :func:`run_pipeline`."""

    wards: Dict[str, gpd.GeoDataFrame]
    townships: gpd.GeoDataFrame
    by_class: pd.DataFrame
    outputs: List[Path] = field(default_factory=list)


@dataclass
class ReportTable:
    """One ranked table and the choropleth drawn from it."""

    stem: str
    title: str
    map_title: str
    column: str
    table: gpd.GeoDataFrame


def prepare_surfaces(
    population: RasterGrid,
    intensity: RasterGrid,
    config: ExposureConfig,
) -> ExposureSurfaces:
    """Rescale population, align intensity onto it and build the category masks."""

    calibrated = rescale_population(
        population,
        config.national_total,
        config.growth_rate,
        years=config.years,
        source="population",
    )
    aligned_population, aligned_intensity = align_to_reference(calibrated, intensity, source="intensity")
    classes = classify_intensity(aligned_intensity)
    masks = derive_masks(classes, config.category_set, strict=config.strict_categories)
    return ExposureSurfaces(aligned_population, classes, masks)


def assess_layer(
    polygons: gpd.GeoDataFrame,
    surfaces: ExposureSurfaces,
    *,
    progress: bool = False,
    source: Optional[str] = None,
) -> gpd.GeoDataFrame:
    """Polygons in the population CRS with total and per-category population appended."""

    polygons = ensure_crs(polygons, surfaces.population.crs, source=source)
    table = zonal_population(polygons, surfaces.population, surfaces.masks, progress=progress, source=source)
    conserved = check_conservation(table, surfaces.masks.keys())
    if not conserved.all():
        LOGGER.warning("%s: %d polygons fail the category conservation check", source, int((~conserved).sum()))

    return attach_population(polygons, table)


def run_pipeline(
    ward_path: Path,
    township_path: Path,
    population_path: Path,
    intensity_path: Path,
    output_dir: Path,
    config: Optional[ExposureConfig] = None,
) -> PipelineResult:
    """Run the full analysis and write its outputs to ``output_dir``.

    Every layer is computed before anything is written, so a failure in any stage
    leaves ``output_dir`` untouched.
    """

    config = config or ExposureConfig()
    output_dir = Path(output_dir)

    population = io.read_raster(population_path)
    intensity = io.read_raster(intensity_path)
    surfaces = prepare_surfaces(population, intensity, config)
    by_class = population_by_class(surfaces.population, surfaces.intensity)

    ward = io.read_polygons(ward_path)
    wards: Dict[str, gpd.GeoDataFrame] = OrderedDict()
    for name, subset in group_admin(ward, config.ward_column, config.ward_units).items():
        if subset.empty:
            LOGGER.warning("No wards found for %s=%r", config.ward_column, name)
        wards[name] = assess_layer(subset, surfaces, progress=config.progress, source=f"ward:{name}")

    township = io.read_polygons(township_path)
    selected = select_admin(township, config.township_column, config.township_units, config.township_prefixes)
    townships = assess_layer(selected, surfaces, progress=config.progress, source="township")

    result = PipelineResult(wards, townships, by_class)
    reports = build_report_tables(result, config) if config.report else []

    for name, layer in wards.items():
        result.outputs.append(io.write_polygons(layer, output_dir / f"ward_{slugify(name)}.geojson"))
    result.outputs.append(io.write_polygons(townships, output_dir / "township.geojson"))
    result.outputs.append(io.write_table(by_class, output_dir / "intensity_population.csv", index=False))
    if reports:
        result.outputs.extend(write_report(reports, output_dir / "report"))
    return result


def build_report_tables(result: PipelineResult, config: ExposureConfig) -> List[ReportTable]:
    """Ranked tables for every non-empty ward and township group."""

    categories = config.category_set.names
    reports: List[ReportTable] = []

    for name, layer in result.wards.items():
        if layer.empty:
            continue
        reports.append(
            ReportTable(
                stem=f"ward_{slugify(name)}",
                title=f"Wards of {name}",
                map_title=f"Population in Extreme Intensity Category (Ward Level): {name}",
                column="extreme_pct",
                table=ward_table(layer, categories, severe=config.severe_category),
            )
        )

    groups = group_admin(result.townships, config.township_column, config.township_units, config.township_prefixes)
    for name, layer in groups.items():
        if layer.empty:
            continue
        reports.append(
            ReportTable(
                stem=f"township_{slugify(name)}",
                title=f"Townships of {name}",
                map_title=f"Population in Very Strong Intensity Categories: {name}",
                column="vstrong_pct",
                table=township_table(layer, categories, strong=config.strong_categories),
            )
        )
    return reports


def write_report(reports: List[ReportTable], report_dir: Path) -> List[Path]:
    """HTML table and choropleth map for every report table."""

    written: List[Path] = []
    for item in reports:
        written.append(write_html_table(item.table, report_dir / f"{item.stem}.html", title=item.title))
        written.append(choropleth(item.table, item.column, report_dir / f"{item.stem}.png", title=item.map_title))
    return written
