"""Command-line interface for the earthquake exposure pipeline."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import matplotlib
import typer

from .config import GROWTH_RATE, NATIONAL_TOTAL, ExposureConfig
from .errors import ExposureError
from .pipeline import PipelineResult, run_pipeline

app = typer.Typer(help="Population exposure to earthquake shaking, by ward and township")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo_summary(result: PipelineResult, categories: List[str]) -> None:
    """Pretty-print totals for every output layer."""

    columns = ["pop"] + categories
    typer.secho("\nPopulation by intensity class", fg=typer.colors.CYAN)
    typer.echo(result.by_class.to_string(index=False))

    for name, layer in result.wards.items():
        typer.secho(f"\nWards of {name} ({len(layer)})", fg=typer.colors.CYAN)
        typer.echo(layer[columns].sum().round(0).to_string())

    typer.secho(f"\nTownships ({len(result.townships)})", fg=typer.colors.CYAN)
    typer.echo(result.townships[columns].sum().round(0).to_string())

    typer.secho("\nOutputs", fg=typer.colors.CYAN)
    for path in result.outputs:
        typer.echo(f"Saved {path}")


@app.command()
def run(
    ward_path: Path = typer.Argument(..., help="Ward boundaries (GeoJSON, GeoPackage, ...)."),
    township_path: Path = typer.Argument(..., help="Township boundaries."),
    population_path: Path = typer.Argument(..., help="Population density raster (people per cell)."),
    intensity_path: Path = typer.Argument(..., help="Shaking intensity (MMI) raster."),
    output_dir: Path = typer.Option(Path("output"), help="Directory for augmented layers and tables."),
    national_total: float = typer.Option(NATIONAL_TOTAL, help="Authoritative national population total."),
    growth_rate: float = typer.Option(GROWTH_RATE, help="Annual population growth rate."),
    years: int = typer.Option(1, help="Years of growth to project forward."),
    category: List[str] = typer.Option(
        None,
        help="Intensity category, e.g. 'lt:7' or 'eq:8'. Repeat for each category (default lt:7 eq:7 eq:8 eq:9).",
    ),
    strict_categories: bool = typer.Option(
        True, help="Fail when intensity classes fall above the highest category."
    ),
    ward_unit: List[str] = typer.Option(None, help="District (DT) to report wards for. Repeatable."),
    township_unit: List[str] = typer.Option(None, help="State/region (ST) to report townships for. Repeatable."),
    township_prefix: List[str] = typer.Option(
        None, help="Township units matched by name prefix, e.g. 'Bago'. Repeatable."
    ),
    severe_category: Optional[str] = typer.Option(
        None, help="Column ranked in the ward report, e.g. 'pop_9' (default: highest category)."
    ),
    strong_category: List[str] = typer.Option(
        None, help="Column summed for the township report ranking. Repeatable (default: two highest categories)."
    ),
    report: bool = typer.Option(False, help="Also write ranked HTML tables and choropleth maps."),
    progress: bool = typer.Option(False, help="Show progress bars during zonal aggregation."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Estimate population per shaking-intensity category for wards and townships."""

    _configure_logging(verbose)
    for path in (ward_path, township_path, population_path, intensity_path):
        if not path.exists():
            raise typer.BadParameter(f"Input not found: {path}")

    overrides = {}
    if category:
        overrides["categories"] = tuple(category)
    if ward_unit:
        overrides["ward_units"] = tuple(ward_unit)
    if township_unit:
        overrides["township_units"] = tuple(township_unit)
    if township_prefix:
        overrides["township_prefixes"] = tuple(township_prefix)
    if severe_category:
        overrides["severe_category"] = severe_category
    if strong_category:
        overrides["strong_categories"] = tuple(strong_category)

    try:
        config = ExposureConfig(
            national_total=national_total,
            growth_rate=growth_rate,
            years=years,
            strict_categories=strict_categories,
            report=report,
            progress=progress,
            **overrides,
        )
        result = run_pipeline(ward_path, township_path, population_path, intensity_path, output_dir, config)
    except ExposureError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    _echo_summary(result, config.category_set.names)


def main() -> None:
    # maps are only ever saved to disk
    matplotlib.use("Agg")
    app()


if __name__ == "__main__":
    main()
