import geopandas as gpd
import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import Polygon, box

from exposure.classify import CategorySet, classify_intensity, derive_masks
from exposure.errors import SpatialReferenceMismatchError
from exposure.grid import RasterGrid
from exposure.zonal import (
    area_weighted_sum,
    area_weighted_sums,
    attach_population,
    check_conservation,
    ensure_crs,
    zonal_population,
)

CRS_4326 = CRS.from_epsg(4326)
TRANSFORM = from_origin(0.0, 3.0, 1.0, 1.0)
CATEGORIES = CategorySet.parse(["lt:7", "eq:7", "eq:8", "eq:9"])


def make_grid(values, transform=TRANSFORM, nodata=None) -> RasterGrid:
    return RasterGrid(np.asarray(values, dtype="float64"), transform, CRS_4326, nodata)


def make_polygons(geometries, index=None) -> gpd.GeoDataFrame:
    return gpd.GeoDataFrame({"name": [f"p{i}" for i in range(len(geometries))]}, geometry=geometries, crs="EPSG:4326", index=index)


def test_full_grid_polygon_splits_population_by_category():
    population = make_grid(np.full((3, 3), 10.0))
    intensity = np.full((3, 3), 6.0)
    intensity[1, 1] = 9.0
    masks = derive_masks(classify_intensity(make_grid(intensity)), CATEGORIES)

    table = zonal_population(make_polygons([box(0, 0, 3, 3)]), population, masks)

    row = table.iloc[0]
    assert row["pop"] == pytest.approx(90.0)
    assert row["pop_below7"] == pytest.approx(80.0)
    assert row["pop_9"] == pytest.approx(10.0)
    assert row["pop_7"] == 0
    assert row["pop_8"] == 0
    assert row["pop_unclassified"] == 0
    assert list(table.columns) == ["pop", "pop_below7", "pop_7", "pop_8", "pop_9", "pop_unclassified"]


def test_half_cell_polygon_gets_half_the_population():
    values = np.full((3, 3), 10.0)
    assert area_weighted_sum(values, TRANSFORM, box(0.0, 2.0, 0.5, 3.0)) == pytest.approx(5.0)


def test_triangle_coverage_is_exact():
    triangle = Polygon([(0, 0), (2, 0), (0, 2)])
    # bottom-left cell is fully inside, the diagonal halves two more
    assert area_weighted_sum(np.ones((3, 3)), TRANSFORM, triangle) == pytest.approx(2.0)


def test_sums_follow_geometry_order_and_skip_misses():
    values = np.arange(9, dtype=float).reshape(3, 3)
    geometries = gpd.GeoSeries([box(10, 10, 11, 11), box(0, 0, 1, 1), None, box(2, 2, 3, 3)])

    sums = area_weighted_sums(values, TRANSFORM, geometries)

    assert sums.tolist() == pytest.approx([0.0, 6.0, 0.0, 2.0])


def test_nan_cells_count_as_zero():
    values = np.full((3, 3), 4.0)
    values[0, 0] = np.nan
    assert area_weighted_sum(values, TRANSFORM, box(0, 2, 2, 3)) == pytest.approx(4.0)


def test_polygon_without_overlap_gets_zero_everywhere():
    population = make_grid(np.full((3, 3), 10.0))
    masks = derive_masks(classify_intensity(make_grid(np.full((3, 3), 8.0))), CATEGORIES)
    polygons = make_polygons([box(10, 10, 11, 11), box(2.5, 2.5, 3.5, 3.5)])

    table = zonal_population(polygons, population, masks)

    assert not table.isna().any().any()
    assert (table.iloc[0] == 0).all()
    assert table.iloc[1]["pop"] == pytest.approx(2.5)
    assert table.iloc[1]["pop_8"] == pytest.approx(2.5)


def test_empty_geometry_is_zero():
    assert area_weighted_sum(np.ones((3, 3)), TRANSFORM, Polygon()) == 0.0


def test_conservation_and_non_negativity_on_random_layout():
    rng = np.random.default_rng(3)
    transform = from_origin(96.0, 22.0, 0.1, 0.1)
    population = make_grid(rng.gamma(2.0, 50.0, size=(30, 30)), transform)
    intensity = make_grid(rng.uniform(4.0, 9.4, size=(30, 30)), transform)
    masks = derive_masks(classify_intensity(intensity), CATEGORIES)

    polygons = []
    for _ in range(25):
        x, y = rng.uniform(95.8, 98.8), rng.uniform(19.2, 22.0)
        w, h = rng.uniform(0.05, 0.8, size=2)
        polygons.append(box(x, y, x + w, y + h).buffer(0.03))
    table = zonal_population(make_polygons(polygons), population, masks)

    assert check_conservation(table, CATEGORIES.names).all()
    categories_sum = table[CATEGORIES.names].sum(axis=1)
    np.testing.assert_allclose(categories_sum, table["pop"], rtol=1e-6)
    assert (table >= 0).all().all()


def test_nodata_intensity_population_is_unclassified():
    population = make_grid(np.full((3, 3), 10.0))
    intensity = np.full((3, 3), 7.0)
    intensity[0, :] = np.nan
    masks = derive_masks(classify_intensity(make_grid(intensity)), CATEGORIES)

    row = zonal_population(make_polygons([box(0, 0, 3, 3)]), population, masks).iloc[0]

    assert row["pop"] == pytest.approx(90.0)
    assert row["pop_7"] == pytest.approx(60.0)
    assert row["pop_unclassified"] == pytest.approx(30.0)


def test_order_and_index_are_preserved():
    population = make_grid(np.arange(9, dtype=float).reshape(3, 3))
    polygons = make_polygons([box(2, 0, 3, 1), box(0, 2, 1, 3), box(1, 1, 2, 2)], index=["c", "a", "b"])

    table = zonal_population(polygons, population)

    assert list(table.index) == ["c", "a", "b"]
    assert table["pop"].tolist() == pytest.approx([8.0, 0.0, 4.0])
    assert list(table.columns) == ["pop"]


def test_polygons_are_reprojected_to_raster_crs():
    population = make_grid(np.full((3, 3), 10.0))
    polygons = make_polygons([box(0.0, 0.0, 1.0, 1.0)]).to_crs("EPSG:3857")

    table = zonal_population(polygons, population)

    assert table.iloc[0]["pop"] == pytest.approx(10.0, rel=1e-6)


def test_missing_polygon_crs_raises():
    polygons = gpd.GeoDataFrame(geometry=[box(0, 0, 1, 1)])
    with pytest.raises(SpatialReferenceMismatchError):
        ensure_crs(polygons, CRS_4326, source="ward")


def test_missing_raster_crs_raises():
    population = RasterGrid(np.ones((3, 3)), TRANSFORM, None)
    with pytest.raises(SpatialReferenceMismatchError):
        zonal_population(make_polygons([box(0, 0, 1, 1)]), population)


def test_attach_population_appends_columns_without_mutating_input():
    population = make_grid(np.full((3, 3), 10.0))
    polygons = make_polygons([box(0, 0, 3, 3)])
    table = zonal_population(polygons, population)

    out = attach_population(polygons, table)

    assert "pop" in out.columns and "pop" not in polygons.columns
    assert out["name"].tolist() == ["p0"]
