import numpy as np
import pytest
from rasterio.crs import CRS
from rasterio.transform import from_origin

from exposure.errors import InvalidCalibrationError
from exposure.grid import RasterGrid
from exposure.rescale import raw_total, rescale_population, scale_factor

NODATA = -99999.0


def make_population(values, nodata=NODATA) -> RasterGrid:
    data = np.asarray(values, dtype="float64")
    return RasterGrid(data, from_origin(96.0, 22.0, 0.01, 0.01), CRS.from_epsg(4326), nodata)


def test_raw_total_ignores_nodata_and_nan():
    grid = make_population([[1.0, 2.0], [NODATA, np.nan]])
    assert raw_total(grid) == pytest.approx(3.0)


def test_rescale_is_identity_when_totals_match():
    grid = make_population([[1.5, 2.5], [3.0, 4.0]])
    out = rescale_population(grid, authoritative_total=11.0, growth_rate=0.0)
    np.testing.assert_allclose(out.data, grid.data)
    assert out.nodata is None


def test_growth_applied_after_calibration():
    grid = make_population([[10.0, 10.0], [10.0, 10.0]])
    out = rescale_population(grid, authoritative_total=80.0, growth_rate=0.007)
    np.testing.assert_allclose(out.data, np.full((2, 2), 20.0 * 1.007))
    assert out.data.sum() == pytest.approx(80.0 * 1.007)


def test_growth_compounds_over_years():
    grid = make_population([[5.0, 5.0]])
    out = rescale_population(grid, authoritative_total=10.0, growth_rate=0.1, years=3)
    assert out.data.sum() == pytest.approx(10.0 * 1.1**3)


def test_nodata_cells_become_zero_population():
    grid = make_population([[10.0, NODATA], [np.nan, 30.0]])
    out = rescale_population(grid, authoritative_total=80.0, growth_rate=0.0)
    np.testing.assert_allclose(out.data, [[20.0, 0.0], [0.0, 60.0]])
    assert not np.isnan(out.data).any()
    # the source grid is left untouched
    assert grid.data[0, 1] == NODATA


def test_scale_factor_matches_relative_difference():
    assert scale_factor(50.0, 54.0) == pytest.approx(0.08)


@pytest.mark.parametrize("values", [[[0.0, 0.0]], [[NODATA, NODATA]]])
def test_non_positive_raw_total_is_rejected(values):
    grid = make_population(values)
    with pytest.raises(InvalidCalibrationError, match="population"):
        rescale_population(grid, authoritative_total=100.0, source="population")
