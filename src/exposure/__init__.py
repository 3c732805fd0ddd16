"""Population exposure to earthquake shaking, aggregated to administrative units."""

from .align import align_to_reference, crop_to_bounds, intersect_bounds
from .classify import (
    Category,
    CategoryKind,
    CategorySet,
    IntensityClasses,
    classify_intensity,
    derive_masks,
    population_by_class,
)
from .config import ExposureConfig
from .errors import (
    CategoryConfigurationError,
    EmptyIntersectionError,
    ExposureError,
    InvalidCalibrationError,
    SpatialReferenceMismatchError,
)
from .grid import RasterGrid
from .rescale import rescale_population, scale_factor
from .zonal import area_weighted_sum, area_weighted_sums, ensure_crs, zonal_population

__all__ = [
    "Category",
    "CategoryConfigurationError",
    "CategoryKind",
    "CategorySet",
    "EmptyIntersectionError",
    "ExposureConfig",
    "ExposureError",
    "IntensityClasses",
    "InvalidCalibrationError",
    "RasterGrid",
    "SpatialReferenceMismatchError",
    "align_to_reference",
    "area_weighted_sum",
    "area_weighted_sums",
    "classify_intensity",
    "crop_to_bounds",
    "derive_masks",
    "ensure_crs",
    "intersect_bounds",
    "population_by_class",
    "rescale_population",
    "scale_factor",
    "zonal_population",
]
