"""Discretise shaking intensity and derive per-category masks."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional

import numpy as np
import pandas as pd
from rasterio.crs import CRS
from rasterio.transform import Affine

from .errors import CategoryConfigurationError
from .grid import RasterGrid

LOGGER = logging.getLogger(__name__)


class CategoryKind(str, Enum):
    LESS_THAN = "lt"
    EQUALS = "eq"


@dataclass(frozen=True)
class Category:
    """One intensity bucket: a lower tail ``class < value`` or an exact ``class == value``."""

    kind: CategoryKind
    value: int

    @classmethod
    def less_than(cls, value: int) -> "Category":
        return cls(CategoryKind.LESS_THAN, int(value))

    @classmethod
    def equals(cls, value: int) -> "Category":
        return cls(CategoryKind.EQUALS, int(value))

    @classmethod
    def parse(cls, text: str) -> "Category":
        """Parse ``"lt:7"`` / ``"eq:8"`` (also ``"<7"`` / ``"=8"``)."""

        raw = text.strip().lower()
        if raw.startswith("<"):
            kind, value = "lt", raw[1:]
        elif raw.startswith("="):
            kind, value = "eq", raw[1:].lstrip("=")
        elif ":" in raw:
            kind, value = raw.split(":", 1)
        else:
            raise CategoryConfigurationError(f"Cannot parse category {text!r}; expected e.g. 'lt:7' or 'eq:8'.")
        try:
            return cls(CategoryKind(kind.strip()), int(value.strip()))
        except ValueError as exc:
            raise CategoryConfigurationError(f"Cannot parse category {text!r}: {exc}") from exc

    @property
    def name(self) -> str:
        """Attribute column the category's population is stored under."""
        if self.kind is CategoryKind.LESS_THAN:
            return f"pop_below{self.value}"
        return f"pop_{self.value}"

    def matches(self, classes: np.ndarray) -> np.ndarray:
        if self.kind is CategoryKind.LESS_THAN:
            return classes < self.value
        return classes == self.value

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.value}"


class CategorySet:
    """Ordered intensity categories, checked for gaps and overlaps on construction.

    A valid set has exactly one lower-tail bucket ``< T`` followed by exact-value
    buckets ``T, T+1, ..., K``. Classes above ``K`` are outside the set; whether
    that is an error is decided when masks are derived (see :func:`derive_masks`).
    """

    def __init__(self, categories: Iterable[Category]) -> None:
        self._categories: List[Category] = list(categories)
        self._validate()

    @classmethod
    def parse(cls, texts: Iterable[str]) -> "CategorySet":
        return cls(Category.parse(text) for text in texts)

    def _validate(self) -> None:
        if not self._categories:
            raise CategoryConfigurationError("At least one intensity category is required.")

        tails = [c for c in self._categories if c.kind is CategoryKind.LESS_THAN]
        exact = sorted(c.value for c in self._categories if c.kind is CategoryKind.EQUALS)

        if len(tails) != 1:
            raise CategoryConfigurationError(
                f"Exactly one lower-tail ('lt') category is required, got {len(tails)}: "
                f"{', '.join(str(c) for c in tails) or 'none'}."
            )
        if len(set(exact)) != len(exact):
            raise CategoryConfigurationError(f"Duplicate exact-value categories: {exact}.")

        threshold = tails[0].value
        expected = list(range(threshold, threshold + len(exact)))
        if exact != expected:
            raise CategoryConfigurationError(
                f"Exact-value categories must be contiguous from {threshold}; got {exact}."
            )

    @property
    def lower_tail(self) -> int:
        return next(c.value for c in self._categories if c.kind is CategoryKind.LESS_THAN)

    @property
    def upper(self) -> int:
        """Highest class covered by the set."""
        exact = [c.value for c in self._categories if c.kind is CategoryKind.EQUALS]
        return max(exact) if exact else self.lower_tail - 1

    @property
    def names(self) -> List[str]:
        return [c.name for c in self._categories]

    def __iter__(self) -> Iterator[Category]:
        return iter(self._categories)

    def __len__(self) -> int:
        return len(self._categories)

    def __repr__(self) -> str:
        return f"CategorySet([{', '.join(str(c) for c in self._categories)}])"


DEFAULT_CATEGORIES = ("lt:7", "eq:7", "eq:8", "eq:9")


@dataclass(frozen=True, eq=False)
class IntensityClasses:
    """Integer intensity classes on a grid; ``valid`` is false where intensity was missing."""

    classes: np.ndarray
    valid: np.ndarray
    transform: Affine
    crs: Optional[CRS] = None

    @property
    def shape(self):
        return self.classes.shape


def round_half_away(values: np.ndarray) -> np.ndarray:
    """Round to the nearest integer, ties away from zero."""
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def classify_intensity(grid: RasterGrid) -> IntensityClasses:
    """Round a continuous intensity grid to integer classes."""

    valid = grid.valid
    values = np.where(valid, grid.data, 0.0).astype("float64")
    classes = round_half_away(values).astype("int32")
    classes[~valid] = 0
    LOGGER.info("Classified %d of %d cells", int(valid.sum()), valid.size)
    return IntensityClasses(classes, valid, grid.transform, grid.crs)


def derive_masks(
    intensity: IntensityClasses,
    categories: CategorySet,
    *,
    strict: bool = True,
) -> Dict[str, np.ndarray]:
    """Boolean mask per category, in configured order.

    Cells without an intensity value are false in every mask. Classified cells
    above ``categories.upper`` raise :class:`CategoryConfigurationError` when
    ``strict`` is set and are otherwise left out of every mask.
    """

    uncovered = intensity.valid & (intensity.classes > categories.upper)
    if uncovered.any():
        found = sorted(int(v) for v in np.unique(intensity.classes[uncovered]))
        message = f"Intensity classes {found} fall above the highest category ({categories.upper}) in {categories!r}."
        if strict:
            raise CategoryConfigurationError(message)
        LOGGER.warning("%s %d cells left unassigned.", message, int(uncovered.sum()))

    masks: Dict[str, np.ndarray] = OrderedDict()
    for category in categories:
        masks[category.name] = category.matches(intensity.classes) & intensity.valid
    return masks


def population_by_class(population: RasterGrid, intensity: IntensityClasses) -> pd.DataFrame:
    """Total population per intensity class over the whole grid."""

    if population.shape != intensity.shape:
        raise ValueError(f"Population grid {population.shape} and classes {intensity.shape} differ in shape")

    values = population.filled(0.0)[intensity.valid]
    classes = intensity.classes[intensity.valid]
    frame = pd.DataFrame({"intensity": classes, "pop": values})
    summary = frame.groupby("intensity", as_index=False)["pop"].sum()

    missing = float(population.filled(0.0)[~intensity.valid].sum())
    if missing > 0:
        LOGGER.info("%.0f people fall on cells without intensity data", missing)
    return summary.sort_values("intensity").reset_index(drop=True)

