"""Run configuration with the defaults of the 2025 Myanmar earthquake analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

from .classify import DEFAULT_CATEGORIES, CategoryKind, CategorySet
from .errors import CategoryConfigurationError

# World Bank 2023 population estimate for Myanmar.
NATIONAL_TOTAL = 54_133_798
# Average annual growth 2021-23 (World Bank).
GROWTH_RATE = 0.007


@dataclass
class ExposureConfig:
    """Parameters for one exposure run."""

    national_total: float = NATIONAL_TOTAL
    growth_rate: float = GROWTH_RATE
    years: int = 1
    categories: Tuple[str, ...] = DEFAULT_CATEGORIES
    strict_categories: bool = True
    """Fail when intensity classes fall above the highest category."""

    ward_column: str = "DT"
    ward_units: Tuple[str, ...] = ("Mandalay", "Sagaing")
    township_column: str = "ST"
    township_units: Tuple[str, ...] = ("Sagaing", "Mandalay", "Nay Pyi Taw", "Bago")
    township_prefixes: Tuple[str, ...] = ("Bago",)
    """Township units matched by prefix (``Bago`` covers ``Bago (East)`` and ``Bago (West)``)."""

    severe_category: Optional[str] = None
    """Column ranked in the ward report; defaults to the highest category."""
    strong_categories: Optional[Tuple[str, ...]] = None
    """Columns ranked in the township report; defaults to the two highest exact-value categories."""
    report: bool = False
    progress: bool = False
    category_set: CategorySet = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.category_set = CategorySet.parse(self.categories)

        exact = [c.name for c in sorted(self.category_set, key=lambda c: c.value) if c.kind is CategoryKind.EQUALS]
        highest = exact[-1] if exact else self.category_set.names[0]
        if self.severe_category is None:
            self.severe_category = highest
        if self.strong_categories is None:
            self.strong_categories = tuple(exact[-2:]) or (highest,)
        self.strong_categories = tuple(self.strong_categories)

        known = set(self.category_set.names)
        unknown = [name for name in (self.severe_category, *self.strong_categories) if name not in known]
        if unknown:
            raise CategoryConfigurationError(
                f"Report categories {unknown} are not among the configured categories "
                f"{self.category_set.names}."
            )
