"""Category weight configuration for composite scoring."""

import math
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from stock_score.models import IndicatorCategory

# Nominal weights: technicals dominate, chips next, fundamentals last
DEFAULT_WEIGHTS: Mapping[IndicatorCategory, float] = MappingProxyType(
    {
        IndicatorCategory.TECHNICAL: 0.50,
        IndicatorCategory.CHIP: 0.30,
        IndicatorCategory.FUNDAMENTAL: 0.20,
    }
)


@dataclass(frozen=True)
class CategoryWeightConfig:
    """
    Nominal per-category weights.

    Immutable: per-call overrides produce a new config via with_overrides(),
    so a shared default instance can be read from concurrent analyses.
    """

    weights: Mapping[IndicatorCategory, float] = field(default_factory=lambda: dict(DEFAULT_WEIGHTS))

    def __post_init__(self) -> None:
        checked: dict[IndicatorCategory, float] = {}
        for category, weight in self.weights.items():
            if not isinstance(category, IndicatorCategory):
                raise ValueError(f"Unknown indicator category: {category!r}")
            if not math.isfinite(weight) or weight < 0:
                raise ValueError(f"Weight for {category.value} must be a finite number >= 0, got {weight}")
            checked[category] = float(weight)
        object.__setattr__(self, "weights", MappingProxyType(checked))

    def get_normalized_weights(
        self,
        available: Iterable[IndicatorCategory],
    ) -> dict[IndicatorCategory, float]:
        """
        Rescale weights so the categories actually present sum to 1.0.

        Categories without a nominal weight are left out of the result rather
        than given 0; use unweighted() to detect them.

        Args:
            available: Categories that produced at least one indicator

        Returns:
            Normalized weights, or the filtered map unchanged if its total is 0
        """
        present = set(available)
        filtered = {c: w for c, w in self.weights.items() if c in present}

        total = sum(filtered.values())
        if total == 0:
            return filtered

        return {c: w / total for c, w in filtered.items()}

    def unweighted(self, available: Iterable[IndicatorCategory]) -> set[IndicatorCategory]:
        """Categories present in an analysis that have no nominal weight."""
        return {c for c in available if c not in self.weights}

    def with_overrides(
        self,
        overrides: Mapping[IndicatorCategory, float] | None,
    ) -> "CategoryWeightConfig":
        """Return a new config where overrides win over this config's weights."""
        if not overrides:
            return self
        return CategoryWeightConfig(weights={**self.weights, **overrides})


def _weights_from_env() -> dict[IndicatorCategory, float]:
    env_keys = {
        IndicatorCategory.TECHNICAL: "WEIGHT_TECHNICAL",
        IndicatorCategory.CHIP: "WEIGHT_CHIP",
        IndicatorCategory.FUNDAMENTAL: "WEIGHT_FUNDAMENTAL",
    }
    weights = dict(DEFAULT_WEIGHTS)
    for category, key in env_keys.items():
        if raw := os.environ.get(key):
            weights[category] = float(raw)
    return weights


# Shared read-only default
DEFAULT_WEIGHT_CONFIG = CategoryWeightConfig(weights=_weights_from_env())
