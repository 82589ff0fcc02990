"""Runs registered indicator calculators against a context."""

import logging
from collections.abc import Iterable

from stock_score.indicators.base import IndicatorCalculator
from stock_score.indicators.chip import (
    DirectorPledgeCalculator,
    ForeignHoldingCalculator,
    MarginTradingCalculator,
)
from stock_score.indicators.fundamental import (
    DividendYieldCalculator,
    EPSCalculator,
    PBRatioCalculator,
    PERatioCalculator,
    RevenueGrowthCalculator,
)
from stock_score.indicators.technical import (
    BollingerBandsCalculator,
    KDCalculator,
    MACalculator,
    MACDCalculator,
    RSICalculator,
    VolumeRatioCalculator,
)
from stock_score.models import IndicatorCategory, IndicatorContext, IndicatorResult

logger = logging.getLogger(__name__)


def default_calculators() -> list[IndicatorCalculator]:
    """Every built-in calculator in registration order (technical, chip, fundamental)."""
    return [
        MACalculator(),
        RSICalculator(),
        MACDCalculator(),
        KDCalculator(),
        BollingerBandsCalculator(),
        VolumeRatioCalculator(),
        MarginTradingCalculator(),
        ForeignHoldingCalculator(),
        DirectorPledgeCalculator(),
        PERatioCalculator(),
        PBRatioCalculator(),
        DividendYieldCalculator(),
        EPSCalculator(),
        RevenueGrowthCalculator(),
    ]


class IndicatorEngine:
    """
    Apply calculators to an IndicatorContext.

    Output order follows registration order, so identical input gives an
    identical list. A calculator that lacks data is skipped; one that raises
    is logged and skipped without affecting the others.
    """

    def __init__(self, calculators: Iterable[IndicatorCalculator] | None = None):
        self._calculators = list(calculators) if calculators is not None else default_calculators()

    @property
    def calculator_names(self) -> list[str]:
        return [c.name for c in self._calculators]

    def _run(self, calculators: Iterable[IndicatorCalculator], context: IndicatorContext) -> list[IndicatorResult]:
        results: list[IndicatorResult] = []
        for calculator in calculators:
            try:
                if not calculator.can_calculate(context):
                    logger.debug(f"Skipping {calculator.name}: insufficient data")
                    continue
                result = calculator.calculate(context)
            except Exception as e:
                logger.warning(f"Failed to calculate indicator {calculator.name}: {type(e).__name__}: {e}")
                continue
            results.append(result)
            logger.debug(f"Calculated {calculator.name}: {result.signal} ({result.score})")
        return results

    def calculate_all(self, context: IndicatorContext) -> list[IndicatorResult]:
        """Run every calculator that can handle the context."""
        return self._run(self._calculators, context)

    def calculate_by_category(
        self,
        context: IndicatorContext,
        category: IndicatorCategory,
    ) -> list[IndicatorResult]:
        """Run only the calculators of one category."""
        return self._run((c for c in self._calculators if c.category == category), context)

    def calculate_by_name(self, context: IndicatorContext, name: str) -> IndicatorResult | None:
        """
        Run a single calculator by name.

        Returns:
            The result, or None if no calculator has that name or it cannot
            calculate with this context
        """
        calculator = next((c for c in self._calculators if c.name == name), None)
        if calculator is None:
            logger.warning(f"Indicator {name} not found")
            return None
        if not calculator.can_calculate(context):
            logger.warning(f"Indicator {name} cannot calculate: insufficient data")
            return None
        return calculator.calculate(context)
