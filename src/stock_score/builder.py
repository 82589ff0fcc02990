"""Configurable stock analysis: options value plus a single async build step."""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from time import perf_counter
from types import MappingProxyType

from stock_score.data.providers import MarketDataProviderFactory, fetch_all, fetch_recovered
from stock_score.errors import AnalysisCancelledError, AnalysisUsageError, RequiredDataError
from stock_score.indicators.engine import IndicatorEngine
from stock_score.models import (
    AnalysisConfiguration,
    IndicatorCategory,
    IndicatorContext,
    IndicatorResult,
    MarketData,
    MarketRegion,
    StockAnalysisResult,
    StockScoreResponse,
)
from stock_score.scoring.risk import assess_risk
from stock_score.scoring.service import score_indicators
from stock_score.scoring.weights import DEFAULT_WEIGHT_CONFIG, CategoryWeightConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOptions:
    """
    What to analyze and how.

    Immutable: every with_*/for_* method returns a new value, so a base
    options object can be shared and specialized per request.
    """

    stock_code: str = ""
    market: MarketRegion | None = None
    include_technical: bool = True
    include_chip: bool = True
    include_fundamental: bool = True
    include_scoring: bool = True
    include_risk: bool = True
    allow_list: tuple[str, ...] = ()
    block_list: tuple[str, ...] = ()
    weight_overrides: Mapping[IndicatorCategory, float] = field(default_factory=lambda: MappingProxyType({}))

    def for_stock(self, stock_code: str) -> "AnalysisOptions":
        """Target a stock; an explicit market set earlier is kept."""
        return replace(self, stock_code=stock_code)

    def for_market(self, market: MarketRegion | str) -> "AnalysisOptions":
        return replace(self, market=MarketRegion(market))

    def with_technical(self, enabled: bool = True) -> "AnalysisOptions":
        return replace(self, include_technical=enabled)

    def with_chip(self, enabled: bool = True) -> "AnalysisOptions":
        return replace(self, include_chip=enabled)

    def with_fundamental(self, enabled: bool = True) -> "AnalysisOptions":
        return replace(self, include_fundamental=enabled)

    def with_scoring(self, enabled: bool = True) -> "AnalysisOptions":
        return replace(self, include_scoring=enabled)

    def with_risk(self, enabled: bool = True) -> "AnalysisOptions":
        return replace(self, include_risk=enabled)

    def only_indicators(self, *names: str) -> "AnalysisOptions":
        """Keep only these indicators (applied before the block list)."""
        return replace(self, allow_list=tuple(names))

    def exclude_indicators(self, *names: str) -> "AnalysisOptions":
        """Always drop these indicators, even if allow-listed."""
        return replace(self, block_list=tuple(names))

    def with_weights(self, overrides: Mapping[IndicatorCategory, float]) -> "AnalysisOptions":
        """Layer category weight overrides on top of any set earlier."""
        merged = {**self.weight_overrides, **overrides}
        return replace(self, weight_overrides=MappingProxyType(merged))

    def enabled_categories(self, include_chip: bool) -> set[IndicatorCategory]:
        enabled = set()
        if self.include_technical:
            enabled.add(IndicatorCategory.TECHNICAL)
        if include_chip:
            enabled.add(IndicatorCategory.CHIP)
        if self.include_fundamental:
            enabled.add(IndicatorCategory.FUNDAMENTAL)
        return enabled


def filter_indicators(
    indicators: Iterable[IndicatorResult],
    enabled_categories: set[IndicatorCategory],
    allow_list: Iterable[str] = (),
    block_list: Iterable[str] = (),
) -> list[IndicatorResult]:
    """Drop disabled categories, then apply the allow list, then the block list."""
    allowed = set(allow_list)
    blocked = set(block_list)

    kept = [i for i in indicators if i.category in enabled_categories]
    if allowed:
        kept = [i for i in kept if i.name in allowed]
    return [i for i in kept if i.name not in blocked]


class StockAnalysisBuilder:
    """
    Run a configurable analysis for one stock.

    Price history is required whenever technical or fundamental indicators
    are requested; chip and fundamental fetch failures degrade to "no data"
    for that category.
    """

    def __init__(
        self,
        factory: MarketDataProviderFactory,
        engine: IndicatorEngine,
        weight_config: CategoryWeightConfig = DEFAULT_WEIGHT_CONFIG,
    ):
        self._factory = factory
        self._engine = engine
        self._weight_config = weight_config

    async def build(
        self,
        options: AnalysisOptions,
        cancel_event: asyncio.Event | None = None,
    ) -> StockAnalysisResult:
        """
        Fetch, calculate, filter, score and assess one stock.

        Args:
            options: Analysis options; stock_code is required
            cancel_event: Optional signal; setting it aborts in-flight fetches

        Returns:
            StockAnalysisResult echoing the effective configuration

        Raises:
            AnalysisUsageError: If no stock code was given or a weight override is
                invalid (before any I/O)
            RequiredDataError: If price history was needed and could not be fetched
            AnalysisCancelledError: If cancel_event was set before or during the fetch
        """
        if not options.stock_code or not options.stock_code.strip():
            raise AnalysisUsageError("Stock code is required: call for_stock() before build()")
        stock_code = options.stock_code.strip().upper()

        try:
            weight_config = self._weight_config.with_overrides(options.weight_overrides)
        except ValueError as e:
            raise AnalysisUsageError(f"Invalid weight override: {e}") from e

        if cancel_event is not None and cancel_event.is_set():
            raise AnalysisCancelledError(stock_code)

        start = perf_counter()
        region = options.market or self._factory.detect_region(stock_code)
        market_provider = self._factory.market_provider(region)
        fundamental_provider = self._factory.fundamental_provider(region)
        chip_provider = self._factory.chip_provider(region)

        include_chip = options.include_chip and chip_provider is not None
        if options.include_chip and not include_chip:
            logger.info(f"No chip provider for market {region.value}; chip indicators disabled for {stock_code}")

        async def fetch_prices() -> MarketData:
            try:
                return await market_provider.fetch(stock_code)
            except Exception as e:
                raise RequiredDataError(stock_code, f"price history unavailable: {e}") from e

        fetches = {}
        if options.include_technical or options.include_fundamental:
            fetches["price"] = fetch_prices()
        if include_chip:
            fetches["chip"] = fetch_recovered(chip_provider.fetch(stock_code), "chip", stock_code)
        if options.include_fundamental:
            fetches["fundamental"] = fetch_recovered(fundamental_provider.fetch(stock_code), "fundamental", stock_code)

        fetched = await fetch_all(stock_code, fetches, cancel_event)
        price_data: MarketData | None = fetched.get("price")
        chip_data: MarketData | None = fetched.get("chip")
        fundamental_data = fetched.get("fundamental")

        prices = price_data.prices if price_data is not None else ()
        latest_close = prices[-1].close if prices else None

        fundamentals = fundamental_data or (price_data.fundamentals if price_data is not None else None)
        if fundamentals is not None and latest_close is not None:
            fundamentals = fundamental_provider.enrich_with_market_price(fundamentals, latest_close)

        context = IndicatorContext(
            stock_code=stock_code,
            prices=prices,
            fundamentals=fundamentals,
            chips=chip_data.chips if chip_data is not None else None,
        )
        indicators = filter_indicators(
            self._engine.calculate_all(context),
            options.enabled_categories(include_chip),
            options.allow_list,
            options.block_list,
        )

        company_name = (price_data.company_name if price_data else "") or (
            chip_data.company_name if chip_data else ""
        )
        data_range = price_data.data_range() if price_data is not None else "N/A"

        scoring = None
        if options.include_scoring and indicators:
            outcome = score_indicators(indicators, weight_config)
            scoring = StockScoreResponse(
                stock_code=stock_code,
                company_name=company_name,
                latest_close=latest_close,
                overall_score=outcome.overall_score,
                overall_direction=outcome.overall_direction,
                recommendation=outcome.recommendation,
                category_scores=outcome.category_scores,
                indicators=tuple(indicators),
                data_range=data_range,
            )

        risk = None
        if options.include_risk and indicators:
            risk = assess_risk(indicators, scoring.category_scores if scoring is not None else ())
            if scoring is not None:
                scoring = replace(scoring, risk=risk)

        configuration = AnalysisConfiguration(
            include_technical=options.include_technical,
            include_chip=include_chip,
            include_fundamental=options.include_fundamental,
            include_scoring=options.include_scoring,
            include_risk=options.include_risk,
            only_indicators=options.allow_list,
            exclude_indicators=options.block_list,
            weights=dict(weight_config.weights),
        )

        duration_ms = (perf_counter() - start) * 1000
        logger.info(
            f"build({stock_code}, {region.value}): {len(indicators)} indicators, "
            f"score={scoring.overall_score if scoring else None}, "
            f"risk={risk.level.value if risk else None} in {duration_ms:.0f}ms"
        )

        return StockAnalysisResult(
            stock_code=stock_code,
            company_name=company_name,
            market=region,
            latest_close=latest_close,
            indicators=tuple(indicators),
            scoring=scoring,
            risk=risk,
            data_range=data_range,
            configuration=configuration,
        )
