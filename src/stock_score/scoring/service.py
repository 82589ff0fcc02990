"""Category scores, overall score and recommendation."""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from time import perf_counter

from stock_score.data.providers import MarketDataProviderFactory, fetch_all, fetch_recovered
from stock_score.errors import AnalysisUsageError, RequiredDataError
from stock_score.indicators.engine import IndicatorEngine
from stock_score.models import (
    CategoryScore,
    IndicatorCategory,
    IndicatorContext,
    IndicatorResult,
    SignalDirection,
    StockScoreResponse,
    round_score,
)
from stock_score.scoring.risk import assess_risk
from stock_score.scoring.weights import DEFAULT_WEIGHT_CONFIG, CategoryWeightConfig

logger = logging.getLogger(__name__)

CATEGORY_NAMES = {
    IndicatorCategory.TECHNICAL: "技術面",
    IndicatorCategory.CHIP: "籌碼面",
    IndicatorCategory.FUNDAMENTAL: "基本面",
}

DIRECTION_LABELS = {
    SignalDirection.STRONG_BULLISH: "強勢看多",
    SignalDirection.BULLISH: "偏多",
    SignalDirection.NEUTRAL: "中性",
    SignalDirection.BEARISH: "偏空",
    SignalDirection.STRONG_BEARISH: "強勢看空",
}

RECOMMENDATIONS = {
    SignalDirection.STRONG_BULLISH: "強烈看多：技術面與籌碼面均呈現積極訊號，可考慮積極布局。",
    SignalDirection.BULLISH: "偏多操作：整體指標偏向正面，可考慮逢低佈局或持續持有。",
    SignalDirection.NEUTRAL: "中性觀望：多空訊號交錯，建議觀望或小量試單。",
    SignalDirection.BEARISH: "偏空操作：整體指標偏向負面，建議減碼或觀望。",
    SignalDirection.STRONG_BEARISH: "強烈看空：多項指標發出警訊，建議避開或停損。",
}
INSUFFICIENT_DATA = "資料不足，無法給出明確建議。"
DISTRIBUTION_WARNING = " 注意：技術面看多但籌碼面偏空，可能存在出貨風險。"
ACCUMULATION_HINT = " 提示：技術面偏弱但籌碼面看多，主力可能正在佈局。"

NEUTRAL_SCORE = 50.0


def determine_direction(score: float) -> SignalDirection:
    """Map a 0-100 score to a direction; each boundary belongs to the upper bucket."""
    if score >= 80:
        return SignalDirection.STRONG_BULLISH
    if score >= 60:
        return SignalDirection.BULLISH
    if score >= 40:
        return SignalDirection.NEUTRAL
    if score >= 20:
        return SignalDirection.BEARISH
    return SignalDirection.STRONG_BEARISH


def _category_summary(
    category: IndicatorCategory,
    direction: SignalDirection,
    indicators: Sequence[IndicatorResult],
) -> str:
    bullish = sum(1 for i in indicators if i.direction.is_bullish)
    bearish = sum(1 for i in indicators if i.direction.is_bearish)
    neutral = len(indicators) - bullish - bearish

    name = CATEGORY_NAMES.get(category, category.value)
    return (
        f"{name}{DIRECTION_LABELS[direction]}"
        f"（{bullish}多/{neutral}中/{bearish}空，共{len(indicators)}項指標）"
    )


def compute_category_score(
    category: IndicatorCategory,
    indicators: Sequence[IndicatorResult],
    weights: Mapping[IndicatorCategory, float],
) -> CategoryScore:
    """
    Average one category's indicator scores and apply its weight.

    Args:
        category: Category being scored
        indicators: That category's indicators (may be empty)
        weights: Normalized weights; a category missing here is scored at 0
            and logged

    Returns:
        CategoryScore with score and weighted_score rounded to 1 decimal
    """
    if indicators:
        avg_score = round_score(sum(i.score for i in indicators) / len(indicators))
    else:
        avg_score = NEUTRAL_SCORE

    weight = weights.get(category)
    if weight is None:
        logger.warning(f"No weight configured for category {category.value}; scoring it at weight 0")
        weight = 0.0

    direction = determine_direction(avg_score)

    return CategoryScore(
        category=category,
        score=avg_score,
        weight=weight,
        weighted_score=round_score(avg_score * weight),
        direction=direction,
        summary=_category_summary(category, direction, indicators),
        indicator_count=len(indicators),
    )


def generate_recommendation(
    overall_score: float,
    overall_direction: SignalDirection,
    category_scores: Sequence[CategoryScore],
) -> str:
    """
    Build the recommendation sentence.

    A bullish technical picture with bearish chips appends a distribution
    warning; the reverse appends an accumulation hint. Neutral triggers neither.
    """
    recommendation = RECOMMENDATIONS.get(overall_direction, INSUFFICIENT_DATA)

    by_category = {c.category: c for c in category_scores}
    technical = by_category.get(IndicatorCategory.TECHNICAL)
    chip = by_category.get(IndicatorCategory.CHIP)

    if technical is not None and chip is not None:
        if technical.direction.is_bullish and chip.direction.is_bearish:
            recommendation += DISTRIBUTION_WARNING
        elif technical.direction.is_bearish and chip.direction.is_bullish:
            recommendation += ACCUMULATION_HINT

    logger.debug(f"Recommendation for overall score {overall_score}: {overall_direction.value}")
    return recommendation


@dataclass(frozen=True)
class ScoringOutcome:
    category_scores: tuple[CategoryScore, ...]
    overall_score: float
    overall_direction: SignalDirection
    recommendation: str


def score_indicators(
    indicators: Sequence[IndicatorResult],
    weight_config: CategoryWeightConfig = DEFAULT_WEIGHT_CONFIG,
) -> ScoringOutcome:
    """
    Score a set of indicators against a weight config.

    Categories are scored in the order they first appear in the indicators.
    Weights are normalized over the categories actually present, so the
    overall score stays on the 0-100 scale when a category is missing.
    No indicators at all gives a neutral 50 with the insufficient-data message.

    Args:
        indicators: Indicator results to score
        weight_config: Nominal weights (defaults to the shared config)

    Returns:
        ScoringOutcome with category scores, overall score and recommendation
    """
    if not indicators:
        return ScoringOutcome(
            category_scores=(),
            overall_score=NEUTRAL_SCORE,
            overall_direction=SignalDirection.NEUTRAL,
            recommendation=INSUFFICIENT_DATA,
        )

    grouped: dict[IndicatorCategory, list[IndicatorResult]] = {}
    for indicator in indicators:
        grouped.setdefault(indicator.category, []).append(indicator)

    for category in weight_config.unweighted(grouped):
        logger.warning(f"Category {category.value} is present but has no nominal weight")

    weights = weight_config.get_normalized_weights(grouped)
    category_scores = tuple(
        compute_category_score(category, members, weights) for category, members in grouped.items()
    )

    overall_score = round_score(sum(c.weighted_score for c in category_scores))
    overall_direction = determine_direction(overall_score)

    return ScoringOutcome(
        category_scores=category_scores,
        overall_score=overall_score,
        overall_direction=overall_direction,
        recommendation=generate_recommendation(overall_score, overall_direction, category_scores),
    )


class StockScoreService:
    """
    Score a stock with every indicator the engine can calculate.

    Price history is required; chip and fundamental data are fetched alongside
    it and treated as absent when their provider fails. A price failure
    cancels the other fetches.
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

    async def score(self, stock_code: str) -> StockScoreResponse:
        """
        Fetch data, run all indicators, and produce a scored response.

        Raises:
            AnalysisUsageError: If stock_code is blank
            RequiredDataError: If price history cannot be fetched
        """
        if not stock_code or not stock_code.strip():
            raise AnalysisUsageError("Stock code is required")
        stock_code = stock_code.strip().upper()

        start = perf_counter()
        region = self._factory.detect_region(stock_code)
        market_provider = self._factory.market_provider(region)
        fundamental_provider = self._factory.fundamental_provider(region)
        chip_provider = self._factory.chip_provider(region)

        async def fetch_prices():
            try:
                return await market_provider.fetch(stock_code)
            except Exception as e:
                raise RequiredDataError(stock_code, f"price history unavailable: {e}") from e

        fetches = {
            "price": fetch_prices(),
            "fundamental": fetch_recovered(fundamental_provider.fetch(stock_code), "fundamental", stock_code),
        }
        if chip_provider is not None:
            fetches["chip"] = fetch_recovered(chip_provider.fetch(stock_code), "chip", stock_code)

        fetched = await fetch_all(stock_code, fetches)
        price_data = fetched["price"]
        chip_data = fetched.get("chip")

        fundamentals = fetched["fundamental"] or price_data.fundamentals
        if fundamentals is not None and price_data.prices:
            fundamentals = fundamental_provider.enrich_with_market_price(fundamentals, price_data.prices[-1].close)

        context = IndicatorContext(
            stock_code=stock_code,
            prices=price_data.prices,
            fundamentals=fundamentals,
            chips=chip_data.chips if chip_data is not None else None,
        )
        indicators = self._engine.calculate_all(context)
        outcome = score_indicators(indicators, self._weight_config)
        risk = assess_risk(indicators, outcome.category_scores)

        company_name = price_data.company_name or (chip_data.company_name if chip_data else "")

        duration_ms = (perf_counter() - start) * 1000
        logger.info(
            f"score({stock_code}): overall={outcome.overall_score} "
            f"{outcome.overall_direction.value}, risk={risk.level.value}, "
            f"{len(indicators)} indicators in {duration_ms:.0f}ms"
        )

        return StockScoreResponse(
            stock_code=stock_code,
            company_name=company_name,
            latest_close=context.latest_close,
            overall_score=outcome.overall_score,
            overall_direction=outcome.overall_direction,
            recommendation=outcome.recommendation,
            category_scores=outcome.category_scores,
            indicators=tuple(indicators),
            risk=risk,
            data_range=price_data.data_range(),
        )
