"""Configurable analysis tool."""

import logging
from time import perf_counter
from typing import Any

from stock_score.builder import AnalysisOptions, StockAnalysisBuilder
from stock_score.errors import AnalysisCancelledError, RequiredDataError
from stock_score.models import IndicatorCategory
from stock_score.tools.shared import get_engine, get_factory
from stock_score.utils.provenance import build_error_response, build_meta
from stock_score.utils.serialize import to_jsonable

logger = logging.getLogger(__name__)


def build_options(
    stock_code: str,
    market: str | None = None,
    include_technical: bool = True,
    include_chip: bool = True,
    include_fundamental: bool = True,
    include_scoring: bool = True,
    include_risk: bool = True,
    only: list[str] | None = None,
    exclude: list[str] | None = None,
    technical_weight: float | None = None,
    chip_weight: float | None = None,
    fundamental_weight: float | None = None,
) -> AnalysisOptions:
    """
    Translate flat tool arguments into AnalysisOptions.

    Raises:
        ValueError: If market is not a known region
    """
    options = (
        AnalysisOptions()
        .for_stock(stock_code)
        .with_technical(include_technical)
        .with_chip(include_chip)
        .with_fundamental(include_fundamental)
        .with_scoring(include_scoring)
        .with_risk(include_risk)
    )
    if market:
        options = options.for_market(market.strip().upper())
    if only:
        options = options.only_indicators(*only)
    if exclude:
        options = options.exclude_indicators(*exclude)

    overrides = {
        category: weight
        for category, weight in (
            (IndicatorCategory.TECHNICAL, technical_weight),
            (IndicatorCategory.CHIP, chip_weight),
            (IndicatorCategory.FUNDAMENTAL, fundamental_weight),
        )
        if weight is not None
    }
    if overrides:
        options = options.with_weights(overrides)
    return options


async def analyze_stock(
    stock_code: str,
    market: str | None = None,
    include_technical: bool = True,
    include_chip: bool = True,
    include_fundamental: bool = True,
    include_scoring: bool = True,
    include_risk: bool = True,
    only: list[str] | None = None,
    exclude: list[str] | None = None,
    technical_weight: float | None = None,
    chip_weight: float | None = None,
    fundamental_weight: float | None = None,
    builder: StockAnalysisBuilder | None = None,
) -> dict[str, Any]:
    """
    Run a configurable analysis for one stock.

    Args:
        stock_code: TW code (e.g. "2330") or US ticker (e.g. "AAPL")
        market: Force "TW" or "US" instead of detecting from the code
        include_technical: Calculate technical indicators
        include_chip: Calculate chip indicators (TW only)
        include_fundamental: Calculate fundamental indicators
        include_scoring: Produce category and overall scores
        include_risk: Produce a risk assessment
        only: Keep only these indicator names
        exclude: Drop these indicator names
        technical_weight: Override the technical category weight
        chip_weight: Override the chip category weight
        fundamental_weight: Override the fundamental category weight
        builder: Builder to use; defaults to one over the shared providers

    Returns:
        Serialized StockAnalysisResult with meta, or a structured error
    """
    start_time = perf_counter()

    try:
        options = build_options(
            stock_code,
            market=market,
            include_technical=include_technical,
            include_chip=include_chip,
            include_fundamental=include_fundamental,
            include_scoring=include_scoring,
            include_risk=include_risk,
            only=only,
            exclude=exclude,
            technical_weight=technical_weight,
            chip_weight=chip_weight,
            fundamental_weight=fundamental_weight,
        )
        builder = builder or StockAnalysisBuilder(get_factory(), get_engine())
        result = await builder.build(options)
    except RequiredDataError as e:
        return build_error_response(
            error_type="data_unavailable",
            message=str(e),
            stock_code=e.stock_code,
            tool="analyze_stock",
        )
    except AnalysisCancelledError as e:
        return build_error_response(
            error_type="cancelled",
            message=str(e),
            stock_code=e.stock_code,
            tool="analyze_stock",
        )
    except ValueError as e:
        # AnalysisUsageError is a ValueError, as are bad markets and weights
        return build_error_response(
            error_type="invalid_request",
            message=str(e),
            stock_code=stock_code,
            tool="analyze_stock",
        )

    duration_ms = (perf_counter() - start_time) * 1000
    response = to_jsonable(result)
    response["meta"] = build_meta("analyze_stock", duration_ms)
    return response
