"""Composite score tool."""

from time import perf_counter
from typing import Any

from stock_score.errors import RequiredDataError
from stock_score.scoring.service import StockScoreService
from stock_score.tools.shared import get_engine, get_factory
from stock_score.utils.provenance import build_error_response, build_meta
from stock_score.utils.serialize import to_jsonable


async def score_stock(stock_code: str, service: StockScoreService | None = None) -> dict[str, Any]:
    """
    Score a stock with every available indicator.

    Args:
        stock_code: TW code (e.g. "2330") or US ticker (e.g. "AAPL")
        service: Scoring service to use; defaults to one over the shared providers

    Returns:
        Serialized StockScoreResponse with meta, or a structured error
    """
    start_time = perf_counter()

    try:
        service = service or StockScoreService(get_factory(), get_engine())
        result = await service.score(stock_code)
    except RequiredDataError as e:
        return build_error_response(
            error_type="data_unavailable",
            message=str(e),
            stock_code=e.stock_code,
            tool="score_stock",
        )
    except ValueError as e:
        return build_error_response(
            error_type="invalid_request",
            message=str(e),
            stock_code=stock_code,
            tool="score_stock",
        )

    duration_ms = (perf_counter() - start_time) * 1000
    response = to_jsonable(result)
    response["meta"] = build_meta("score_stock", duration_ms)
    return response
