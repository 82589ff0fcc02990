"""Async yfinance client with bounded concurrency, retry logic and singleflight."""

import asyncio
import logging
import math
import os
import random
from collections.abc import Awaitable, Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, TypeVar

import pandas as pd
import yfinance as yf
from requests.exceptions import HTTPError

from stock_score.errors import ProviderError
from stock_score.models import DailyPrice, FundamentalData, MarketData, round_score

logger = logging.getLogger(__name__)

# Bounded concurrency for yfinance calls
_max_workers = int(os.environ.get("YF_MAX_WORKERS", "4"))
_executor = ThreadPoolExecutor(max_workers=_max_workers)
_fetch_semaphore = asyncio.Semaphore(_max_workers)

# Retry configuration
_max_retries = int(os.environ.get("YF_MAX_RETRIES", "3"))
_base_delay = float(os.environ.get("YF_BASE_DELAY", "1.0"))  # seconds
_max_delay = float(os.environ.get("YF_MAX_DELAY", "30.0"))  # seconds

# Enough daily bars for MA60 and MACD warm-up
_history_period = os.environ.get("YF_HISTORY_PERIOD", "6mo")

T = TypeVar("T")


class YahooRetryError(ProviderError):
    """Raised when yfinance fails after all retries."""

    pass


class YahooNoDataError(ProviderError):
    """Raised when yfinance answers but has nothing for the symbol."""

    pass


def _has_value(v: Any) -> bool:
    """
    Check if a value is truly present (not None, NaN, or empty string).

    yfinance often uses float("nan") for missing numerics, which passes
    `is not None` but should be treated as missing.
    """
    if v is None:
        return False
    if isinstance(v, float) and math.isnan(v):
        return False
    if isinstance(v, str) and v.strip() == "":
        return False
    return True


def _is_retryable_error(error: Exception) -> tuple[bool, int]:
    """
    Check if an error is retryable (transient).

    Returns:
        Tuple of (is_retryable, max_retries_for_this_error)
    """
    if isinstance(error, HTTPError) and getattr(error, "response", None) is not None:
        status_code = error.response.status_code
        if status_code == 401:
            # Invalid crumb rarely recovers with more attempts
            return (True, 1)
        if status_code == 429 or 500 <= status_code < 600:
            return (True, _max_retries)

    error_str = str(error).lower()

    if "401" in error_str or "invalid crumb" in error_str:
        return (True, 2)

    retryable_patterns = [
        "rate limit",
        "too many requests",
        "connection",
        "timeout",
        "temporary",
    ]
    if any(pattern in error_str for pattern in retryable_patterns):
        return (True, _max_retries)

    return (False, 0)


def _calculate_backoff(attempt: int) -> float:
    """Calculate delay with exponential backoff and jitter."""
    delay = _base_delay * (2**attempt)
    # +/-25% jitter
    delay = delay + delay * 0.25 * (2 * random.random() - 1)
    return min(delay, _max_delay)


async def _retry_with_backoff(
    operation_name: str,
    sync_func: Callable[[], T],
    max_retries: int = _max_retries,
) -> T:
    """
    Run a blocking yfinance call in the executor, retrying transient failures.

    Args:
        operation_name: Name for logging (e.g., "fetch_history(2330.TW)")
        sync_func: Synchronous function to execute
        max_retries: Maximum number of retry attempts

    Returns:
        Whatever sync_func returns

    Raises:
        YahooRetryError: If all retries exhausted for a retryable error
    """
    for attempt in range(max_retries + 1):
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(_executor, sync_func)
        except Exception as e:
            is_retryable, error_max_retries = _is_retryable_error(e)
            if not is_retryable:
                raise

            effective_max_retries = min(max_retries, error_max_retries)
            if attempt >= effective_max_retries:
                logger.warning(
                    f"{operation_name}: Failed after {attempt + 1} attempts "
                    f"(limit={effective_max_retries + 1}). Last error: {e}"
                )
                raise YahooRetryError(f"Failed after {attempt + 1} attempts: {e}", last_error=e) from e

            delay = _calculate_backoff(attempt)
            logger.info(f"{operation_name}: Attempt {attempt + 1} failed ({e}). Retrying in {delay:.1f}s...")
            await asyncio.sleep(delay)

    raise YahooRetryError(f"Failed after {max_retries + 1} attempts")


# Singleflight: key -> in-flight task shared by concurrent callers
_singleflight: dict[str, asyncio.Task] = {}
_singleflight_lock = asyncio.Lock()


async def _singleflight_call(key: str, factory: Callable[[], Awaitable[T]]) -> T:
    """
    Deduplicate concurrent calls for the same key.

    The first caller creates the task; later callers await it through
    asyncio.shield() so one cancelled waiter does not cancel the shared fetch.
    The entry is removed by whichever caller finishes while it is still current.
    """
    joined = False
    async with _singleflight_lock:
        task = _singleflight.get(key)
        if task is None:
            task = asyncio.create_task(factory())
            _singleflight[key] = task
            logger.debug(f"{key}: created singleflight task")
        else:
            joined = True
            logger.debug(f"{key}: joining existing singleflight")

    try:
        if joined:
            return await asyncio.shield(task)
        return await task
    finally:
        async with _singleflight_lock:
            if _singleflight.get(key) is task:
                _singleflight.pop(key, None)


async def _fetch_history_raw(symbol: str, period: str) -> tuple[pd.DataFrame, dict[str, Any]]:
    def _fetch() -> tuple[pd.DataFrame, dict[str, Any]]:
        ticker = yf.Ticker(symbol)
        df = ticker.history(period=period, interval="1d", auto_adjust=False)
        if df is None or df.empty:
            raise YahooNoDataError(f"No price history returned for {symbol}")
        metadata = getattr(ticker, "history_metadata", None) or {}
        return df, metadata

    async with _fetch_semaphore:
        return await _retry_with_backoff(f"fetch_history({symbol})", _fetch)


async def fetch_history(symbol: str, period: str = _history_period) -> tuple[pd.DataFrame, dict[str, Any]]:
    """
    Fetch daily OHLCV history and the chart metadata for one symbol.

    Returns:
        Tuple of (DataFrame indexed by date, history metadata dict)

    Raises:
        YahooRetryError: If all retries exhausted for retryable errors
        YahooNoDataError: If the symbol has no history
    """
    symbol = symbol.upper().strip()
    return await _singleflight_call(
        f"history:{symbol}:{period}",
        lambda: _fetch_history_raw(symbol, period),
    )


async def _fetch_info_raw(symbol: str) -> dict[str, Any]:
    def _fetch() -> dict[str, Any]:
        info = yf.Ticker(symbol).info
        if not info:
            raise YahooNoDataError(f"No info returned for {symbol}")
        return info

    async with _fetch_semaphore:
        return await _retry_with_backoff(f"fetch_info({symbol})", _fetch)


async def fetch_info(symbol: str) -> dict[str, Any]:
    """
    Fetch the yfinance info dict (fundamentals, metadata) with singleflight.

    Raises:
        YahooRetryError: If all retries exhausted for retryable errors
        YahooNoDataError: If the symbol is unknown
    """
    symbol = symbol.upper().strip()
    return await _singleflight_call(f"info:{symbol}", lambda: _fetch_info_raw(symbol))


def history_to_prices(df: pd.DataFrame) -> tuple[DailyPrice, ...]:
    """Convert a yfinance history frame to DailyPrice records, oldest first."""
    df = df.dropna(subset=["Close"]).sort_index()
    prices = []
    for ts, row in df.iterrows():
        volume = row.get("Volume")
        prices.append(
            DailyPrice(
                date=pd.Timestamp(ts).date(),
                open=float(row["Open"]),
                high=float(row["High"]),
                low=float(row["Low"]),
                close=float(row["Close"]),
                volume=int(volume) if _has_value(volume) else None,
            )
        )
    return tuple(prices)


def _with_suffix(stock_code: str, suffix: str) -> str:
    code = stock_code.strip().upper()
    if suffix and "." not in code:
        return f"{code}{suffix}"
    return code


class YahooMarketDataProvider:
    """
    Daily price history from Yahoo Finance.

    Taiwan listings are quoted on Yahoo with a ".TW" suffix; pass suffix=".TW"
    for that market and leave it empty for US tickers.
    """

    def __init__(self, suffix: str = "", period: str | None = None):
        self.suffix = suffix
        self.period = period or _history_period

    async def fetch(self, stock_code: str) -> MarketData:
        symbol = _with_suffix(stock_code, self.suffix)
        df, metadata = await fetch_history(symbol, self.period)
        prices = history_to_prices(df)
        company_name = metadata.get("longName") or metadata.get("shortName") or ""

        logger.info(f"Fetched {len(prices)} price records for {symbol} from Yahoo Finance")
        return MarketData(
            stock_code=stock_code.strip().upper(),
            company_name=company_name,
            prices=prices,
        )


def _pct(value: Any) -> float | None:
    """yfinance growth and yield fields are fractions; convert to percent."""
    if not _has_value(value):
        return None
    return round_score(float(value) * 100, 2)


def _num(value: Any) -> float | None:
    return float(value) if _has_value(value) else None


class YahooFundamentalDataProvider:
    """
    Valuation and earnings figures from the yfinance info dict.

    Revenue is trailing twelve months in millions, with quarterly YoY growth.
    """

    def __init__(self, suffix: str = ""):
        self.suffix = suffix

    async def fetch(self, stock_code: str) -> FundamentalData | None:
        symbol = _with_suffix(stock_code, self.suffix)
        info = await fetch_info(symbol)

        total_revenue = _num(info.get("totalRevenue"))
        most_recent_quarter = info.get("mostRecentQuarter")
        revenue_month = None
        if _has_value(most_recent_quarter):
            revenue_month = datetime.fromtimestamp(int(most_recent_quarter), tz=timezone.utc).strftime("%Y-%m")

        data = FundamentalData(
            pe_ratio=_num(info.get("trailingPE")),
            pb_ratio=_num(info.get("priceToBook")),
            dividend_yield=_pct(info.get("trailingAnnualDividendYield")),
            monthly_revenue=total_revenue / 1_000_000 if total_revenue is not None else None,
            revenue_yoy=_pct(info.get("revenueGrowth")),
            eps=_num(info.get("trailingEps")),
            trailing_eps=_num(info.get("trailingEps")),
            book_value_per_share=_num(info.get("bookValue")),
            net_income=_num(info.get("netIncomeToCommon")),
            revenue_month=revenue_month,
            revenue_label=(
                f"營收(TTM)={total_revenue / 1_000_000:,.0f}百萬美元" if total_revenue is not None else None
            ),
        )

        if data == FundamentalData(revenue_month=revenue_month):
            logger.info(f"No fundamentals in yfinance info for {symbol}")
            return None
        return data

    def enrich_with_market_price(self, data: FundamentalData, latest_close: float) -> FundamentalData:
        """Derive P/E from trailing EPS when Yahoo did not report one."""
        if latest_close is None or latest_close <= 0:
            return data
        if data.pe_ratio is None and data.trailing_eps is not None and data.trailing_eps > 0:
            return replace(data, pe_ratio=round_score(latest_close / data.trailing_eps, 2))
        return data


def shutdown_executor() -> None:
    """Cleanup on server shutdown."""
    _executor.shutdown(wait=False, cancel_futures=True)
