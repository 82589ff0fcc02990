"""Tests for the Yahoo Finance providers and retry helpers."""

import asyncio
from datetime import date
from unittest.mock import AsyncMock, patch

import pandas as pd
import pytest

from stock_score.data import yahoo
from stock_score.data.yahoo import (
    YahooFundamentalDataProvider,
    YahooMarketDataProvider,
    YahooRetryError,
    _is_retryable_error,
    _with_suffix,
    history_to_prices,
)
from stock_score.models import FundamentalData


def _history_frame() -> pd.DataFrame:
    index = pd.to_datetime(["2024-01-03", "2024-01-02", "2024-01-04"])
    return pd.DataFrame(
        {
            "Open": [101.0, 100.0, 102.0],
            "High": [102.0, 101.0, 103.0],
            "Low": [100.0, 99.0, 101.0],
            "Close": [101.5, 100.5, float("nan")],
            "Volume": [2000.0, 1000.0, 3000.0],
        },
        index=index,
    )


class TestHistoryToPrices:
    """Tests for DataFrame to DailyPrice conversion."""

    def test_sorted_and_nan_closes_dropped(self) -> None:
        prices = history_to_prices(_history_frame())

        assert [p.date for p in prices] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert prices[0].close == 100.5
        assert prices[1].volume == 2000

    def test_missing_volume_is_unknown(self) -> None:
        df = _history_frame()
        df.loc[df.index[0], "Volume"] = float("nan")

        prices = history_to_prices(df)

        assert prices[1].volume is None


class TestSymbols:
    """Tests for exchange suffix handling."""

    def test_suffix_added(self) -> None:
        assert _with_suffix(" 2330 ", ".TW") == "2330.TW"

    def test_existing_suffix_kept(self) -> None:
        assert _with_suffix("2330.two", ".TW") == "2330.TWO"

    def test_us_ticker_unchanged(self) -> None:
        assert _with_suffix("aapl", "") == "AAPL"


class TestRetryClassification:
    """Tests for _is_retryable_error."""

    @pytest.mark.parametrize(
        "message",
        ["Too Many Requests", "rate limit exceeded", "Connection reset", "Read timeout", "temporary failure"],
    )
    def test_transient_errors(self, message: str) -> None:
        retryable, limit = _is_retryable_error(RuntimeError(message))
        assert retryable
        assert limit == yahoo._max_retries

    def test_invalid_crumb(self) -> None:
        assert _is_retryable_error(RuntimeError("401 Invalid Crumb")) == (True, 2)

    def test_permanent_error(self) -> None:
        assert _is_retryable_error(KeyError("symbol")) == (False, 0)


class TestRetryWithBackoff:
    """Tests for _retry_with_backoff."""

    def test_retries_then_succeeds(self) -> None:
        attempts = []

        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise ConnectionError("connection reset")
            return "ok"

        with patch.object(yahoo, "_calculate_backoff", return_value=0):
            result = asyncio.run(yahoo._retry_with_backoff("flaky", flaky, max_retries=3))

        assert result == "ok"
        assert len(attempts) == 3

    def test_exhausted(self) -> None:
        def down():
            raise ConnectionError("connection refused")

        with patch.object(yahoo, "_calculate_backoff", return_value=0):
            with pytest.raises(YahooRetryError) as exc_info:
                asyncio.run(yahoo._retry_with_backoff("down", down, max_retries=1))

        assert isinstance(exc_info.value.last_error, ConnectionError)

    def test_permanent_error_not_retried(self) -> None:
        attempts = []

        def broken():
            attempts.append(1)
            raise KeyError("regularMarketPrice")

        with pytest.raises(KeyError):
            asyncio.run(yahoo._retry_with_backoff("broken", broken))

        assert len(attempts) == 1


class TestSingleflight:
    """Tests for _singleflight_call."""

    def test_concurrent_callers_share_one_fetch(self) -> None:
        calls = []

        async def fetch():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "rows"

        async def scenario():
            return await asyncio.gather(
                yahoo._singleflight_call("k", fetch),
                yahoo._singleflight_call("k", fetch),
            )

        assert asyncio.run(scenario()) == ["rows", "rows"]
        assert len(calls) == 1
        assert "k" not in yahoo._singleflight


class TestYahooMarketDataProvider:
    """Tests for price history fetching."""

    def test_fetch_tw(self) -> None:
        history = AsyncMock(return_value=(_history_frame(), {"longName": "Taiwan Semiconductor"}))

        with patch("stock_score.data.yahoo.fetch_history", history):
            data = asyncio.run(YahooMarketDataProvider(suffix=".TW", period="3mo").fetch("2330"))

        history.assert_awaited_once_with("2330.TW", "3mo")
        assert data.stock_code == "2330"
        assert data.company_name == "Taiwan Semiconductor"
        assert len(data.prices) == 2

    def test_short_name_fallback(self) -> None:
        history = AsyncMock(return_value=(_history_frame(), {"shortName": "Apple"}))

        with patch("stock_score.data.yahoo.fetch_history", history):
            data = asyncio.run(YahooMarketDataProvider().fetch("aapl"))

        assert data.stock_code == "AAPL"
        assert data.company_name == "Apple"


class TestYahooFundamentalDataProvider:
    """Tests for fundamentals from the info dict."""

    INFO = {
        "trailingPE": 28.4,
        "priceToBook": 45.1,
        "trailingAnnualDividendYield": 0.0052,
        "totalRevenue": 383_285_000_000,
        "revenueGrowth": 0.061,
        "trailingEps": 6.43,
        "bookValue": 4.38,
        "netIncomeToCommon": 96_995_000_000,
        "mostRecentQuarter": 1703980800,
    }

    def test_field_mapping(self) -> None:
        with patch("stock_score.data.yahoo.fetch_info", AsyncMock(return_value=self.INFO)):
            data = asyncio.run(YahooFundamentalDataProvider().fetch("AAPL"))

        assert data.pe_ratio == 28.4
        assert data.pb_ratio == 45.1
        assert data.dividend_yield == 0.52
        assert data.revenue_yoy == 6.1
        assert data.monthly_revenue == 383_285.0
        assert data.eps == 6.43
        assert data.book_value_per_share == 4.38
        assert data.revenue_month == "2023-12"
        assert data.revenue_label == "營收(TTM)=383,285百萬美元"

    def test_nan_values_are_missing(self) -> None:
        info = {"trailingPE": float("nan"), "trailingEps": 6.43}
        with patch("stock_score.data.yahoo.fetch_info", AsyncMock(return_value=info)):
            data = asyncio.run(YahooFundamentalDataProvider().fetch("AAPL"))

        assert data.pe_ratio is None
        assert data.eps == 6.43

    def test_no_fundamentals_is_none(self) -> None:
        info = {"longName": "Some ETF", "quoteType": "ETF"}
        with patch("stock_score.data.yahoo.fetch_info", AsyncMock(return_value=info)):
            assert asyncio.run(YahooFundamentalDataProvider().fetch("SPY")) is None

    def test_enrich_derives_pe(self) -> None:
        data = FundamentalData(trailing_eps=5.0)
        enriched = YahooFundamentalDataProvider().enrich_with_market_price(data, 150.0)

        assert enriched.pe_ratio == 30.0

    def test_enrich_keeps_reported_pe(self) -> None:
        data = FundamentalData(pe_ratio=25.0, trailing_eps=5.0)
        assert YahooFundamentalDataProvider().enrich_with_market_price(data, 150.0) is data

    def test_enrich_ignores_losses(self) -> None:
        data = FundamentalData(trailing_eps=-2.0)
        assert YahooFundamentalDataProvider().enrich_with_market_price(data, 150.0).pe_ratio is None
