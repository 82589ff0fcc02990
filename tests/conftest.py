"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import Callable
from datetime import date, timedelta

import pandas as pd
import pytest

from stock_score.data.providers import MarketDataProviderFactory
from stock_score.models import (
    ChipData,
    DailyPrice,
    DirectorHolding,
    FundamentalData,
    IndicatorCategory,
    IndicatorResult,
    MarketData,
    MarketRegion,
    SignalDirection,
)


def build_prices(closes: list[float], volumes: list[int] | None = None) -> tuple[DailyPrice, ...]:
    """Daily bars on consecutive days from 2024-01-01, high/low 1% around the close."""
    volumes = volumes or [1_000_000] * len(closes)
    start = date(2024, 1, 1)
    return tuple(
        DailyPrice(
            date=start + timedelta(days=i),
            open=close,
            high=close * 1.01,
            low=close * 0.99,
            close=close,
            volume=volume,
        )
        for i, (close, volume) in enumerate(zip(closes, volumes))
    )


class FakeProvider:
    """In-memory provider; returns data, raises error, or waits on an event."""

    def __init__(self, data=None, error: Exception | None = None, block: asyncio.Event | None = None):
        self.data = data
        self.error = error
        self.block = block
        self.calls: list[str] = []
        self.cancelled = False

    async def fetch(self, stock_code: str):
        self.calls.append(stock_code)
        if self.block is not None:
            try:
                await self.block.wait()
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        if self.error is not None:
            raise self.error
        return self.data

    def enrich_with_market_price(self, data: FundamentalData, latest_close: float) -> FundamentalData:
        return data


class FakeFactory:
    """Factory routing to fake providers; US has no chip provider, like the real one."""

    detect_region = staticmethod(MarketDataProviderFactory.detect_region)

    def __init__(self, market: FakeProvider, fundamental: FakeProvider, chip: FakeProvider | None = None):
        self.market = market
        self.fundamental = fundamental
        self.chip = chip

    def market_provider(self, region: MarketRegion) -> FakeProvider:
        return self.market

    def fundamental_provider(self, region: MarketRegion) -> FakeProvider:
        return self.fundamental

    def chip_provider(self, region: MarketRegion) -> FakeProvider | None:
        return self.chip if region == MarketRegion.TW else None


@pytest.fixture
def rising_closes() -> list[float]:
    """70 steadily rising closes, enough for MA60 and MACD."""
    return [100.0 + i for i in range(70)]


@pytest.fixture
def sample_price_series() -> pd.Series:
    """Sample price series for indicator testing."""
    return pd.Series(
        [100.0, 101.0, 102.0, 101.5, 103.0, 104.0, 103.5, 105.0, 106.0, 105.5,
         107.0, 108.0, 107.5, 109.0, 110.0, 109.5, 111.0, 112.0, 111.5, 113.0,
         114.0, 113.5, 115.0, 116.0, 115.5, 117.0, 118.0, 117.5, 119.0, 120.0]
    )


@pytest.fixture
def sample_chips() -> ChipData:
    """Chip data that produces all three chip indicators."""
    return ChipData(
        margin_balance=10_000,
        margin_previous_balance=9_800,
        margin_limit=50_000,
        short_balance=500,
        short_previous_balance=480,
        offset_volume=10,
        foreign_holding_percentage=72.5,
        foreign_upper_limit=100.0,
        director_holdings=(
            DirectorHolding(title="董事長", name="甲", current_shares=1_000_000, pledged_shares=0),
            DirectorHolding(title="董事", name="乙", current_shares=500_000, pledged_shares=0),
        ),
    )


@pytest.fixture
def sample_fundamentals() -> FundamentalData:
    return FundamentalData(
        pe_ratio=18.0,
        pb_ratio=4.2,
        dividend_yield=2.1,
        monthly_revenue=200_000.0,
        revenue_yoy=25.0,
        revenue_mom=3.0,
        eps=10.5,
    )


@pytest.fixture
def market_data(rising_closes: list[float]) -> MarketData:
    return MarketData(stock_code="2330", company_name="台積電", prices=build_prices(rising_closes))


@pytest.fixture
def make_indicator() -> Callable[..., IndicatorResult]:
    """Factory for IndicatorResult with neutral defaults."""

    def _make(
        name: str = "X",
        category: IndicatorCategory = IndicatorCategory.TECHNICAL,
        score: int = 50,
        direction: SignalDirection = SignalDirection.NEUTRAL,
        value: float = 0.0,
        sub_values: dict[str, float] | None = None,
    ) -> IndicatorResult:
        return IndicatorResult(
            name=name,
            category=category,
            value=value,
            direction=direction,
            score=score,
            sub_values=sub_values or {},
        )

    return _make


@pytest.fixture
def tw_factory(market_data: MarketData, sample_chips: ChipData, sample_fundamentals: FundamentalData) -> FakeFactory:
    """Factory whose providers all succeed."""
    return FakeFactory(
        market=FakeProvider(market_data),
        fundamental=FakeProvider(sample_fundamentals),
        chip=FakeProvider(MarketData(stock_code="2330", chips=sample_chips)),
    )
