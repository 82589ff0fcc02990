"""Shared value objects for the analysis pipeline."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from types import MappingProxyType

import pandas as pd


class IndicatorCategory(str, Enum):
    """Data domain an indicator belongs to."""

    TECHNICAL = "Technical"
    CHIP = "Chip"
    FUNDAMENTAL = "Fundamental"


class SignalDirection(str, Enum):
    """Ordinal bullish/bearish classification."""

    STRONG_BULLISH = "StrongBullish"
    BULLISH = "Bullish"
    NEUTRAL = "Neutral"
    BEARISH = "Bearish"
    STRONG_BEARISH = "StrongBearish"

    @property
    def is_bullish(self) -> bool:
        return self in (SignalDirection.BULLISH, SignalDirection.STRONG_BULLISH)

    @property
    def is_bearish(self) -> bool:
        return self in (SignalDirection.BEARISH, SignalDirection.STRONG_BEARISH)


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    VERY_HIGH = "VeryHigh"


class MarketRegion(str, Enum):
    TW = "TW"
    US = "US"


def round_score(value: float, ndigits: int = 1) -> float:
    """
    Round half away from zero on the decimal representation of a float.

    Python's round() works on the binary value, so 60.25 would become 60.2.
    Every 1-decimal score in the pipeline goes through here instead.
    """
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(repr(float(value))).quantize(quantum, rounding=ROUND_HALF_UP))


def _frozen_mapping(values: Mapping[str, float] | None) -> Mapping[str, float]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class IndicatorResult:
    """One indicator's output for one analysis run."""

    name: str
    category: IndicatorCategory
    value: float
    direction: SignalDirection = SignalDirection.NEUTRAL
    score: int = 50
    sub_values: Mapping[str, float] = field(default_factory=dict)
    signal: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "sub_values", _frozen_mapping(self.sub_values))
        if not 0 <= self.score <= 100:
            raise ValueError(f"Indicator score must be within 0-100, got {self.score} for {self.name}")


@dataclass(frozen=True)
class DailyPrice:
    """Daily OHLCV record."""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: int | None  # None when the source did not report it


@dataclass(frozen=True)
class FundamentalData:
    """
    Point-in-time fundamentals.

    Every field is optional; None means the provider did not report it.
    """

    pe_ratio: float | None = None
    pb_ratio: float | None = None
    dividend_yield: float | None = None  # percent
    monthly_revenue: float | None = None
    revenue_yoy: float | None = None  # percent
    revenue_mom: float | None = None  # percent
    eps: float | None = None
    trailing_eps: float | None = None
    book_value_per_share: float | None = None
    operating_income: float | None = None
    net_income: float | None = None
    fiscal_year_quarter: str | None = None
    revenue_month: str | None = None
    revenue_label: str | None = None


@dataclass(frozen=True)
class DirectorHolding:
    title: str
    name: str
    current_shares: int | None
    pledged_shares: int | None


@dataclass(frozen=True)
class ChipData:
    """
    Margin, short-selling, foreign-ownership and insider figures (lots/shares).

    Every field is optional; None means the provider did not report it.
    """

    # Margin trading
    margin_buy_volume: int | None = None
    margin_sell_volume: int | None = None
    margin_previous_balance: int | None = None
    margin_balance: int | None = None
    margin_limit: int | None = None
    # Short selling
    short_buy_volume: int | None = None
    short_sell_volume: int | None = None
    short_previous_balance: int | None = None
    short_balance: int | None = None
    short_limit: int | None = None
    offset_volume: int | None = None
    # Foreign investors
    foreign_holding_percentage: float | None = None
    foreign_holding_shares: int | None = None
    foreign_available_shares: int | None = None
    foreign_upper_limit: float | None = None
    # Securities borrowing and lending
    sbl_available_volume: int | None = None
    # Directors and supervisors
    director_holdings: tuple[DirectorHolding, ...] | None = None
    total_director_shares: int | None = None
    total_director_pledged: int | None = None
    director_pledge_ratio: float | None = None  # percent
    major_shareholders: tuple[str, ...] | None = None
    day_trading_suspended: bool | None = None


@dataclass(frozen=True)
class MarketData:
    """What a provider returns for one stock code."""

    stock_code: str
    company_name: str = ""
    prices: tuple[DailyPrice, ...] = ()
    fundamentals: FundamentalData | None = None
    chips: ChipData | None = None
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_empty(self) -> bool:
        return not self.prices and self.fundamentals is None and self.chips is None

    def data_range(self) -> str:
        if not self.prices:
            return "N/A"
        return f"{self.prices[0].date:%Y-%m-%d} ~ {self.prices[-1].date:%Y-%m-%d}"


@dataclass(frozen=True)
class IndicatorContext:
    """Everything the indicator engine may read, prices sorted oldest first."""

    stock_code: str
    prices: tuple[DailyPrice, ...] = ()
    fundamentals: FundamentalData | None = None
    chips: ChipData | None = None

    @property
    def latest_close(self) -> float | None:
        return self.prices[-1].close if self.prices else None

    @property
    def closes(self) -> pd.Series:
        return pd.Series([p.close for p in self.prices], dtype="float64")

    @property
    def highs(self) -> pd.Series:
        return pd.Series([p.high for p in self.prices], dtype="float64")

    @property
    def lows(self) -> pd.Series:
        return pd.Series([p.low for p in self.prices], dtype="float64")

    @property
    def volumes(self) -> pd.Series:
        return pd.Series([p.volume for p in self.prices], dtype="float64")


@dataclass(frozen=True)
class CategoryScore:
    """Aggregate for one category; weighted_score == round_score(score * weight)."""

    category: IndicatorCategory
    score: float
    weight: float
    weighted_score: float
    direction: SignalDirection
    summary: str
    indicator_count: int


@dataclass(frozen=True)
class RiskAssessment:
    level: RiskLevel
    factors: tuple[str, ...]
    divergence_score: float


@dataclass(frozen=True)
class StockScoreResponse:
    """Composite score for one stock."""

    stock_code: str
    overall_score: float
    overall_direction: SignalDirection
    recommendation: str
    category_scores: tuple[CategoryScore, ...]
    indicators: tuple[IndicatorResult, ...]
    company_name: str = ""
    latest_close: float | None = None
    risk: RiskAssessment | None = None
    data_range: str = ""
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class AnalysisConfiguration:
    """Effective configuration echoed back with a builder result."""

    include_technical: bool = True
    include_chip: bool = True
    include_fundamental: bool = True
    include_scoring: bool = True
    include_risk: bool = True
    only_indicators: tuple[str, ...] = ()
    exclude_indicators: tuple[str, ...] = ()
    weights: Mapping[IndicatorCategory, float] = field(default_factory=dict)


@dataclass(frozen=True)
class StockAnalysisResult:
    """Result of StockAnalysisBuilder.build()."""

    stock_code: str
    market: MarketRegion
    indicators: tuple[IndicatorResult, ...]
    configuration: AnalysisConfiguration
    company_name: str = ""
    latest_close: float | None = None
    scoring: StockScoreResponse | None = None
    risk: RiskAssessment | None = None
    data_range: str = "N/A"
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
