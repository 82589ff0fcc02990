"""Indicator calculators and the engine that runs them."""

from stock_score.indicators.base import IndicatorCalculator
from stock_score.indicators.calculations import (
    calculate_bollinger_bands,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
)
from stock_score.indicators.engine import IndicatorEngine, default_calculators

__all__ = [
    "IndicatorCalculator",
    "IndicatorEngine",
    "default_calculators",
    "calculate_bollinger_bands",
    "calculate_ema",
    "calculate_macd",
    "calculate_rsi",
    "calculate_sma",
    "calculate_stochastic",
]
