"""Tests for indicator series math."""

import numpy as np
import pandas as pd
import pytest

from stock_score.indicators.calculations import (
    calculate_bollinger_bands,
    calculate_ema,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
)


class TestSMA:
    """Tests for SMA calculation."""

    def test_sma_basic(self, sample_price_series: pd.Series) -> None:
        """Test basic SMA calculation."""
        sma = calculate_sma(sample_price_series, 5)

        # SMA should have NaN for first (period-1) values
        assert sma.iloc[:4].isna().all()

        # SMA of first 5 values: (100 + 101 + 102 + 101.5 + 103) / 5 = 101.5
        assert abs(sma.iloc[4] - 101.5) < 0.01

    def test_sma_insufficient_data(self) -> None:
        """Test SMA with insufficient data."""
        sma = calculate_sma(pd.Series([100, 101, 102]), 5)
        assert sma.isna().all()


class TestEMA:
    """Tests for EMA calculation."""

    def test_ema_starts_at_period(self, sample_price_series: pd.Series) -> None:
        ema = calculate_ema(sample_price_series, 5)

        assert pd.isna(ema.iloc[3])
        assert not pd.isna(ema.iloc[4])

    def test_ema_follows_trend(self, sample_price_series: pd.Series) -> None:
        """In an uptrend the EMA lags below the price."""
        ema = calculate_ema(sample_price_series, 5)
        assert ema.iloc[-1] < sample_price_series.iloc[-1]


class TestRSI:
    """Tests for RSI calculation."""

    def test_rsi_range(self, sample_price_series: pd.Series) -> None:
        """Test RSI stays in 0-100 range."""
        valid_rsi = calculate_rsi(sample_price_series, 14).dropna()

        assert (valid_rsi >= 0).all()
        assert (valid_rsi <= 100).all()

    def test_rsi_uptrend(self) -> None:
        """No losses at all gives 100."""
        rsi = calculate_rsi(pd.Series([100.0 + i for i in range(30)]), 14)
        assert rsi.iloc[-1] == 100.0

    def test_rsi_downtrend(self) -> None:
        """No gains at all gives 0."""
        rsi = calculate_rsi(pd.Series([100.0 - i for i in range(30)]), 14)
        assert rsi.iloc[-1] == pytest.approx(0.0)

    def test_rsi_flat(self) -> None:
        """A flat series has no losses and reads 100."""
        rsi = calculate_rsi(pd.Series([50.0] * 20), 14)
        assert rsi.iloc[-1] == 100.0

    def test_rsi_mixed_is_between(self, sample_price_series: pd.Series) -> None:
        rsi = calculate_rsi(sample_price_series, 14).iloc[-1]
        assert 50 < rsi < 100


class TestMACD:
    """Tests for MACD calculation."""

    def test_macd_components(self, sample_price_series: pd.Series) -> None:
        """Histogram is MACD minus signal."""
        lines = calculate_macd(pd.concat([sample_price_series] * 2, ignore_index=True))

        assert set(lines) == {"macd_line", "signal_line", "histogram"}
        last = lines["macd_line"].iloc[-1] - lines["signal_line"].iloc[-1]
        assert lines["histogram"].iloc[-1] == pytest.approx(last)

    def test_macd_uptrend_positive(self) -> None:
        lines = calculate_macd(pd.Series([100.0 + i for i in range(60)]))
        assert lines["macd_line"].iloc[-1] > 0


class TestStochastic:
    """Tests for the KD oscillator."""

    def test_first_values_seeded_at_50(self) -> None:
        """K and D start from 50 with 1/3 weight on the new value."""
        high = pd.Series([10.0, 11.0, 12.0, 13.0])
        low = pd.Series([8.0, 9.0, 10.0, 11.0])
        close = pd.Series([9.0, 10.0, 12.0, 11.0])

        kd = calculate_stochastic(high, low, close, period=3)

        assert kd["k"].iloc[:2].isna().all()
        assert kd["rsv"].iloc[2] == pytest.approx(100.0)
        assert kd["k"].iloc[2] == pytest.approx(200 / 3)
        assert kd["d"].iloc[2] == pytest.approx(2 / 3 * 50 + 1 / 3 * 200 / 3)
        assert kd["rsv"].iloc[3] == pytest.approx(50.0)
        assert kd["k"].iloc[3] == pytest.approx(2 / 3 * 200 / 3 + 1 / 3 * 50)

    def test_flat_window_rsv_50(self) -> None:
        """A window with no range reads 50 and K/D stay at 50."""
        flat = pd.Series([20.0] * 12)
        kd = calculate_stochastic(flat, flat, flat, period=9)

        assert kd["rsv"].iloc[-1] == 50.0
        assert kd["k"].iloc[-1] == pytest.approx(50.0)
        assert kd["d"].iloc[-1] == pytest.approx(50.0)

    def test_k_bounded(self, sample_price_series: pd.Series) -> None:
        kd = calculate_stochastic(sample_price_series * 1.01, sample_price_series * 0.99, sample_price_series)
        k = kd["k"].dropna()

        assert (k >= 0).all()
        assert (k <= 100).all()


class TestBollingerBands:
    """Tests for Bollinger Bands."""

    def test_band_width_uses_population_std(self) -> None:
        prices = pd.Series([float(i) for i in range(1, 21)])
        bands = calculate_bollinger_bands(prices)
        std = np.std(np.arange(1, 21))

        assert bands["middle"].iloc[-1] == pytest.approx(10.5)
        assert bands["upper"].iloc[-1] == pytest.approx(10.5 + 2 * std)
        assert bands["lower"].iloc[-1] == pytest.approx(10.5 - 2 * std)
        assert bands["percent_b"].iloc[-1] == pytest.approx((20 - (10.5 - 2 * std)) / (4 * std) * 100)

    def test_collapsed_bands(self) -> None:
        """Constant prices give zero bandwidth and %B of 50."""
        bands = calculate_bollinger_bands(pd.Series([30.0] * 25))

        assert bands["bandwidth"].iloc[-1] == 0.0
        assert bands["percent_b"].iloc[-1] == 50.0

    def test_nan_before_window(self) -> None:
        bands = calculate_bollinger_bands(pd.Series([float(i) for i in range(25)]))

        assert bands["percent_b"].iloc[:19].isna().all()
        assert bands["bandwidth"].iloc[:19].isna().all()
