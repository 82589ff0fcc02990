"""Technical indicator calculations."""

import numpy as np
import pandas as pd


def calculate_sma(prices: pd.Series, period: int) -> pd.Series:
    """
    Calculate Simple Moving Average.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        SMA series
    """
    return prices.rolling(window=period, min_periods=period).mean()


def calculate_ema(prices: pd.Series, period: int) -> pd.Series:
    """
    Calculate Exponential Moving Average.

    Args:
        prices: Price series (typically close prices)
        period: Number of periods for the average

    Returns:
        EMA series
    """
    return prices.ewm(span=period, adjust=False, min_periods=period).mean()


def calculate_rsi(prices: pd.Series, period: int = 14) -> pd.Series:
    """
    Calculate Relative Strength Index.

    Uses Wilder's smoothing method (exponential moving average).

    Args:
        prices: Price series (typically close prices)
        period: RSI period (default: 14)

    Returns:
        RSI series (0-100 scale); 100 wherever the average loss is zero
    """
    delta = prices.diff()

    gain = delta.where(delta > 0, 0.0)
    loss = (-delta).where(delta < 0, 0.0)

    # Wilder's smoothing: alpha = 1/period
    avg_gain = gain.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()
    avg_loss = loss.ewm(alpha=1 / period, min_periods=period, adjust=False).mean()

    rs = avg_gain / avg_loss
    rsi = 100 - (100 / (1 + rs))

    # No losses in the window (includes a flat series, where rs is 0/0)
    rsi = rsi.replace([np.inf, -np.inf], 100).mask(avg_loss == 0, 100.0)

    return rsi


def calculate_macd(
    prices: pd.Series,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> dict[str, pd.Series]:
    """
    Calculate MACD (Moving Average Convergence Divergence).

    Args:
        prices: Price series (typically close prices)
        fast: Fast EMA period (default: 12)
        slow: Slow EMA period (default: 26)
        signal: Signal line period (default: 9)

    Returns:
        Dict with 'macd_line', 'signal_line', 'histogram' series
    """
    ema_fast = calculate_ema(prices, fast)
    ema_slow = calculate_ema(prices, slow)

    macd_line = ema_fast - ema_slow
    signal_line = calculate_ema(macd_line, signal)
    histogram = macd_line - signal_line

    return {
        "macd_line": macd_line,
        "signal_line": signal_line,
        "histogram": histogram,
    }


def calculate_stochastic(
    high: pd.Series,
    low: pd.Series,
    close: pd.Series,
    period: int = 9,
) -> dict[str, pd.Series]:
    """
    Calculate the KD stochastic oscillator (Taiwan convention).

    K and D both start at 50 and are smoothed with 1/3 weight on the new
    value: K = 2/3 * K_prev + 1/3 * RSV, D = 2/3 * D_prev + 1/3 * K.

    Args:
        high: High price series
        low: Low price series
        close: Close price series
        period: RSV lookback (default: 9)

    Returns:
        Dict with 'rsv', 'k', 'd' series; NaN before the first full window
    """
    highest = high.rolling(window=period, min_periods=period).max()
    lowest = low.rolling(window=period, min_periods=period).min()
    price_range = highest - lowest

    # Flat window: RSV 50; NaN range stays NaN since NaN != 0
    rsv = ((close - lowest) / price_range * 100).where(price_range != 0, 50.0)

    def smooth(values: pd.Series) -> pd.Series:
        valid = values.dropna()
        # Seed with 50 so the first step is 2/3 * 50 + 1/3 * value
        seeded = pd.concat([pd.Series([50.0]), valid], ignore_index=True)
        smoothed = seeded.ewm(alpha=1 / 3, adjust=False).mean().iloc[1:]
        smoothed.index = valid.index
        return smoothed.reindex(values.index)

    k = smooth(rsv)
    d = smooth(k)

    return {"rsv": rsv, "k": k, "d": d}


def calculate_bollinger_bands(
    prices: pd.Series,
    period: int = 20,
    num_std: float = 2.0,
) -> dict[str, pd.Series]:
    """
    Calculate Bollinger Bands with population standard deviation.

    Args:
        prices: Price series (typically close prices)
        period: Moving average period (default: 20)
        num_std: Band width in standard deviations (default: 2.0)

    Returns:
        Dict with 'upper', 'middle', 'lower', 'bandwidth' (% of middle) and
        'percent_b' (0-100, 50 when the bands collapse) series
    """
    middle = calculate_sma(prices, period)
    std = prices.rolling(window=period, min_periods=period).std(ddof=0)

    upper = middle + num_std * std
    lower = middle - num_std * std
    width = upper - lower

    bandwidth = (width / middle * 100).where(middle > 0, 0.0)
    percent_b = ((prices - lower) / width * 100).where(width > 0, 50.0)

    return {
        "upper": upper,
        "middle": middle,
        "lower": lower,
        "bandwidth": bandwidth.where(middle.notna()),
        "percent_b": percent_b.where(middle.notna()),
    }
