"""Price and volume based indicators."""

from stock_score.indicators.base import Evaluation
from stock_score.indicators.calculations import (
    calculate_bollinger_bands,
    calculate_macd,
    calculate_rsi,
    calculate_sma,
    calculate_stochastic,
)
from stock_score.models import (
    IndicatorCategory,
    IndicatorContext,
    IndicatorResult,
    SignalDirection,
)


class MACalculator:
    """Moving average alignment of close, MA5, MA20 and (when available) MA60."""

    name = "MA"
    category = IndicatorCategory.TECHNICAL

    SHORT_PERIOD = 5
    MID_PERIOD = 20
    LONG_PERIOD = 60

    def can_calculate(self, context: IndicatorContext) -> bool:
        return len(context.prices) >= self.MID_PERIOD

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        closes = context.closes
        close = float(closes.iloc[-1])
        ma5 = float(calculate_sma(closes, self.SHORT_PERIOD).iloc[-1])
        ma20 = float(calculate_sma(closes, self.MID_PERIOD).iloc[-1])
        ma60 = (
            float(calculate_sma(closes, self.LONG_PERIOD).iloc[-1])
            if len(closes) >= self.LONG_PERIOD
            else None
        )

        signal, direction, score = self.evaluate(close, ma5, ma20, ma60)

        sub_values = {"MA5": ma5, "MA20": ma20}
        reason = f"收盤價 {close:.2f}，MA5={ma5:.2f}，MA20={ma20:.2f}"
        if ma60 is not None:
            sub_values["MA60"] = ma60
            reason += f"，MA60={ma60:.2f}"

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=ma20,
            sub_values=sub_values,
            signal=signal,
            direction=direction,
            score=score,
            reason=reason,
        )

    @staticmethod
    def evaluate(close: float, ma5: float, ma20: float, ma60: float | None) -> Evaluation:
        above_ma5 = close > ma5
        above_ma20 = close > ma20
        ma5_above_ma20 = ma5 > ma20

        if ma60 is not None:
            above_ma60 = close > ma60
            ma20_above_ma60 = ma20 > ma60

            if above_ma5 and ma5_above_ma20 and ma20_above_ma60:
                return "多頭排列", SignalDirection.STRONG_BULLISH, 90
            if not above_ma5 and not ma5_above_ma20 and not ma20_above_ma60:
                return "空頭排列", SignalDirection.STRONG_BEARISH, 10
            if above_ma5 and above_ma20 and above_ma60:
                return "偏多", SignalDirection.BULLISH, 70
            if not above_ma5 and not above_ma20 and not above_ma60:
                return "偏空", SignalDirection.BEARISH, 30
        else:
            if above_ma5 and ma5_above_ma20:
                return "短期多頭", SignalDirection.BULLISH, 75
            if not above_ma5 and not ma5_above_ma20:
                return "短期空頭", SignalDirection.BEARISH, 25

        if above_ma20:
            return "中期偏多，短期震盪", SignalDirection.NEUTRAL, 55
        return "均線糾結", SignalDirection.NEUTRAL, 50


class RSICalculator:
    """14-period RSI with Wilder's smoothing."""

    name = "RSI"
    category = IndicatorCategory.TECHNICAL

    PERIOD = 14

    def can_calculate(self, context: IndicatorContext) -> bool:
        # One price change per period
        return len(context.prices) > self.PERIOD

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        rsi = float(calculate_rsi(context.closes, self.PERIOD).iloc[-1])
        signal, direction, score = self.evaluate(rsi)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=rsi,
            sub_values={"RSI14": rsi},
            signal=signal,
            direction=direction,
            score=score,
            reason=f"RSI(14)={rsi:.2f}，{signal}",
        )

    @staticmethod
    def evaluate(rsi: float) -> Evaluation:
        if rsi >= 80:
            return "極度超買，注意回檔風險", SignalDirection.STRONG_BEARISH, 15
        if rsi >= 70:
            return "超買區間，宜謹慎", SignalDirection.BEARISH, 30
        if rsi <= 20:
            return "極度超賣，可能反彈", SignalDirection.STRONG_BULLISH, 85
        if rsi <= 30:
            return "超賣區間，留意買點", SignalDirection.BULLISH, 70
        if rsi >= 50:
            return "中性偏多", SignalDirection.BULLISH, 60
        return "中性偏空", SignalDirection.BEARISH, 40


def _crossover(current: float, current_ref: float, previous: float, previous_ref: float) -> str | None:
    """Return 'golden' when the line crosses above its reference, 'death' when below."""
    if previous <= previous_ref and current > current_ref:
        return "golden"
    if previous >= previous_ref and current < current_ref:
        return "death"
    return None


class MACDCalculator:
    """MACD 12/26/9 with golden/death cross detection on the last bar."""

    name = "MACD"
    category = IndicatorCategory.TECHNICAL

    FAST = 12
    SLOW = 26
    SIGNAL = 9

    def can_calculate(self, context: IndicatorContext) -> bool:
        return len(context.prices) >= self.SLOW + self.SIGNAL

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        lines = calculate_macd(context.closes, self.FAST, self.SLOW, self.SIGNAL)
        macd = float(lines["macd_line"].iloc[-1])
        signal_line = float(lines["signal_line"].iloc[-1])
        histogram = float(lines["histogram"].iloc[-1])

        crossover = _crossover(
            macd,
            signal_line,
            float(lines["macd_line"].iloc[-2]),
            float(lines["signal_line"].iloc[-2]),
        )
        signal, direction, score = self.evaluate(macd, histogram, crossover)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=macd,
            sub_values={
                "MACD": macd,
                "Signal": signal_line,
                "Histogram": histogram,
                "DIF": macd,
            },
            signal=signal,
            direction=direction,
            score=score,
            reason=f"MACD={macd:.4f}，Signal={signal_line:.4f}，柱狀={histogram:.4f}，{signal}",
        )

    @staticmethod
    def evaluate(macd: float, histogram: float, crossover: str | None) -> Evaluation:
        if crossover == "golden":
            return "MACD金叉，買進訊號", SignalDirection.STRONG_BULLISH, 85
        if crossover == "death":
            return "MACD死叉，賣出訊號", SignalDirection.STRONG_BEARISH, 15
        if macd > 0 and histogram > 0:
            return "MACD多方，動能增強", SignalDirection.BULLISH, 70
        if macd > 0 and histogram < 0:
            return "MACD多方，動能減弱", SignalDirection.NEUTRAL, 55
        if macd < 0 and histogram < 0:
            return "MACD空方，動能增強", SignalDirection.BEARISH, 30
        if macd < 0 and histogram > 0:
            return "MACD空方，動能減弱", SignalDirection.NEUTRAL, 45
        return "MACD中性", SignalDirection.NEUTRAL, 50


class KDCalculator:
    """KD stochastic 9/3/3; crossover zone is judged by K against 50."""

    name = "KD"
    category = IndicatorCategory.TECHNICAL

    RSV_PERIOD = 9
    K_SMOOTH = 3
    D_SMOOTH = 3

    def can_calculate(self, context: IndicatorContext) -> bool:
        return len(context.prices) >= self.RSV_PERIOD + self.K_SMOOTH + self.D_SMOOTH

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        kd = calculate_stochastic(context.highs, context.lows, context.closes, self.RSV_PERIOD)
        k = float(kd["k"].iloc[-1])
        d = float(kd["d"].iloc[-1])

        crossover = _crossover(k, d, float(kd["k"].iloc[-2]), float(kd["d"].iloc[-2]))
        signal, direction, score = self.evaluate(k, d, crossover)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=k,
            sub_values={"K": k, "D": d, "RSV": float(kd["rsv"].iloc[-1])},
            signal=signal,
            direction=direction,
            score=score,
            reason=f"K={k:.2f}，D={d:.2f}，{signal}",
        )

    @staticmethod
    def evaluate(k: float, d: float, crossover: str | None) -> Evaluation:
        if crossover == "golden":
            if k < 50:
                return "KD低檔金叉，強烈買進訊號", SignalDirection.STRONG_BULLISH, 90
            return "KD高檔金叉，偏多", SignalDirection.BULLISH, 65
        if crossover == "death":
            if k > 50:
                return "KD高檔死叉，強烈賣出訊號", SignalDirection.STRONG_BEARISH, 10
            return "KD低檔死叉，偏空", SignalDirection.BEARISH, 35

        if k > 80 and d > 80:
            return "KD超買區，注意回檔", SignalDirection.BEARISH, 25
        if k < 20 and d < 20:
            return "KD超賣區，留意反彈", SignalDirection.BULLISH, 75
        if k > d:
            return "K值在D值之上，偏多", SignalDirection.BULLISH, 60
        return "K值在D值之下，偏空", SignalDirection.BEARISH, 40


class BollingerBandsCalculator:
    """20-period Bollinger Bands at 2 standard deviations; value is %B."""

    name = "BollingerBands"
    category = IndicatorCategory.TECHNICAL

    PERIOD = 20
    NUM_STD = 2.0

    def can_calculate(self, context: IndicatorContext) -> bool:
        return len(context.prices) >= self.PERIOD

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        closes = context.closes
        bands = calculate_bollinger_bands(closes, self.PERIOD, self.NUM_STD)
        close = float(closes.iloc[-1])
        upper = float(bands["upper"].iloc[-1])
        middle = float(bands["middle"].iloc[-1])
        lower = float(bands["lower"].iloc[-1])
        bandwidth = float(bands["bandwidth"].iloc[-1])
        percent_b = float(bands["percent_b"].iloc[-1])

        signal, direction, score = self.evaluate(close, upper, lower, percent_b, bandwidth)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=percent_b,
            sub_values={
                "UpperBand": upper,
                "MiddleBand": middle,
                "LowerBand": lower,
                "Bandwidth": bandwidth,
                "%B": percent_b,
            },
            signal=signal,
            direction=direction,
            score=score,
            reason=(
                f"上軌={upper:.2f}，中軌={middle:.2f}，下軌={lower:.2f}，"
                f"%B={percent_b:.1f}%，{signal}"
            ),
        )

    @staticmethod
    def evaluate(
        close: float,
        upper: float,
        lower: float,
        percent_b: float,
        bandwidth: float,
    ) -> Evaluation:
        if close >= upper:
            return "突破布林上軌，可能過熱", SignalDirection.BEARISH, 25
        if close <= lower:
            return "跌破布林下軌，可能超賣", SignalDirection.BULLISH, 75
        if percent_b > 90:
            return "接近布林上軌，注意壓力", SignalDirection.BEARISH, 35
        if percent_b < 10:
            return "接近布林下軌，留意支撐", SignalDirection.BULLISH, 65
        if bandwidth < 5:
            return "布林通道收窄，可能即將突破", SignalDirection.NEUTRAL, 50
        if percent_b > 50:
            return "價格在布林中軌之上，偏多", SignalDirection.BULLISH, 60
        return "價格在布林中軌之下，偏空", SignalDirection.BEARISH, 40


class VolumeRatioCalculator:
    """Short versus long average volume, plus today's volume against the long average."""

    name = "VolumeRatio"
    category = IndicatorCategory.TECHNICAL

    SHORT_PERIOD = 5
    LONG_PERIOD = 20

    def can_calculate(self, context: IndicatorContext) -> bool:
        if len(context.prices) < self.LONG_PERIOD:
            return False
        # Every volume in the long window must be reported
        return all(p.volume is not None for p in context.prices[-self.LONG_PERIOD :])

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        volumes = context.volumes
        avg5 = float(volumes.iloc[-self.SHORT_PERIOD :].mean())
        avg20 = float(volumes.iloc[-self.LONG_PERIOD :].mean())
        today = float(volumes.iloc[-1])

        ratio = avg5 / avg20 if avg20 > 0 else 1.0
        today_vs_avg = today / avg20 if avg20 > 0 else 1.0

        signal, direction, score = self.evaluate(ratio, today_vs_avg)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=ratio,
            sub_values={
                "VolumeRatio_5_20": ratio,
                "TodayVsAvg20": today_vs_avg,
                "AvgVolume5": avg5,
                "AvgVolume20": avg20,
                "TodayVolume": today,
            },
            signal=signal,
            direction=direction,
            score=score,
            reason=f"5日均量/20日均量={ratio:.2f}，今日量/20日均量={today_vs_avg:.2f}，{signal}",
        )

    @staticmethod
    def evaluate(ratio: float, today_vs_avg: float) -> Evaluation:
        # A volume spike alone says nothing about direction
        if today_vs_avg > 2.0:
            return "爆量，成交量異常放大", SignalDirection.NEUTRAL, 50
        if ratio > 1.5:
            return "量能明顯放大", SignalDirection.BULLISH, 65
        if ratio > 1.2:
            return "量能溫和放大", SignalDirection.BULLISH, 60
        if ratio < 0.5:
            return "量能極度萎縮", SignalDirection.BEARISH, 35
        if ratio < 0.8:
            return "量能萎縮", SignalDirection.NEUTRAL, 45
        return "量能正常", SignalDirection.NEUTRAL, 50
