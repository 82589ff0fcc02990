"""Risk assessment from indicator divergence and extreme readings."""

from collections.abc import Sequence

from stock_score.models import (
    CategoryScore,
    IndicatorResult,
    RiskAssessment,
    RiskLevel,
    round_score,
)

# Divergence thresholds (0-100 scale, 100 = perfect bullish/bearish split)
SEVERE_DIVERGENCE = 60.0
MILD_DIVERGENCE = 30.0
HIGH_RISK_DIVERGENCE = 50.0

RSI_OVERBOUGHT = 80.0
RSI_OVERSOLD = 20.0
VOLUME_SPIKE_RATIO = 3.0
HIGH_PLEDGE_RATIO = 30.0
CATEGORY_SPREAD = 30.0


def calculate_divergence(indicators: Sequence[IndicatorResult]) -> tuple[float, int, int]:
    """
    Measure how much indicators disagree in direction.

    Returns:
        Tuple of (divergence_score, bullish_count, bearish_count); the score is
        min(bullish, bearish) / total * 200, so a 50/50 split gives exactly 100
    """
    bullish = sum(1 for i in indicators if i.direction.is_bullish)
    bearish = sum(1 for i in indicators if i.direction.is_bearish)
    total = len(indicators)

    if total == 0:
        return 0.0, bullish, bearish

    return min(bullish, bearish) / total * 200, bullish, bearish


def _find(indicators: Sequence[IndicatorResult], name: str) -> IndicatorResult | None:
    return next((i for i in indicators if i.name == name), None)


def determine_risk_level(factor_count: int, divergence_score: float) -> RiskLevel:
    """First matching rule wins: factor counts, then divergence, then any factor."""
    if factor_count >= 4:
        return RiskLevel.VERY_HIGH
    if factor_count >= 3:
        return RiskLevel.HIGH
    if divergence_score > HIGH_RISK_DIVERGENCE:
        return RiskLevel.HIGH
    if factor_count >= 1:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def assess_risk(
    indicators: Sequence[IndicatorResult],
    category_scores: Sequence[CategoryScore],
) -> RiskAssessment:
    """
    Derive a risk level and the factors behind it.

    Factors are listed in detection order: divergence, RSI, volume, director
    pledge, then cross-category spread.

    Args:
        indicators: Indicator results after filtering
        category_scores: Category scores, or empty when scoring was skipped

    Returns:
        RiskAssessment with level, factors, and divergence rounded to 1 decimal
    """
    factors: list[str] = []

    divergence, bullish, bearish = calculate_divergence(indicators)
    if divergence > SEVERE_DIVERGENCE:
        factors.append(f"指標嚴重分歧：{bullish}個看多 vs {bearish}個看空")
    elif divergence > MILD_DIVERGENCE:
        factors.append(f"指標存在分歧：{bullish}個看多 vs {bearish}個看空")

    rsi = _find(indicators, "RSI")
    if rsi is not None:
        if rsi.value > RSI_OVERBOUGHT:
            factors.append(f"RSI={rsi.value:.1f}，嚴重超買")
        elif rsi.value < RSI_OVERSOLD:
            factors.append(f"RSI={rsi.value:.1f}，嚴重超賣")

    volume = _find(indicators, "VolumeRatio")
    if volume is not None:
        today_vs_avg = volume.sub_values.get("TodayVsAvg20")
        if today_vs_avg is not None and today_vs_avg > VOLUME_SPIKE_RATIO:
            factors.append(f"今日成交量為20日均量的{today_vs_avg:.1f}倍，量能異常")

    pledge = _find(indicators, "DirectorPledge")
    if pledge is not None and pledge.value > HIGH_PLEDGE_RATIO:
        factors.append(f"董監設質比率={pledge.value:.1f}%，偏高")

    if len(category_scores) >= 2:
        scores = [c.score for c in category_scores]
        if max(scores) - min(scores) > CATEGORY_SPREAD:
            factors.append("各面向分數差距大，訊號不一致")

    return RiskAssessment(
        level=determine_risk_level(len(factors), divergence),
        factors=tuple(factors),
        divergence_score=round_score(divergence),
    )
