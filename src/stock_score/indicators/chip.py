"""Chip (margin, foreign ownership, insider pledge) indicators."""

from collections.abc import Iterable

from stock_score.indicators.base import Evaluation
from stock_score.models import (
    ChipData,
    IndicatorCategory,
    IndicatorContext,
    IndicatorResult,
    SignalDirection,
    round_score,
)


def _known_sum(values: Iterable[int | None]) -> int | None:
    """Sum of the known values; None when every value is unknown."""
    known = [v for v in values if v is not None]
    return sum(known) if known else None


class MarginTradingCalculator:
    """
    Margin and short-selling balances as a retail sentiment gauge.

    Balances are in lots. Short/margin ratio wins over utilization, which
    wins over the daily balance changes.
    """

    name = "MarginTrading"
    category = IndicatorCategory.CHIP

    def can_calculate(self, context: IndicatorContext) -> bool:
        chips = context.chips
        return chips is not None and chips.margin_balance is not None and chips.margin_balance > 0

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        chips = context.chips
        margin_balance = chips.margin_balance
        margin_limit = chips.margin_limit or 0
        short_balance = chips.short_balance or 0
        margin_previous = (
            chips.margin_previous_balance if chips.margin_previous_balance is not None else margin_balance
        )
        short_previous = (
            chips.short_previous_balance if chips.short_previous_balance is not None else short_balance
        )
        offset_volume = chips.offset_volume or 0

        utilization = round(margin_balance / margin_limit * 100, 2) if margin_limit > 0 else 0.0
        short_margin_ratio = round(short_balance / margin_balance * 100, 2)
        margin_change = margin_balance - margin_previous
        short_change = short_balance - short_previous

        signal, direction, score = self.evaluate(
            utilization, margin_change, short_change, short_margin_ratio, offset_volume
        )

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=utilization,
            sub_values={
                "MarginBalance": margin_balance,
                "MarginChange": margin_change,
                "MarginUtilization": utilization,
                "ShortBalance": short_balance,
                "ShortChange": short_change,
                "ShortMarginRatio": short_margin_ratio,
                "OffsetVolume": offset_volume,
            },
            signal=signal,
            direction=direction,
            score=score,
            reason=(
                f"融資餘額={margin_balance:,}張(日增{margin_change:+,.0f})，融券={short_balance:,}張，"
                f"券資比={short_margin_ratio:.2f}%，融資使用率={utilization:.2f}%，{signal}"
            ),
        )

    @staticmethod
    def evaluate(
        utilization: float,
        margin_change: int,
        short_change: int,
        short_margin_ratio: float,
        offset_volume: int,
    ) -> Evaluation:
        # High short/margin ratio: short squeeze potential
        if short_margin_ratio > 30:
            return "高券資比，軋空動能強", SignalDirection.BULLISH, 75
        if short_margin_ratio > 20:
            return "券資比偏高，留意軋空", SignalDirection.BULLISH, 65
        if utilization > 80:
            return "融資使用率極高，散戶過度槓桿", SignalDirection.STRONG_BEARISH, 15
        if utilization > 60:
            return "融資使用率偏高，注意風險", SignalDirection.BEARISH, 30
        if margin_change > 1000:
            return "融資大幅增加，散戶追高", SignalDirection.BEARISH, 35
        if margin_change < -1000:
            return "融資大幅減少，籌碼沉澱", SignalDirection.BULLISH, 70
        if short_change > 500:
            return "融券增加，放空力道增強", SignalDirection.BEARISH, 35
        if offset_volume > 500:
            return "資券互抵量大，當沖活躍", SignalDirection.NEUTRAL, 50
        if utilization < 20:
            return "融資使用率低，籌碼健康", SignalDirection.BULLISH, 65
        return "融資融券正常", SignalDirection.NEUTRAL, 50


class ForeignHoldingCalculator:
    """Foreign investor ownership percentage."""

    name = "ForeignHolding"
    category = IndicatorCategory.CHIP

    def can_calculate(self, context: IndicatorContext) -> bool:
        chips = context.chips
        return (
            chips is not None
            and chips.foreign_holding_percentage is not None
            and chips.foreign_holding_percentage > 0
        )

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        chips = context.chips
        holding = chips.foreign_holding_percentage
        upper_limit = chips.foreign_upper_limit if chips.foreign_upper_limit is not None else 100.0
        near_limit = round(holding / upper_limit * 100, 2) if upper_limit > 0 else 0.0

        signal, direction, score = self.evaluate(holding)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=holding,
            sub_values={
                "HoldingPercentage": holding,
                "UpperLimit": upper_limit,
                "NearLimitRatio": near_limit,
                "HoldingShares": chips.foreign_holding_shares or 0,
            },
            signal=signal,
            direction=direction,
            score=score,
            reason=f"外資持股比率={holding:.2f}%，上限={upper_limit:.0f}%，{signal}",
        )

    @staticmethod
    def evaluate(holding: float) -> Evaluation:
        if holding > 70:
            return "外資持股極高，法人高度認可但注意賣壓", SignalDirection.NEUTRAL, 55
        if holding > 50:
            return "外資持股過半，法人認可度高", SignalDirection.BULLISH, 70
        if holding > 30:
            return "外資持股比重大，關注法人動向", SignalDirection.BULLISH, 65
        if holding > 15:
            return "外資持股中等", SignalDirection.NEUTRAL, 50
        if holding > 5:
            return "外資持股偏低", SignalDirection.NEUTRAL, 45
        return "外資持股極低，法人關注度低", SignalDirection.BEARISH, 35


class DirectorPledgeCalculator:
    """Share of director and supervisor holdings pledged as collateral."""

    name = "DirectorPledge"
    category = IndicatorCategory.CHIP

    @staticmethod
    def resolve(chips: ChipData | None) -> tuple[float, int | None, int | None] | None:
        """
        Pledge ratio with the share totals it came from.

        Unknown per-director counts are left out of the totals. Returns None
        when no ratio can be derived, so unknown holdings never read as 0%.
        """
        if chips is None or not chips.director_holdings:
            return None
        holdings = chips.director_holdings
        total_shares = (
            chips.total_director_shares
            if chips.total_director_shares is not None
            else _known_sum(h.current_shares for h in holdings)
        )
        total_pledged = (
            chips.total_director_pledged
            if chips.total_director_pledged is not None
            else _known_sum(h.pledged_shares for h in holdings)
        )
        if chips.director_pledge_ratio is not None:
            return chips.director_pledge_ratio, total_shares, total_pledged
        if not total_shares or total_pledged is None:
            return None
        return round_score(total_pledged / total_shares * 100, 2), total_shares, total_pledged

    def can_calculate(self, context: IndicatorContext) -> bool:
        return self.resolve(context.chips) is not None

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        holdings = context.chips.director_holdings
        pledge_ratio, total_shares, total_pledged = self.resolve(context.chips)

        signal, direction, score = self.evaluate(pledge_ratio)

        sub_values = {"PledgeRatio": pledge_ratio, "DirectorCount": len(holdings)}
        shares_text = ""
        if total_shares is not None:
            sub_values["TotalDirectorShares"] = total_shares
            shares_text = f"持股合計{total_shares:,}股，"
        pledged_text = "設質"
        if total_pledged is not None:
            sub_values["TotalPledgedShares"] = total_pledged
            pledged_text = f"設質{total_pledged:,}股"

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=pledge_ratio,
            sub_values=sub_values,
            signal=signal,
            direction=direction,
            score=score,
            reason=f"董監事{len(holdings)}人，{shares_text}{pledged_text}({pledge_ratio:.2f}%)，{signal}",
        )

    @staticmethod
    def evaluate(pledge_ratio: float) -> Evaluation:
        if pledge_ratio > 50:
            return "董監設質比極高，斷頭風險大", SignalDirection.STRONG_BEARISH, 10
        if pledge_ratio > 30:
            return "董監設質比偏高，注意風險", SignalDirection.BEARISH, 25
        if pledge_ratio > 15:
            return "董監設質比中等，需留意", SignalDirection.NEUTRAL, 45
        if pledge_ratio > 5:
            return "董監設質比低，正常範圍", SignalDirection.NEUTRAL, 55
        if pledge_ratio == 0:
            return "董監零設質，經營者信心充足", SignalDirection.BULLISH, 75
        return "董監設質比極低，體質健康", SignalDirection.BULLISH, 70
