"""Valuation, income and growth indicators."""

from stock_score.indicators.base import Evaluation
from stock_score.models import (
    IndicatorCategory,
    IndicatorContext,
    IndicatorResult,
    SignalDirection,
    round_score,
)


class PERatioCalculator:
    name = "PERatio"
    category = IndicatorCategory.FUNDAMENTAL

    def can_calculate(self, context: IndicatorContext) -> bool:
        fund = context.fundamentals
        return fund is not None and fund.pe_ratio is not None and fund.pe_ratio > 0

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        fund = context.fundamentals
        pe = fund.pe_ratio
        signal, direction, score = self.evaluate(pe)

        sub_values = {"PERatio": pe}
        details = []
        if fund.trailing_eps is not None:
            sub_values["TrailingEPS"] = fund.trailing_eps
            details.append(f"EPS={fund.trailing_eps:.2f}")
        if fund.fiscal_year_quarter:
            details.append(fund.fiscal_year_quarter)

        reason = f"本益比={pe:.2f}"
        if details:
            reason += f"（{', '.join(details)}）"

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=pe,
            sub_values=sub_values,
            signal=signal,
            direction=direction,
            score=score,
            reason=f"{reason}，{signal}",
        )

    @staticmethod
    def evaluate(pe: float) -> Evaluation:
        if pe < 0:
            return "本益比為負（虧損中）", SignalDirection.STRONG_BEARISH, 20
        if pe < 10:
            return "本益比偏低，股價相對便宜", SignalDirection.BULLISH, 70
        if pe < 15:
            return "本益比合理偏低", SignalDirection.BULLISH, 65
        if pe < 20:
            return "本益比合理", SignalDirection.NEUTRAL, 55
        if pe < 30:
            return "本益比偏高，留意估值風險", SignalDirection.BEARISH, 40
        if pe < 50:
            return "本益比偏高", SignalDirection.BEARISH, 35
        return "本益比過高，估值風險大", SignalDirection.STRONG_BEARISH, 25


class PBRatioCalculator:
    """
    Price-to-book ratio.

    Uses the reported ratio when there is one; otherwise derives it from book
    value per share and the latest close.
    """

    name = "PBRatio"
    category = IndicatorCategory.FUNDAMENTAL

    def can_calculate(self, context: IndicatorContext) -> bool:
        return self.resolve_ratio(context) is not None

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        fund = context.fundamentals
        pb = self.resolve_ratio(context)
        signal, direction, score = self.evaluate(pb)

        sub_values = {"PBRatio": pb}
        if fund.book_value_per_share is not None:
            sub_values["BookValuePerShare"] = fund.book_value_per_share

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=pb,
            sub_values=sub_values,
            signal=signal,
            direction=direction,
            score=score,
            reason=f"股價淨值比={pb:.2f}，{signal}",
        )

    @staticmethod
    def resolve_ratio(context: IndicatorContext) -> float | None:
        fund = context.fundamentals
        if fund is None:
            return None
        if fund.pb_ratio is not None and fund.pb_ratio > 0:
            return fund.pb_ratio
        bvps = fund.book_value_per_share
        close = context.latest_close
        if bvps is not None and bvps > 0 and close is not None and close > 0:
            return round_score(close / bvps, 2)
        return None

    @staticmethod
    def evaluate(pb: float) -> Evaluation:
        if pb < 0.5:
            return "淨值比極低，可能有資產價值", SignalDirection.BULLISH, 70
        if pb < 1.0:
            return "股價低於淨值，相對便宜", SignalDirection.BULLISH, 65
        if pb < 1.5:
            return "淨值比合理", SignalDirection.NEUTRAL, 55
        if pb < 3.0:
            return "淨值比偏高", SignalDirection.NEUTRAL, 45
        if pb < 5.0:
            return "淨值比高，市場給予較高溢價", SignalDirection.BEARISH, 38
        return "淨值比過高，估值偏貴", SignalDirection.BEARISH, 30


class DividendYieldCalculator:
    name = "DividendYield"
    category = IndicatorCategory.FUNDAMENTAL

    def can_calculate(self, context: IndicatorContext) -> bool:
        fund = context.fundamentals
        return fund is not None and fund.dividend_yield is not None

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        dy = context.fundamentals.dividend_yield
        signal, direction, score = self.evaluate(dy)

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=dy,
            sub_values={"DividendYield": dy},
            signal=signal,
            direction=direction,
            score=score,
            reason=f"殖利率={dy:.2f}%，{signal}",
        )

    @staticmethod
    def evaluate(dy: float) -> Evaluation:
        if dy <= 0:
            return "無配息", SignalDirection.BEARISH, 30
        if dy < 2:
            return "殖利率偏低", SignalDirection.NEUTRAL, 45
        if dy < 4:
            return "殖利率中等", SignalDirection.NEUTRAL, 55
        if dy < 6:
            return "殖利率不錯，具配息吸引力", SignalDirection.BULLISH, 65
        if dy < 8:
            return "高殖利率，配息豐厚", SignalDirection.BULLISH, 72
        # Unusually high yields are often not sustainable
        return "殖利率極高，留意是否能維持", SignalDirection.BULLISH, 68


class EPSCalculator:
    name = "EPS"
    category = IndicatorCategory.FUNDAMENTAL

    def can_calculate(self, context: IndicatorContext) -> bool:
        fund = context.fundamentals
        return fund is not None and fund.eps is not None

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        fund = context.fundamentals
        eps = fund.eps
        signal, direction, score = self.evaluate(eps)

        sub_values = {"EPS": eps}
        if fund.operating_income is not None:
            sub_values["OperatingIncome"] = fund.operating_income
        if fund.net_income is not None:
            sub_values["NetIncome"] = fund.net_income

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=eps,
            sub_values=sub_values,
            signal=signal,
            direction=direction,
            score=score,
            reason=f"每股盈餘={eps:.2f}元，{signal}",
        )

    @staticmethod
    def evaluate(eps: float) -> Evaluation:
        if eps < 0:
            return "EPS 為負，公司處於虧損狀態", SignalDirection.STRONG_BEARISH, 20
        if eps < 0.5:
            return "EPS 偏低，獲利能力不足", SignalDirection.BEARISH, 35
        if eps < 1.0:
            return "EPS 尚可", SignalDirection.NEUTRAL, 45
        if eps < 2.0:
            return "EPS 中等", SignalDirection.NEUTRAL, 55
        if eps < 5.0:
            return "EPS 不錯，獲利穩健", SignalDirection.BULLISH, 65
        if eps < 10.0:
            return "EPS 優秀，獲利能力強", SignalDirection.BULLISH, 72
        return "EPS 非常優秀", SignalDirection.STRONG_BULLISH, 78


class RevenueGrowthCalculator:
    """Monthly revenue growth, year over year and month over month (percent)."""

    name = "RevenueGrowth"
    category = IndicatorCategory.FUNDAMENTAL

    def can_calculate(self, context: IndicatorContext) -> bool:
        fund = context.fundamentals
        return fund is not None and fund.monthly_revenue is not None and fund.revenue_yoy is not None

    def calculate(self, context: IndicatorContext) -> IndicatorResult:
        fund = context.fundamentals
        yoy = fund.revenue_yoy
        mom = fund.revenue_mom
        revenue = fund.monthly_revenue

        signal, direction, score = self.evaluate(yoy, mom if mom is not None else 0.0)

        sub_values = {"Revenue": revenue, "RevenueYoY": yoy}
        growth = f"年增={yoy:.1f}%"
        if mom is not None:
            sub_values["RevenueMoM"] = mom
            growth += f"，月增={mom:.1f}%"

        label = fund.revenue_label or f"營收={revenue:.0f}"

        return IndicatorResult(
            name=self.name,
            category=self.category,
            value=yoy,
            sub_values=sub_values,
            signal=signal,
            direction=direction,
            score=score,
            reason=f"{label}，{growth}，{signal}",
        )

    @staticmethod
    def evaluate(yoy: float, mom: float) -> Evaluation:
        if yoy > 20 and mom > 0:
            return "營收年增強勁且月增正成長", SignalDirection.STRONG_BULLISH, 80
        if yoy > 10:
            return "營收年增雙位數成長", SignalDirection.BULLISH, 70
        if yoy > 0 and mom > 0:
            return "營收年增且月增正成長", SignalDirection.BULLISH, 62
        if yoy > 0:
            return "營收年增正成長", SignalDirection.NEUTRAL, 55
        if yoy > -10:
            return "營收小幅衰退", SignalDirection.NEUTRAL, 45
        if yoy > -20:
            return "營收明顯衰退", SignalDirection.BEARISH, 35
        return "營收大幅衰退", SignalDirection.STRONG_BEARISH, 25
