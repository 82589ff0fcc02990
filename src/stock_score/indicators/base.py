"""Calculator protocol shared by every indicator."""

from typing import Protocol, runtime_checkable

from stock_score.models import IndicatorCategory, IndicatorContext, IndicatorResult, SignalDirection

# (signal text, direction, score) produced by each calculator's rule table
Evaluation = tuple[str, SignalDirection, int]


@runtime_checkable
class IndicatorCalculator(Protocol):
    """
    One indicator.

    can_calculate() must be cheap and side-effect free; calculate() is only
    called when it returned True and must not perform I/O.
    """

    name: str
    category: IndicatorCategory

    def can_calculate(self, context: IndicatorContext) -> bool: ...

    def calculate(self, context: IndicatorContext) -> IndicatorResult: ...
