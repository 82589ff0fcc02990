"""Stock score tools."""

from stock_score.tools.analyze import analyze_stock
from stock_score.tools.score import score_stock

__all__ = [
    "analyze_stock",
    "score_stock",
]
