"""Composite scoring and risk assessment."""

from stock_score.scoring.risk import assess_risk
from stock_score.scoring.service import (
    ScoringOutcome,
    StockScoreService,
    compute_category_score,
    determine_direction,
    generate_recommendation,
    score_indicators,
)
from stock_score.scoring.weights import DEFAULT_WEIGHT_CONFIG, CategoryWeightConfig

__all__ = [
    "DEFAULT_WEIGHT_CONFIG",
    "CategoryWeightConfig",
    "ScoringOutcome",
    "StockScoreService",
    "assess_risk",
    "compute_category_score",
    "determine_direction",
    "generate_recommendation",
    "score_indicators",
]
