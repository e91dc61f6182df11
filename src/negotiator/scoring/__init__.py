"""Vendor quality scoring.

Re-exports the scoring functions for convenient access:
    from negotiator.scoring import score_vendor, composite_score
"""

from negotiator.scoring.engine import (
    RANKING_CRITERIA,
    ScoreBreakdown,
    composite_score,
    price_score,
    professionalism_score,
    proximity_score,
    rating_score,
    score_vendor,
)

__all__ = [
    "RANKING_CRITERIA",
    "ScoreBreakdown",
    "composite_score",
    "price_score",
    "professionalism_score",
    "proximity_score",
    "rating_score",
    "score_vendor",
]
