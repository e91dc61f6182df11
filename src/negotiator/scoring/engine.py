"""Composite vendor quality scoring.

Four component scores on a 0-100 scale are combined into a single weighted
composite.  All arithmetic uses Decimal with ROUND_HALF_UP so that scores are
reproducible and halves always round up.
"""

from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel

from negotiator.domain.types import PricePerception, Professionalism

WHOLE = Decimal("1")

# Component weights; they sum to 1.
PROXIMITY_WEIGHT = Decimal("0.20")
RATING_WEIGHT = Decimal("0.25")
PROFESSIONALISM_WEIGHT = Decimal("0.30")
PRICE_WEIGHT = Decimal("0.25")

RANKING_CRITERIA: list[str] = [
    "Proximity (20%)",
    "Rating & Reviews (25%)",
    "Professionalism (30%)",
    "Price Perception (25%)",
]

# (upper bound in km, score); first bound that the distance does not exceed wins
PROXIMITY_BREAKPOINTS: tuple[tuple[float, int], ...] = (
    (1, 100),
    (2, 90),
    (3, 80),
    (5, 70),
    (10, 50),
    (15, 30),
)
FAR_PROXIMITY_SCORE = 10

# Ratings are shrunk toward this prior until a business has this many reviews
NEUTRAL_RATING = Decimal("3")
FULL_WEIGHT_REVIEWS = Decimal("50")
MAX_RATING = Decimal("5")

PROFESSIONALISM_BASE: dict[Professionalism, int] = {
    Professionalism.HIGH: 100,
    Professionalism.MEDIUM: 70,
    Professionalism.LOW: 40,
}
RED_FLAG_PENALTY = 10

PRICE_PERCEPTION_SCORES: dict[PricePerception, int] = {
    PricePerception.CHEAP: 100,
    PricePerception.FAIR: 75,
    PricePerception.EXPENSIVE: 40,
    PricePerception.UNKNOWN: 60,
}


class ScoreBreakdown(BaseModel, frozen=True):
    """Component scores and their weighted composite.

    Attributes:
        proximity: Distance-based score.
        rating: Review-count-weighted rating score.
        professionalism: Professionalism level minus red-flag penalties.
        price: Price-perception score.
        composite: Weighted, rounded total.
    """

    proximity: int
    rating: int
    professionalism: int
    price: int
    composite: int


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(WHOLE, rounding=ROUND_HALF_UP))


def proximity_score(distance_km: float) -> int:
    """Score a vendor's distance from the user.

    Args:
        distance_km: Distance in kilometres.

    Returns:
        One of 100, 90, 80, 70, 50, 30 or 10; never increases with distance.
    """
    for bound, score in PROXIMITY_BREAKPOINTS:
        if distance_km <= bound:
            return score
    return FAR_PROXIMITY_SCORE


def rating_score(rating: float, review_count: int) -> int:
    """Score a star rating, trusting it more as the review count grows.

    The rating is blended with a neutral 3-star prior; the blend weight is
    ``min(review_count / 50, 1)``.  The blended rating is scaled to 0-100.

    Args:
        rating: Average star rating, 0 to 5.
        review_count: Number of reviews behind the rating.

    Returns:
        The rating score, 60 when there are no reviews.
    """
    weight = min(Decimal(max(review_count, 0)) / FULL_WEIGHT_REVIEWS, WHOLE)
    adjusted = Decimal(str(rating)) * weight + NEUTRAL_RATING * (WHOLE - weight)
    return _round_half_up(adjusted / MAX_RATING * 100)


def professionalism_score(professionalism: Professionalism, red_flags: list[str]) -> int:
    """Score professionalism, deducting 10 points per red flag (floored at 0)."""
    score = PROFESSIONALISM_BASE[professionalism] - RED_FLAG_PENALTY * len(red_flags)
    return max(0, score)


def price_score(price_perception: PricePerception) -> int:
    """Score how cheap reviewers think the vendor is."""
    return PRICE_PERCEPTION_SCORES[price_perception]


def composite_score(proximity: int, rating: int, professionalism: int, price: int) -> int:
    """Combine component scores into the weighted composite.

    Formula: ``round(0.20*proximity + 0.25*rating + 0.30*professionalism + 0.25*price)``
    with halves rounded up.

    Args:
        proximity: Proximity score.
        rating: Rating score.
        professionalism: Professionalism score.
        price: Price-perception score.

    Returns:
        The composite score as an integer.
    """
    total = (
        PROXIMITY_WEIGHT * proximity
        + RATING_WEIGHT * rating
        + PROFESSIONALISM_WEIGHT * professionalism
        + PRICE_WEIGHT * price
    )
    return _round_half_up(total)


def score_vendor(
    *,
    distance_km: float,
    rating: float,
    review_count: int,
    professionalism: Professionalism = Professionalism.MEDIUM,
    red_flags: list[str] | None = None,
    price_perception: PricePerception = PricePerception.UNKNOWN,
) -> ScoreBreakdown:
    """Compute every component score and the composite for one vendor.

    Args:
        distance_km: Distance from the user in kilometres.
        rating: Average star rating.
        review_count: Number of reviews.
        professionalism: Professionalism level; medium when unknown.
        red_flags: Red flags found in reviews.
        price_perception: Perceived price level; unknown when not analysed.

    Returns:
        The full ``ScoreBreakdown``.
    """
    proximity = proximity_score(distance_km)
    rating_component = rating_score(rating, review_count)
    professionalism_component = professionalism_score(professionalism, red_flags or [])
    price = price_score(price_perception)
    return ScoreBreakdown(
        proximity=proximity,
        rating=rating_component,
        professionalism=professionalism_component,
        price=price,
        composite=composite_score(proximity, rating_component, professionalism_component, price),
    )
