"""Review analysis: qualitative signals per business for ranking and strategy."""

from __future__ import annotations

import structlog

from negotiator.collaborators.directory import BusinessDirectory
from negotiator.domain.models import Business, PlaceReviews, ReviewAnalysis
from negotiator.domain.types import PricePerception, Professionalism, Sentiment
from negotiator.llm.client import ReasoningService
from negotiator.llm.models import ReviewAnalysisOutput
from negotiator.llm.parsing import parse_reply
from negotiator.llm.prompts import REVIEW_ANALYSIS_PROMPT

logger = structlog.get_logger()

MAX_REVIEWS_IN_PROMPT = 10
NO_REVIEWS_FLAG = "No reviews available - new or unverified business"


def sentiment_from_rating(rating: float) -> Sentiment:
    """Positive at 4 stars and above, neutral from 3, negative below."""
    if rating >= 4:
        return Sentiment.POSITIVE
    if rating >= 3:
        return Sentiment.NEUTRAL
    return Sentiment.NEGATIVE


def professionalism_from_rating(rating: float) -> Professionalism:
    """High at 4 stars and above, medium from 3, low below."""
    if rating >= 4:
        return Professionalism.HIGH
    if rating >= 3:
        return Professionalism.MEDIUM
    return Professionalism.LOW


def analysis_without_reviews(
    business: Business, rating: float, review_count: int
) -> ReviewAnalysis:
    """Derive an analysis from the rating alone when no review text exists."""
    return ReviewAnalysis(
        business_id=business.id,
        business_name=business.name,
        rating=rating,
        review_count=review_count,
        sentiment=sentiment_from_rating(rating),
        price_perception=PricePerception.UNKNOWN,
        professionalism=Professionalism.MEDIUM,
        red_flags=[NO_REVIEWS_FLAG] if review_count == 0 else [],
        positives=["Good overall rating"] if rating >= 4 else [],
    )


async def analyze_business_reviews(
    business: Business,
    directory: BusinessDirectory,
    reasoning: ReasoningService,
) -> ReviewAnalysis:
    """Analyse one business's reviews.

    Review text is sent to the reasoning service; when that fails or returns
    nothing usable, sentiment and professionalism are derived from the
    rating instead.

    Args:
        business: The business to analyse.
        directory: Source of review text.
        reasoning: Service that interprets the reviews.

    Returns:
        The ``ReviewAnalysis`` for *business*.
    """
    details: PlaceReviews | None = await directory.place_reviews(business)
    rating = (details.rating if details else 0) or business.rating
    review_count = (details.review_count if details else 0) or business.review_count
    reviews = details.reviews if details else []

    if not reviews:
        return analysis_without_reviews(business, rating, review_count)

    review_text = "\n\n".join(
        f'Review {i} ({r.rating:g} stars): "{r.text}"'
        for i, r in enumerate(reviews[:MAX_REVIEWS_IN_PROMPT], start=1)
    )
    parsed: ReviewAnalysisOutput | None = None
    try:
        reply = await reasoning.invoke(
            REVIEW_ANALYSIS_PROMPT.format(
                business_name=business.name,
                rating=rating,
                review_count=review_count,
                reviews=review_text,
            )
        )
        parsed = parse_reply(reply, ReviewAnalysisOutput)
    except Exception:
        logger.warning("review_analysis_failed", business=business.name, exc_info=True)

    if parsed is None:
        parsed = ReviewAnalysisOutput(
            sentiment=sentiment_from_rating(rating),
            professionalism=professionalism_from_rating(rating),
        )

    return ReviewAnalysis(
        business_id=business.id,
        business_name=business.name,
        rating=rating,
        review_count=review_count,
        **parsed.model_dump(),
    )
