"""Vendor research: price intelligence, review analysis, strategy and ranking."""

from negotiator.research.price_intel import gather_price_intel, load_service_rates
from negotiator.research.ranking import matches_preferred, rank_vendors
from negotiator.research.reviews import analyze_business_reviews
from negotiator.research.strategy import generate_strategy

__all__ = [
    "analyze_business_reviews",
    "gather_price_intel",
    "generate_strategy",
    "load_service_rates",
    "matches_preferred",
    "rank_vendors",
]
