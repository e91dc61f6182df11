"""Strategy generator: negotiation tactics and a target price band per vendor.

Wraps the reasoning service.  When it fails or replies with nothing usable,
a deterministic default strategy and the raw baseline band are used.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, Field

from negotiator.domain.models import Business, PriceIntel, PriceRange, ReviewAnalysis
from negotiator.llm.client import ReasoningService
from negotiator.llm.models import StrategyOutput
from negotiator.llm.parsing import parse_reply
from negotiator.llm.prompts import STRATEGY_PROMPT

logger = structlog.get_logger()

DEFAULT_STRATEGY = (
    "Start with asking their best price, then negotiate down based on benchmark."
)


class VendorStrategy(BaseModel, frozen=True):
    """Strategy text, price band and talking points for one vendor."""

    strategy: str
    estimated_price_range: PriceRange
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    from_fallback: bool = False


def baseline_range(price_intel: PriceIntel | None) -> PriceRange:
    """The baseline low-to-mid band, or zeros when price intel is missing."""
    if price_intel is None:
        return PriceRange(low=0, high=0)
    return PriceRange(low=price_intel.baseline.low, high=price_intel.baseline.mid)


def default_strategy(price_intel: PriceIntel | None) -> VendorStrategy:
    """Deterministic fallback used whenever strategy generation fails."""
    return VendorStrategy(
        strategy=DEFAULT_STRATEGY,
        estimated_price_range=baseline_range(price_intel),
        from_fallback=True,
    )


async def generate_strategy(
    business: Business,
    analysis: ReviewAnalysis | None,
    price_intel: PriceIntel | None,
    rank: int,
    total: int,
    reasoning: ReasoningService,
) -> VendorStrategy:
    """Ask the reasoning service for a negotiation strategy for *business*.

    Args:
        business: The ranked vendor.
        analysis: Its review analysis, if any.
        price_intel: Shared baseline price information.
        rank: 1-based position in the ranking.
        total: Number of ranked vendors.
        reasoning: The reasoning service.

    Returns:
        The generated ``VendorStrategy``, or the default one on any failure.
    """
    prompt = STRATEGY_PROMPT.format(
        vendor_name=business.name,
        rank=rank,
        total=total,
        rating=(analysis.rating if analysis else 0) or business.rating,
        review_count=(analysis.review_count if analysis else 0) or business.review_count,
        distance_km=business.distance_km,
        professionalism=analysis.professionalism if analysis else "unknown",
        price_perception=analysis.price_perception if analysis else "unknown",
        leverage=", ".join(analysis.negotiation_leverage) if analysis else "None identified",
        red_flags=", ".join(analysis.red_flags) if analysis and analysis.red_flags else "None",
        positives=", ".join(analysis.positives) if analysis and analysis.positives else "None",
        baseline_low=price_intel.baseline.low if price_intel else "?",
        baseline_high=price_intel.baseline.high if price_intel else "?",
    )
    try:
        reply = await reasoning.invoke(prompt)
    except Exception:
        logger.warning("strategy_generation_failed", vendor=business.name, exc_info=True)
        return default_strategy(price_intel)

    parsed = parse_reply(reply, StrategyOutput)
    if parsed is None:
        return default_strategy(price_intel)

    fallback = baseline_range(price_intel)
    return VendorStrategy(
        strategy=parsed.strategy or DEFAULT_STRATEGY,
        estimated_price_range=PriceRange(
            low=round(parsed.estimated_low or fallback.low),
            high=round(parsed.estimated_high or fallback.high),
        ),
        strengths=parsed.strengths,
        weaknesses=parsed.weaknesses,
    )
