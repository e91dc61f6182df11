"""Vendor ranking engine.

Scores every candidate, orders them by composite score (stable, so ties keep
input order), moves preferred vendors to the front, and attaches a
negotiation strategy to each one.
"""

from __future__ import annotations

import re

import structlog

from negotiator.domain.models import (
    AgentEvent,
    Business,
    PriceIntel,
    RankedVendor,
    ReviewAnalysis,
    VendorRanking,
)
from negotiator.domain.types import AgentName, EventType, PricePerception, Professionalism
from negotiator.llm.client import ReasoningService
from negotiator.research.strategy import generate_strategy
from negotiator.scoring.engine import RANKING_CRITERIA, ScoreBreakdown, score_vendor

logger = structlog.get_logger()

_WHITESPACE = re.compile(r"\s+")


def matches_preferred(name: str, preferred_vendors: list[str]) -> bool:
    """Fuzzy-match a business name against the user's preferred vendor names.

    A name matches a preferred entry when, case-insensitively, either one
    contains the other's relevant part: the name contains the entry, the entry
    contains the name's first word, or the same holds with all whitespace
    removed (so ``"A K Travels"`` matches ``"AK Travels"``).  The heuristic is
    deliberately loose and can over-match short first words.

    Args:
        name: Business name from the directory.
        preferred_vendors: Names the user asked to call first.

    Returns:
        True when any preferred entry matches.
    """
    name_lower = name.lower()
    name_normalized = _WHITESPACE.sub("", name_lower)
    first_word = name_lower.split(" ")[0]
    for entry in preferred_vendors:
        pv = entry.strip().lower()
        if not pv:
            continue
        pv_normalized = _WHITESPACE.sub("", pv)
        if (
            pv in name_lower
            or first_word in pv
            or pv_normalized in name_normalized
            or name_normalized in pv_normalized
        ):
            return True
    return False


def score_business(business: Business, analysis: ReviewAnalysis | None) -> ScoreBreakdown:
    """Score one business, using neutral defaults for missing review analysis."""
    return score_vendor(
        distance_km=business.distance_km,
        rating=(analysis.rating if analysis else 0) or business.rating,
        review_count=(analysis.review_count if analysis else 0) or business.review_count,
        professionalism=analysis.professionalism if analysis else Professionalism.MEDIUM,
        red_flags=analysis.red_flags if analysis else [],
        price_perception=analysis.price_perception if analysis else PricePerception.UNKNOWN,
    )


async def rank_vendors(
    businesses: list[Business],
    review_analysis: list[ReviewAnalysis],
    price_intel: PriceIntel | None,
    reasoning: ReasoningService,
    preferred_vendors: list[str] | None = None,
) -> tuple[VendorRanking, list[AgentEvent]]:
    """Rank *businesses* and generate a strategy for each.

    Args:
        businesses: Candidates in directory order.
        review_analysis: Per-business analyses; missing ones score neutrally.
        price_intel: Shared baseline price information.
        reasoning: Reasoning service for strategy generation.
        preferred_vendors: Names to move to the front of the ranking.

    Returns:
        The ``VendorRanking`` and the events describing it.  An empty
        candidate list yields an empty ranking.
    """
    analyses = {a.business_id: a for a in review_analysis}
    scored = [(b, score_business(b, analyses.get(b.id))) for b in businesses]
    # list.sort is stable: equal composites keep directory order
    scored.sort(key=lambda item: item[1].composite, reverse=True)

    preferred_names = preferred_vendors or []
    flagged = [(b, s, matches_preferred(b.name, preferred_names)) for b, s in scored]
    ordered = [item for item in flagged if item[2]] + [item for item in flagged if not item[2]]

    events: list[AgentEvent] = []
    ranked: list[RankedVendor] = []
    total = len(ordered)
    for rank, (business, breakdown, preferred) in enumerate(ordered, start=1):
        strategy = await generate_strategy(
            business, analyses.get(business.id), price_intel, rank, total, reasoning
        )
        ranked.append(
            RankedVendor(
                business=business,
                composite_score=breakdown.composite,
                rank=rank,
                strengths=strategy.strengths,
                weaknesses=strategy.weaknesses,
                negotiation_strategy=strategy.strategy,
                estimated_price_range=strategy.estimated_price_range,
                preferred=preferred,
            )
        )
        events.append(
            AgentEvent(
                type=EventType.MESSAGE,
                agent=AgentName.RANKING,
                message=(
                    f"#{rank} {business.name} (Score: {breakdown.composite}) - "
                    f"{strategy.strategy[:100]}"
                ),
                data={
                    "rank": rank,
                    "business_name": business.name,
                    "score": breakdown.composite,
                    "preferred": preferred,
                    "breakdown": breakdown.model_dump(exclude={"composite"}),
                },
            )
        )

    logger.info("vendors_ranked", count=total, preferred=sum(1 for v in ranked if v.preferred))
    return VendorRanking(ranked_vendors=ranked, ranking_criteria=list(RANKING_CRITERIA)), events
