"""Intake, search, research and ranking stages.

Each stage mutates the working copy of ``WorkflowState`` it is given and
returns the workflow event to apply plus the agent events to append.
Collaborator failures are recorded as recoverable ``StageError`` entries.
"""

from __future__ import annotations

import httpx
import structlog

from negotiator.collaborators.directory import BusinessDirectory
from negotiator.domain.errors import CollaboratorError
from negotiator.domain.models import (
    REQUIRED_FIELDS,
    AgentEvent,
    Business,
    NegotiationProgress,
    Requirements,
    ResearchResult,
    ReviewAnalysis,
    StageError,
    WorkflowState,
    utc_now,
)
from negotiator.domain.types import AgentName, EventType
from negotiator.llm.client import ReasoningService
from negotiator.research.price_intel import ServiceRates, gather_price_intel
from negotiator.research.ranking import rank_vendors
from negotiator.research.reviews import analysis_without_reviews, analyze_business_reviews
from negotiator.workflow.transitions import WorkflowEvent

logger = structlog.get_logger()

DIRECTORY_ERRORS = (CollaboratorError, httpx.HTTPError)

StageResult = tuple[WorkflowEvent, list[AgentEvent]]

NO_VENDORS_MESSAGE = "No vendors found. Update the requirements or search again."


def recoverable_error(state: WorkflowState, agent: AgentName, message: str) -> AgentEvent:
    """Record a recoverable error on *state* and return its event."""
    state.errors.append(StageError(agent=agent, error=message, recoverable=True))
    return AgentEvent(
        type=EventType.AGENT_ERROR,
        agent=agent,
        message=message,
        data={"recoverable": True},
    )


async def run_intake(state: WorkflowState) -> StageResult:
    """Check that the requirements are complete enough to search."""
    state.hand_over(AgentName.INTAKE)
    requirements = state.requirements
    missing = requirements.missing_fields if requirements else list(REQUIRED_FIELDS)
    if missing:
        state.should_continue = False
        return WorkflowEvent.AWAIT_INPUT, [
            AgentEvent(
                type=EventType.MESSAGE,
                agent=AgentName.INTAKE,
                message=f"Need more details before searching: {', '.join(missing)}",
                data={"missing_fields": missing},
            )
        ]

    completed = AgentEvent(
        type=EventType.AGENT_COMPLETED,
        agent=AgentName.INTAKE,
        message="Requirements complete",
        data={"requirements": requirements.model_dump(mode="json", by_alias=True)},
    )
    if state.businesses:
        return WorkflowEvent.BUSINESSES_READY, [completed]
    return WorkflowEvent.REQUIREMENTS_COMPLETE, [completed]


async def lookup_businesses(
    requirements: Requirements,
    directory: BusinessDirectory,
    radius_km: float,
) -> tuple[list[Business], str | None]:
    """Geocode the pickup location and search the directory around it.

    Returns:
        ``(businesses, error)``; *error* describes a failed lookup.
    """
    try:
        point = await directory.geocode(requirements.from_location)
        if point is None:
            return [], f"Could not locate '{requirements.from_location}'"
        businesses = await directory.search(requirements.service or "cab", point, radius_km)
    except DIRECTORY_ERRORS as exc:
        logger.warning("business_search_failed", error=str(exc))
        return [], f"Business search failed: {exc}"
    return businesses, None


def search_events(
    state: WorkflowState, businesses: list[Business], error: str | None
) -> list[AgentEvent]:
    """Events describing a directory lookup, recording *error* on *state*."""
    if error is not None:
        return [recoverable_error(state, AgentName.SEARCH, error)]
    events = [
        AgentEvent(
            type=EventType.BUSINESS_FOUND,
            agent=AgentName.SEARCH,
            message=f"{b.name} ({b.distance_km:.1f} km, {b.rating:g} stars)",
            data={"business": b.model_dump(mode="json")},
        )
        for b in businesses
    ]
    events.append(
        AgentEvent(
            type=EventType.AGENT_COMPLETED,
            agent=AgentName.SEARCH,
            message=f"Found {len(businesses)} vendors",
            data={"count": len(businesses)},
        )
    )
    return events


async def run_search(
    state: WorkflowState, directory: BusinessDirectory, radius_km: float
) -> StageResult:
    """Populate ``businesses`` from the directory."""
    state.hand_over(AgentName.SEARCH)
    businesses, error = await lookup_businesses(
        state.requirements or Requirements(), directory, radius_km
    )
    state.businesses = businesses
    state.research = None
    logger.info("search_finished", session_id=state.session_id, count=len(businesses))
    return WorkflowEvent.SEARCH_FINISHED, search_events(state, businesses, error)


async def _analysis_for(
    business: Business, directory: BusinessDirectory, reasoning: ReasoningService
) -> ReviewAnalysis:
    try:
        return await analyze_business_reviews(business, directory, reasoning)
    except DIRECTORY_ERRORS as exc:
        logger.warning("review_fetch_failed", business=business.name, error=str(exc))
        return analysis_without_reviews(business, business.rating, business.review_count)


async def run_research(
    state: WorkflowState,
    directory: BusinessDirectory,
    reasoning: ReasoningService,
    rates: ServiceRates,
) -> StageResult:
    """Gather price intelligence and review analysis for every candidate.

    With no candidates the stage pauses with a recoverable error.
    """
    state.hand_over(AgentName.RESEARCH)
    if not state.businesses:
        state.should_continue = False
        return WorkflowEvent.NO_CANDIDATES, [
            recoverable_error(state, AgentName.RESEARCH, NO_VENDORS_MESSAGE)
        ]

    requirements = state.requirements or Requirements()
    intel, events = await gather_price_intel(requirements, directory, rates)
    analyses = [await _analysis_for(b, directory, reasoning) for b in state.businesses]
    state.research = ResearchResult(
        price_intel=intel, review_analysis=analyses, completed_at=utc_now()
    )
    events.append(
        AgentEvent(
            type=EventType.RESEARCH_COMPLETE,
            agent=AgentName.RESEARCH,
            message=f"Researched {len(analyses)} vendors",
            data={
                "baseline": intel.baseline.model_dump(),
                "analyzed": [a.business_name for a in analyses],
            },
        )
    )
    return WorkflowEvent.RESEARCHED, events


async def run_ranking(state: WorkflowState, reasoning: ReasoningService) -> StageResult:
    """Rank the researched candidates and reset the contact loop."""
    state.hand_over(AgentName.RANKING)
    if not state.businesses:
        state.should_continue = False
        return WorkflowEvent.NO_CANDIDATES, [
            recoverable_error(state, AgentName.RANKING, "Cannot rank an empty candidate list")
        ]

    research = state.research or ResearchResult()
    requirements = state.requirements or Requirements()
    ranking, events = await rank_vendors(
        state.businesses,
        research.review_analysis,
        research.price_intel,
        reasoning,
        requirements.preferred_vendors,
    )
    state.research = research.model_copy(update={"vendor_ranking": ranking})
    state.negotiation = NegotiationProgress()
    events.append(
        AgentEvent(
            type=EventType.RANKING_COMPLETE,
            agent=AgentName.RANKING,
            message=f"Ranked {len(ranking.ranked_vendors)} vendors",
            data={
                "ranking": [
                    {
                        "rank": v.rank,
                        "vendor_name": v.business.name,
                        "score": v.composite_score,
                        "preferred": v.preferred,
                    }
                    for v in ranking.ranked_vendors
                ],
                "criteria": ranking.ranking_criteria,
            },
        )
    )
    return WorkflowEvent.RANKED, events
