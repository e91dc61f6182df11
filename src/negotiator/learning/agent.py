"""Learning stage: pick the best deal and record lessons from the session's calls."""

from __future__ import annotations

import structlog

from negotiator.domain.models import AgentEvent, BestDeal, Business, VendorCall, WorkflowState
from negotiator.domain.types import AgentName, CallStatus, EventType
from negotiator.llm.client import ReasoningService
from negotiator.llm.models import LearningOutput
from negotiator.llm.parsing import parse_reply
from negotiator.llm.prompts import LEARNING_PROMPT
from negotiator.observability.metrics import DEALS_FOUND
from negotiator.workflow.transitions import WorkflowEvent

logger = structlog.get_logger()

MAX_LESSONS = 5


def select_best_call(calls: list[VendorCall]) -> VendorCall | None:
    """Return the completed, trusted call with the lowest quoted price.

    Ties go to the earliest call.
    """
    priced = [
        c
        for c in calls
        if c.status == CallStatus.COMPLETED
        and c.quoted_price is not None
        and not c.suspicious_price
    ]
    if not priced:
        return None
    return min(priced, key=lambda c: c.quoted_price or 0)


def _find_business(state: WorkflowState, business_id: str, name: str) -> Business:
    for business in state.businesses:
        if business.id == business_id:
            return business
    return Business(id=business_id, name=name)


def _call_line(call: VendorCall) -> str:
    price = f"quoted {call.quoted_price:g}" if call.quoted_price is not None else "no quote"
    if call.suspicious_price:
        price += " (implausible)"
    line = f"- {call.business_name}: {call.status}, {price}"
    return f"{line}. {call.notes}" if call.notes else line


def fallback_lessons(calls: list[VendorCall], best: VendorCall | None) -> list[str]:
    """Deterministic lessons used when the reasoning service is unavailable."""
    if not calls:
        return ["No vendor calls were completed in this session."]
    completed = sum(1 for c in calls if c.status == CallStatus.COMPLETED)
    lessons = [f"{completed} of {len(calls)} calls connected."]
    quoted = sorted(c.quoted_price for c in calls if c.quoted_price is not None)
    if quoted:
        lessons.append(f"Quotes ranged from {quoted[0]:g} to {quoted[-1]:g}.")
    if best is not None:
        lessons.append(f"Best price came from {best.business_name} at {best.quoted_price:g}.")
    return lessons


async def draw_lessons(
    state: WorkflowState, best: VendorCall | None, reasoning: ReasoningService
) -> list[str]:
    """Ask the reasoning service for lessons; fall back to a plain summary."""
    calls = state.negotiation.calls
    if not calls:
        return fallback_lessons(calls, best)
    service = state.requirements.service if state.requirements else "service"
    prompt = LEARNING_PROMPT.format(
        service=service, call_lines="\n".join(_call_line(c) for c in calls)
    )
    try:
        reply = await reasoning.invoke(prompt)
    except Exception:
        logger.warning("learning_generation_failed", session_id=state.session_id, exc_info=True)
        return fallback_lessons(calls, best)
    parsed = parse_reply(reply, LearningOutput)
    if parsed is None or not parsed.lessons:
        return fallback_lessons(calls, best)
    return parsed.lessons[:MAX_LESSONS]


async def run_learning(
    state: WorkflowState, reasoning: ReasoningService
) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Choose the best deal and record the session's lessons.

    Returns:
        ``DEAL_SELECTED`` when a trusted quote exists, ``NO_DEAL`` otherwise,
        with the events to append.
    """
    state.hand_over(AgentName.LEARNING)
    best = select_best_call(state.negotiation.calls)
    events: list[AgentEvent] = []

    lessons = await draw_lessons(state, best, reasoning)
    state.learning.session_learnings.extend(lessons)
    events.append(
        AgentEvent(
            type=EventType.LEARNING_INSIGHT,
            agent=AgentName.LEARNING,
            message=lessons[0],
            data={"lessons": lessons},
        )
    )

    if best is None or best.quoted_price is None:
        logger.info("no_deal_found", session_id=state.session_id)
        events.append(
            AgentEvent(
                type=EventType.AGENT_COMPLETED,
                agent=AgentName.LEARNING,
                message="No usable quote was collected",
            )
        )
        return WorkflowEvent.NO_DEAL, events

    state.best_deal = BestDeal(
        vendor=_find_business(state, best.business_id, best.business_name),
        price=best.quoted_price,
        details=best.notes,
    )
    DEALS_FOUND.inc()
    logger.info(
        "best_deal_selected",
        session_id=state.session_id,
        vendor=best.business_name,
        price=best.quoted_price,
    )
    events.append(
        AgentEvent(
            type=EventType.AGENT_COMPLETED,
            agent=AgentName.LEARNING,
            message=f"Best deal: {best.business_name} at {best.quoted_price:g}",
            data={"vendor_name": best.business_name, "price": best.quoted_price},
        )
    )
    return WorkflowEvent.DEAL_SELECTED, events
