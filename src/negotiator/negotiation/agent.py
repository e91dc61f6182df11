"""Contact loop: call ranked vendors one at a time and interpret each call.

One pass of ``contact_next_vendor`` places at most one call.  Its outcome
decides whether the workflow moves to the next vendor, re-calls the same
vendor with a cached answer, pauses for the customer, or pauses for the
continue/stop decision.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from negotiator.collaborators.call_history import CallHistory
from negotiator.collaborators.telephony import CallPurpose, OutboundCaller
from negotiator.config import Settings
from negotiator.domain.errors import CallTrackingError, CollaboratorError
from negotiator.domain.models import (
    AgentEvent,
    Business,
    CallRecord,
    CallStatusReport,
    CallSummary,
    HumanInterruptState,
    InterruptExchange,
    RankedVendor,
    Requirements,
    StageError,
    VendorCall,
    WorkflowState,
    new_id,
    utc_now,
)
from negotiator.domain.types import (
    AgentName,
    CallDecision,
    CallStatus,
    EventType,
    normalize_call_status,
)
from negotiator.llm.client import ReasoningService
from negotiator.negotiation.human_interrupt import (
    find_cached_response,
    find_unanswered_question,
    normalize_question,
)
from negotiator.negotiation.quotes import extract_quote, is_plausible_price
from negotiator.observability.metrics import CALLS_PLACED
from negotiator.workflow.transitions import WorkflowEvent

logger = structlog.get_logger()

CALL_ERRORS = (CollaboratorError, httpx.HTTPError)

_PENDING_STATUSES = frozenset({CallStatus.QUEUED, CallStatus.IN_PROGRESS})

_OUTCOMES: dict[CallStatus, str] = {
    CallStatus.COMPLETED: "success",
    CallStatus.FAILED: "failed",
    CallStatus.BUSY: "busy",
    CallStatus.NO_ANSWER: "no_answer",
}


def contact_order(state: WorkflowState, max_vendors: int) -> list[RankedVendor]:
    """The ranked vendors the contact loop will call, in order."""
    if state.research is None or state.research.vendor_ranking is None:
        return []
    return state.research.vendor_ranking.ranked_vendors[:max_vendors]


async def poll_call(
    caller: OutboundCaller,
    call_id: str,
    *,
    interval: float,
    max_attempts: int,
) -> CallStatusReport | None:
    """Poll *call_id* until it reaches a final status.

    Returns:
        The final status report, or ``None`` when the call is still running
        after *max_attempts* polls.
    """
    for _ in range(max_attempts):
        report = await caller.get_call_status(call_id)
        if normalize_call_status(report.status) not in _PENDING_STATUSES:
            return report
        await asyncio.sleep(interval)
    return None


async def place_and_wait(
    caller: OutboundCaller,
    business: Business,
    requirements: Requirements,
    benchmark: float | None,
    settings: Settings,
    *,
    purpose: CallPurpose = "negotiation",
) -> tuple[str, CallStatusReport | None]:
    """Place a call and wait for it to finish.

    Returns:
        ``(call_id, report)``; *report* is ``None`` when polling timed out.

    Raises:
        CollaboratorError: If the telephony provider rejects the call.
        httpx.HTTPError: If placing the call fails after retries.
        CallTrackingError: If the call was placed but polling it failed.
    """
    placed = await caller.place_call(business, requirements, benchmark, purpose=purpose)
    try:
        report = await poll_call(
            caller,
            placed.call_id,
            interval=settings.call_poll_interval_seconds,
            max_attempts=settings.call_poll_max_attempts,
        )
    except CALL_ERRORS as exc:
        raise CallTrackingError(placed.call_id, str(exc)) from exc
    return placed.call_id, report


async def save_call_record(call_history: CallHistory, record: CallRecord) -> None:
    """Persist *record*; storage failures are logged and do not stop the session."""
    try:
        await asyncio.to_thread(call_history.create, record)
    except Exception:
        logger.warning("call_record_save_failed", call_id=record.call_id, exc_info=True)


def _call_record(
    state: WorkflowState,
    business: Business,
    call: VendorCall,
    report: CallStatusReport | None,
) -> CallRecord:
    return CallRecord(
        call_id=call.call_id,
        session_id=state.session_id,
        vendor_name=business.name,
        vendor_phone=business.phone,
        started_at=call.started_at,
        ended_at=call.ended_at,
        duration_seconds=call.duration_seconds,
        status=call.status.value,
        ended_reason=report.ended_reason if report else None,
        requirements=(
            state.requirements.model_dump(mode="json", by_alias=True)
            if state.requirements
            else None
        ),
        quoted_price=call.quoted_price,
        negotiated_price=call.negotiated_price,
        transcript=call.transcript,
        recording_url=report.recording_url if report else None,
        notes=call.notes or None,
    )


def _call_failed(
    state: WorkflowState,
    business: Business,
    call: VendorCall,
    detail: str,
) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Record a failed attempt and move on to the next vendor."""
    state.negotiation.calls.append(call)
    state.negotiation.current_vendor_index += 1
    state.errors.append(StageError(agent=AgentName.NEGOTIATOR, error=detail))
    CALLS_PLACED.labels(outcome=_OUTCOMES.get(call.status, "failed")).inc()
    logger.warning(
        "vendor_call_failed", session_id=state.session_id, vendor=business.name, detail=detail
    )
    return WorkflowEvent.CALL_FAILED, [
        AgentEvent(
            type=EventType.AGENT_ERROR,
            agent=AgentName.NEGOTIATOR,
            message=f"Call to {business.name} failed: {detail}",
            data={"vendor_name": business.name, "recoverable": True, "status": call.status},
        )
    ]


async def contact_next_vendor(
    state: WorkflowState,
    *,
    caller: OutboundCaller,
    reasoning: ReasoningService,
    call_history: CallHistory,
    settings: Settings,
) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Call the vendor at the current index and interpret the result.

    Mutates *state* (a working copy owned by the workflow).

    Args:
        state: Working copy of the session state.
        caller: Telephony collaborator.
        reasoning: Reasoning service for quote extraction.
        call_history: Call-record store.
        settings: Polling and contact-loop limits.

    Returns:
        The workflow event describing the outcome and the events to append.
    """
    state.hand_over(AgentName.NEGOTIATOR)
    vendors = contact_order(state, settings.max_vendors_to_call)
    progress = state.negotiation
    index = progress.current_vendor_index

    if index >= len(vendors):
        return WorkflowEvent.VENDORS_EXHAUSTED, [
            AgentEvent(
                type=EventType.AGENT_COMPLETED,
                agent=AgentName.NEGOTIATOR,
                message=f"Contacted all {len(vendors)} vendors",
                data={"total_calls": progress.total_calls_made},
            )
        ]

    vendor = vendors[index]
    business = vendor.business
    requirements = state.requirements or Requirements()
    benchmark = progress.lowest_price_so_far
    events = [
        AgentEvent(
            type=EventType.CALL_STARTED,
            agent=AgentName.NEGOTIATOR,
            message=f"Calling {business.name} ({index + 1}/{len(vendors)})",
            data={
                "vendor_name": business.name,
                "vendor_phone": business.phone,
                "benchmark": benchmark,
                "strategy": vendor.negotiation_strategy,
            },
        )
    ]

    progress.total_calls_made += 1
    call = VendorCall(
        call_id=new_id(),
        business_id=business.id,
        business_name=business.name,
        started_at=utc_now(),
    )
    try:
        call_id, report = await place_and_wait(caller, business, requirements, benchmark, settings)
    except CALL_ERRORS as exc:
        call.status = CallStatus.FAILED
        call.ended_at = utc_now()
        if isinstance(exc, CallTrackingError):
            call.call_id = exc.call_id
            call.notes = "Lost track of the call while polling"
            await save_call_record(call_history, _call_record(state, business, call, None))
        event, failure_events = _call_failed(state, business, call, str(exc))
        return event, events + failure_events

    call.call_id = call_id
    if report is None:
        call.status = CallStatus.FAILED
        call.ended_at = utc_now()
        call.notes = "Call did not finish in time"
        await save_call_record(call_history, _call_record(state, business, call, None))
        event, failure_events = _call_failed(state, business, call, call.notes)
        return event, events + failure_events

    call.status = normalize_call_status(report.status)
    call.started_at = report.started_at or call.started_at
    call.ended_at = report.ended_at or utc_now()
    call.duration_seconds = report.duration_seconds
    call.transcript = report.transcript
    if report.ended_reason in ("customer-did-not-answer", "no-answer"):
        call.status = CallStatus.NO_ANSWER
    elif report.ended_reason == "customer-busy":
        call.status = CallStatus.BUSY

    if call.status != CallStatus.COMPLETED:
        await save_call_record(call_history, _call_record(state, business, call, report))
        event, failure_events = _call_failed(
            state, business, call, f"call ended with status {call.status}"
        )
        return event, events + failure_events

    quote = await extract_quote(business, report.transcript or "", reasoning)
    call.notes = quote.notes
    events.append(
        AgentEvent(
            type=EventType.CALL_ENDED,
            agent=AgentName.NEGOTIATOR,
            message=f"Call with {business.name} ended",
            data={
                "vendor_name": business.name,
                "duration_seconds": call.duration_seconds,
                "summary": report.summary,
            },
        )
    )

    if quote.price is None:
        check = find_unanswered_question(
            report.transcript or "", _questions_put_to(progress.calls, business)
        )
        if check.needs_human_input and check.question:
            progress.calls.append(call)
            await save_call_record(call_history, _call_record(state, business, call, report))
            CALLS_PLACED.labels(outcome="interrupted").inc()
            return _handle_vendor_question(
                state, business, call, check.question, check.reason or "", events
            )

    return await _conclude_call(
        state, business, call, report, quote.price, vendors, call_history, events
    )


def _questions_put_to(calls: list[VendorCall], business: Business) -> set[str]:
    """Question categories this vendor already asked and got an answer to."""
    return {
        normalize_question(exchange.question)
        for call in calls
        if call.business_id == business.id
        for exchange in call.human_interrupts
    }


def _handle_vendor_question(
    state: WorkflowState,
    business: Business,
    call: VendorCall,
    question: str,
    reason: str,
    events: list[AgentEvent],
) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Answer from the cache and re-call, or pause for the customer."""
    cached = find_cached_response(question, state.hitl_cache)
    if cached is not None:
        cached.used_count += 1
        requirements = state.requirements or Requirements()
        state.requirements = requirements.model_copy(
            update={"clarifications": {**requirements.clarifications, question: cached.response}}
        )
        call.human_interrupts.append(
            InterruptExchange(question=question, response=cached.response, from_cache=True)
        )
        logger.info(
            "vendor_question_answered_from_cache",
            session_id=state.session_id,
            pattern=cached.question_pattern,
        )
        events.append(
            AgentEvent(
                type=EventType.HUMAN_INTERRUPT_RESOLVED,
                agent=AgentName.HUMAN_INTERRUPT,
                message=f"Answered '{question}' from an earlier response",
                data={"question": question, "response": cached.response, "from_cache": True},
            )
        )
        return WorkflowEvent.RETRY_VENDOR, events

    state.human_interrupt = HumanInterruptState(
        active=True,
        interrupt_id=new_id(),
        reason=reason,
        vendor_question=question,
        context=f"Call with {business.name}",
        requested_at=utc_now(),
    )
    state.should_continue = False
    state.hand_over(AgentName.HUMAN_INTERRUPT)
    events.append(
        AgentEvent(
            type=EventType.HUMAN_INTERRUPT_REQUESTED,
            agent=AgentName.HUMAN_INTERRUPT,
            message=f"{business.name} asked: {question}",
            data={
                "interrupt_id": state.human_interrupt.interrupt_id,
                "question": question,
                "reason": reason,
                "vendor_name": business.name,
            },
        )
    )
    return WorkflowEvent.INTERRUPT, events


async def _conclude_call(
    state: WorkflowState,
    business: Business,
    call: VendorCall,
    report: CallStatusReport,
    price: float | None,
    vendors: list[RankedVendor],
    call_history: CallHistory,
    events: list[AgentEvent],
) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Record a finished call with its quote and decide what comes next."""
    progress = state.negotiation
    intel = state.research.price_intel if state.research else None
    baseline = intel.baseline if intel else None
    highlights: list[str] = []

    if price is not None:
        call.quoted_price = price
        if is_plausible_price(price, baseline):
            highlights.append(f"Quoted {price:g}")
            if progress.lowest_price_so_far is None or price < progress.lowest_price_so_far:
                progress.lowest_price_so_far = price
                progress.best_vendor_so_far = business.name
                highlights.append("New best price")
        else:
            call.suspicious_price = True
            highlights.append(f"Quoted {price:g}, outside the expected range")
            events.append(
                AgentEvent(
                    type=EventType.PRICE_VERIFICATION_NEEDED,
                    agent=AgentName.NEGOTIATOR,
                    message=f"Price {price:g} from {business.name} looks implausible",
                    data={
                        "vendor_name": business.name,
                        "price": price,
                        "baseline": baseline.model_dump() if baseline else None,
                    },
                )
            )
    else:
        highlights.append("No price quoted")
    if call.notes:
        highlights.append(call.notes)

    progress.calls.append(call)
    await save_call_record(call_history, _call_record(state, business, call, report))
    CALLS_PLACED.labels(outcome="success").inc()
    logger.info(
        "vendor_call_completed",
        session_id=state.session_id,
        vendor=business.name,
        price=price,
        suspicious=call.suspicious_price,
    )

    summary = CallSummary(
        vendor_name=business.name,
        vendor_phone=business.phone,
        quoted_price=call.quoted_price,
        negotiated_price=call.negotiated_price,
        call_duration=call.duration_seconds or 0,
        outcome=_OUTCOMES[call.status],
        highlights=highlights,
    )
    events.append(
        AgentEvent(
            type=EventType.CALL_SUMMARY,
            agent=AgentName.NEGOTIATOR,
            message=f"{business.name}: {', '.join(highlights)}",
            data=summary.model_dump(mode="json"),
        )
    )

    remaining = len(vendors) - (progress.current_vendor_index + 1)
    if remaining <= 0:
        return WorkflowEvent.VENDORS_EXHAUSTED, events

    state.call_decision.awaiting_decision = True
    state.call_decision.last_call_summary = summary
    state.call_decision.vendors_remaining = remaining
    state.call_decision.current_best_price = progress.lowest_price_so_far
    state.call_decision.current_best_vendor = progress.best_vendor_so_far
    state.call_decision.user_decision = None
    state.should_continue = False
    state.hand_over(AgentName.CALL_DECISION)
    events.append(
        AgentEvent(
            type=EventType.AWAITING_CALL_DECISION,
            agent=AgentName.CALL_DECISION,
            message=f"{remaining} vendors left. Continue calling or stop here?",
            data={
                "vendors_remaining": remaining,
                "current_best_price": progress.lowest_price_so_far,
                "current_best_vendor": progress.best_vendor_so_far,
            },
        )
    )
    return WorkflowEvent.CALL_CONCLUDED, events


async def resume_after_interrupt(state: WorkflowState) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Fold the customer's answer into the requirements and re-call the same vendor."""
    interrupt = state.human_interrupt
    question = interrupt.vendor_question or ""
    response = interrupt.response or ""
    requirements = state.requirements or Requirements()
    state.requirements = requirements.model_copy(
        update={"clarifications": {**requirements.clarifications, question: response}}
    )
    if state.negotiation.calls:
        state.negotiation.calls[-1].human_interrupts.append(
            InterruptExchange(
                question=question, response=response, timestamp=interrupt.responded_at or utc_now()
            )
        )
    state.human_interrupt = HumanInterruptState()
    state.hand_over(AgentName.NEGOTIATOR)
    return WorkflowEvent.HUMAN_ANSWERED, [
        AgentEvent(
            type=EventType.MESSAGE,
            agent=AgentName.NEGOTIATOR,
            message="Calling the vendor back with your answer",
            data={"question": question},
        )
    ]


async def apply_call_decision(state: WorkflowState) -> tuple[WorkflowEvent, list[AgentEvent]]:
    """Route a decided call-decision pause back into the contact loop or to learning."""
    decision = state.call_decision.user_decision
    if decision == CallDecision.CONTINUE:
        state.hand_over(AgentName.NEGOTIATOR)
        return WorkflowEvent.CONTINUE_CALLING, [
            AgentEvent(
                type=EventType.MESSAGE,
                agent=AgentName.CALL_DECISION,
                message="Continuing with the next vendor",
            )
        ]
    state.hand_over(AgentName.LEARNING)
    return WorkflowEvent.STOP_CALLING, [
        AgentEvent(
            type=EventType.MESSAGE,
            agent=AgentName.CALL_DECISION,
            message="Stopped calling; reviewing the quotes collected",
        )
    ]
