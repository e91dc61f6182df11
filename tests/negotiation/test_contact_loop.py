"""Tests for the vendor contact loop: one call per pass and its outcome."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from negotiator.collaborators.call_history import CallHistoryStore
from negotiator.config import Settings
from negotiator.domain.errors import CollaboratorError
from negotiator.domain.models import (
    Business,
    CallStatusReport,
    HumanInterruptState,
    InterruptExchange,
    VendorCall,
    WorkflowState,
    utc_now,
)
from negotiator.domain.types import AgentName, CallDecision, CallStatus, EventType
from negotiator.negotiation.agent import (
    apply_call_decision,
    contact_next_vendor,
    poll_call,
    resume_after_interrupt,
)
from negotiator.negotiation.human_interrupt import create_cache_entry
from negotiator.workflow.transitions import WorkflowEvent

QUOTE_600 = "AI: Hello, calling about a cab.\nVendor: It will be 600 rupees, all inclusive."
ADDRESS_QUESTION = "AI: Hello\nVendor: Sure. What is the exact pickup address?"


@pytest.fixture
def deps(
    caller: Any, reasoning: Any, call_history: CallHistoryStore, settings: Settings
) -> dict[str, Any]:
    return {
        "caller": caller,
        "reasoning": reasoning,
        "call_history": call_history,
        "settings": settings,
    }


@pytest.fixture
def two_vendor_state(
    contact_state: Callable[..., WorkflowState], alpha: Business, beta: Business
) -> WorkflowState:
    return contact_state([alpha, beta])


def _types(events: list[Any]) -> list[EventType]:
    return [e.type for e in events]


class TestConcludedCalls:
    @pytest.mark.anyio()
    async def test_quote_pauses_for_call_decision(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
        call_history: CallHistoryStore,
    ) -> None:
        deps["caller"].script = [call_report(QUOTE_600)]

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.CALL_CONCLUDED
        assert _types(events) == [
            EventType.CALL_STARTED,
            EventType.CALL_ENDED,
            EventType.CALL_SUMMARY,
            EventType.AWAITING_CALL_DECISION,
        ]
        progress = two_vendor_state.negotiation
        assert progress.lowest_price_so_far == 600
        assert progress.best_vendor_so_far == "Alpha Cabs"
        assert progress.current_vendor_index == 0
        assert progress.total_calls_made == 1
        assert progress.calls[0].call_id == "call-1"
        assert progress.calls[0].duration_seconds == 95

        decision = two_vendor_state.call_decision
        assert decision.awaiting_decision is True
        assert decision.vendors_remaining == 1
        assert decision.last_call_summary is not None
        assert decision.last_call_summary.outcome == "success"
        assert two_vendor_state.should_continue is False
        assert two_vendor_state.current_agent == AgentName.CALL_DECISION

        records = call_history.list_by_session("s-contact")
        assert [r.quoted_price for r in records] == [600]
        assert records[0].requirements is not None
        assert records[0].requirements["from"] == "Whitefield"

    @pytest.mark.anyio()
    async def test_last_vendor_exhausts_the_list(
        self,
        contact_state: Callable[..., WorkflowState],
        alpha: Business,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        state = contact_state([alpha])
        deps["caller"].script = [call_report(QUOTE_600)]

        event, events = await contact_next_vendor(state, **deps)

        assert event == WorkflowEvent.VENDORS_EXHAUSTED
        assert EventType.AWAITING_CALL_DECISION not in _types(events)
        assert state.call_decision.awaiting_decision is False
        assert state.should_continue is True

    @pytest.mark.anyio()
    async def test_vendor_cap_limits_the_list(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        deps["settings"].max_vendors_to_call = 1
        deps["caller"].script = [call_report(QUOTE_600)]

        event, _ = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.VENDORS_EXHAUSTED

    @pytest.mark.anyio()
    async def test_implausible_price_is_flagged(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        deps["caller"].script = [call_report("Vendor: That is 2000 rupees.")]

        _, events = await contact_next_vendor(two_vendor_state, **deps)

        call = two_vendor_state.negotiation.calls[0]
        assert call.quoted_price == 2000
        assert call.suspicious_price is True
        assert two_vendor_state.negotiation.lowest_price_so_far is None
        assert EventType.PRICE_VERIFICATION_NEEDED in _types(events)

    @pytest.mark.anyio()
    async def test_benchmark_is_passed_to_the_call(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        two_vendor_state.negotiation.lowest_price_so_far = 550
        two_vendor_state.negotiation.current_vendor_index = 1
        deps["caller"].script = [call_report("Vendor: 500 rupees, final.")]

        event, _ = await contact_next_vendor(two_vendor_state, **deps)

        assert deps["caller"].placed[0]["benchmark"] == 550
        assert deps["caller"].vendors_called == ["Beta Travels"]
        assert event == WorkflowEvent.VENDORS_EXHAUSTED
        assert two_vendor_state.negotiation.lowest_price_so_far == 500
        assert two_vendor_state.negotiation.best_vendor_so_far == "Beta Travels"

    @pytest.mark.anyio()
    async def test_index_past_the_end(
        self, two_vendor_state: WorkflowState, deps: dict[str, Any]
    ) -> None:
        two_vendor_state.negotiation.current_vendor_index = 2

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.VENDORS_EXHAUSTED
        assert _types(events) == [EventType.AGENT_COMPLETED]
        assert deps["caller"].placed == []


class TestFailedCalls:
    @pytest.mark.anyio()
    async def test_placement_error_moves_on(
        self, two_vendor_state: WorkflowState, deps: dict[str, Any]
    ) -> None:
        deps["caller"].script = [CollaboratorError("vapi", "number blocked")]

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.CALL_FAILED
        assert two_vendor_state.negotiation.current_vendor_index == 1
        assert two_vendor_state.negotiation.calls[0].status == CallStatus.FAILED
        assert two_vendor_state.errors[0].recoverable is True
        assert "number blocked" in two_vendor_state.errors[0].error
        assert events[-1].type == EventType.AGENT_ERROR
        assert events[-1].data is not None
        assert events[-1].data["recoverable"] is True

    @pytest.mark.anyio()
    async def test_poll_timeout(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_history: CallHistoryStore,
    ) -> None:
        deps["caller"].script = [CallStatusReport(status="in-progress")]

        event, _ = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.CALL_FAILED
        assert two_vendor_state.negotiation.calls[0].notes == "Call did not finish in time"
        assert [r.status for r in call_history.list_by_session("s-contact")] == ["failed"]

    @pytest.mark.anyio()
    async def test_status_poll_error_keeps_the_provider_call_id(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_history: CallHistoryStore,
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        deps["caller"].script = [call_report(QUOTE_600)]
        deps["caller"].status_error = httpx.ConnectError("connection reset")

        event, _ = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.CALL_FAILED
        call = two_vendor_state.negotiation.calls[-1]
        assert call.call_id == "call-1"
        assert call.status == CallStatus.FAILED
        assert two_vendor_state.negotiation.current_vendor_index == 1
        assert "connection reset" in two_vendor_state.errors[0].error
        record = call_history.get("call-1")
        assert record.status == "failed"
        assert record.vendor_name == "Alpha Cabs"

    @pytest.mark.anyio()
    @pytest.mark.parametrize(
        ("ended_reason", "status"),
        [
            ("customer-did-not-answer", CallStatus.NO_ANSWER),
            ("customer-busy", CallStatus.BUSY),
        ],
    )
    async def test_unanswered_calls(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
        ended_reason: str,
        status: CallStatus,
    ) -> None:
        deps["caller"].script = [call_report("", ended_reason=ended_reason)]

        event, _ = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.CALL_FAILED
        assert two_vendor_state.negotiation.calls[0].status == status
        assert two_vendor_state.negotiation.current_vendor_index == 1


class TestVendorQuestions:
    @pytest.mark.anyio()
    async def test_question_pauses_for_the_user(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        deps["caller"].script = [call_report(ADDRESS_QUESTION)]

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.INTERRUPT
        interrupt = two_vendor_state.human_interrupt
        assert interrupt.pending is True
        assert interrupt.vendor_question == "Sure. What is the exact pickup address?"
        assert interrupt.interrupt_id
        assert two_vendor_state.should_continue is False
        assert two_vendor_state.current_agent == AgentName.HUMAN_INTERRUPT
        assert two_vendor_state.negotiation.current_vendor_index == 0
        assert events[-1].type == EventType.HUMAN_INTERRUPT_REQUESTED

    @pytest.mark.anyio()
    async def test_cached_answer_retries_the_vendor(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        two_vendor_state.hitl_cache = [
            create_cache_entry("Where exactly should I pick you up?", "Gate 2, Tech Park")
        ]
        deps["caller"].script = [call_report(ADDRESS_QUESTION)]

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.RETRY_VENDOR
        assert two_vendor_state.should_continue is True
        assert two_vendor_state.human_interrupt.active is False
        assert two_vendor_state.hitl_cache[0].used_count == 2
        requirements = two_vendor_state.requirements
        assert requirements is not None
        assert requirements.clarifications == {
            "Sure. What is the exact pickup address?": "Gate 2, Tech Park"
        }
        exchange = two_vendor_state.negotiation.calls[-1].human_interrupts[0]
        assert exchange.from_cache is True
        assert events[-1].type == EventType.HUMAN_INTERRUPT_RESOLVED

    @pytest.mark.anyio()
    async def test_question_already_put_by_this_vendor_is_not_asked_again(
        self,
        two_vendor_state: WorkflowState,
        alpha: Business,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        earlier = VendorCall(call_id="call-0", business_id=alpha.id, business_name=alpha.name)
        earlier.human_interrupts.append(
            InterruptExchange(question="Where is the pickup point?", response="Gate 2")
        )
        two_vendor_state.negotiation.calls.append(earlier)
        deps["caller"].script = [call_report(ADDRESS_QUESTION)]

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.CALL_CONCLUDED
        summary = next(e for e in events if e.type == EventType.CALL_SUMMARY)
        assert summary.data is not None
        assert "No price quoted" in summary.data["highlights"]

    @pytest.mark.anyio()
    async def test_answer_given_to_another_vendor_comes_from_the_cache(
        self,
        two_vendor_state: WorkflowState,
        deps: dict[str, Any],
        call_report: Callable[..., CallStatusReport],
    ) -> None:
        earlier = VendorCall(call_id="call-0", business_id="p-alpha", business_name="Alpha Cabs")
        earlier.human_interrupts.append(
            InterruptExchange(question="What is the exact pickup address?", response="Gate 2")
        )
        two_vendor_state.negotiation.calls.append(earlier)
        two_vendor_state.negotiation.current_vendor_index = 1
        assert two_vendor_state.requirements is not None
        two_vendor_state.requirements = two_vendor_state.requirements.model_copy(
            update={"clarifications": {"What is the exact pickup address?": "Gate 2"}}
        )
        two_vendor_state.hitl_cache = [
            create_cache_entry("What is the exact pickup address?", "Gate 2")
        ]
        deps["caller"].script = [call_report("Vendor: Which gate should the driver come to?")]

        event, events = await contact_next_vendor(two_vendor_state, **deps)

        assert event == WorkflowEvent.RETRY_VENDOR
        assert deps["caller"].vendors_called == ["Beta Travels"]
        assert two_vendor_state.negotiation.current_vendor_index == 1
        assert two_vendor_state.negotiation.calls[-1].human_interrupts[0].from_cache is True
        assert events[-1].type == EventType.HUMAN_INTERRUPT_RESOLVED


class TestResumeAndDecision:
    @pytest.mark.anyio()
    async def test_resume_folds_answer_into_requirements(
        self, two_vendor_state: WorkflowState
    ) -> None:
        two_vendor_state.negotiation.calls.append(
            VendorCall(call_id="call-1", business_id="p-alpha", business_name="Alpha Cabs")
        )
        two_vendor_state.human_interrupt = HumanInterruptState(
            active=True,
            vendor_question="What is the exact pickup address?",
            response="Gate 2",
            responded_at=utc_now(),
        )

        event, _ = await resume_after_interrupt(two_vendor_state)

        assert event == WorkflowEvent.HUMAN_ANSWERED
        assert two_vendor_state.human_interrupt == HumanInterruptState()
        assert two_vendor_state.requirements is not None
        assert two_vendor_state.requirements.clarifications == {
            "What is the exact pickup address?": "Gate 2"
        }
        assert two_vendor_state.negotiation.calls[0].human_interrupts[0].response == "Gate 2"
        assert two_vendor_state.current_agent == AgentName.NEGOTIATOR

    @pytest.mark.anyio()
    @pytest.mark.parametrize(
        ("decision", "expected"),
        [
            (CallDecision.CONTINUE, WorkflowEvent.CONTINUE_CALLING),
            (CallDecision.STOP, WorkflowEvent.STOP_CALLING),
        ],
    )
    async def test_call_decision_routes(
        self,
        two_vendor_state: WorkflowState,
        decision: CallDecision,
        expected: WorkflowEvent,
    ) -> None:
        two_vendor_state.call_decision.user_decision = decision

        event, _ = await apply_call_decision(two_vendor_state)

        assert event == expected


class TestPollCall:
    @pytest.mark.anyio()
    async def test_returns_final_report(
        self, caller: Any, alpha: Business, call_report: Callable[..., CallStatusReport]
    ) -> None:
        caller.script = [call_report("Vendor: hello")]
        placed = await caller.place_call(alpha, None)

        report = await poll_call(caller, placed.call_id, interval=0, max_attempts=2)

        assert report is not None
        assert report.transcript == "Vendor: hello"

    @pytest.mark.anyio()
    async def test_gives_up_after_max_attempts(self, caller: Any, alpha: Business) -> None:
        caller.script = [CallStatusReport(status="queued")]
        placed = await caller.place_call(alpha, None)

        assert await poll_call(caller, placed.call_id, interval=0, max_attempts=2) is None
