"""Negotiation workflow engine.

``NegotiationWorkflow.advance`` runs one stage at a time on a deep copy of the
session state and yields a ``WorkflowUpdate`` after each stage.  The consumer
applies every update atomically and may stop pulling at any point; the
generator itself stops once the state asks to pause or reaches a terminal
stage.  Advancing always starts from the persisted stage, so completed
stages are never re-run.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable

import structlog
from pydantic import BaseModel, ConfigDict

from negotiator.collaborators.call_history import CallHistory
from negotiator.collaborators.directory import BusinessDirectory
from negotiator.collaborators.telephony import OutboundCaller
from negotiator.config import Settings
from negotiator.domain.models import AgentEvent, WorkflowState
from negotiator.domain.types import WorkflowStage
from negotiator.learning.agent import run_learning
from negotiator.llm.client import ReasoningService
from negotiator.negotiation.agent import (
    apply_call_decision,
    contact_next_vendor,
    resume_after_interrupt,
)
from negotiator.research.price_intel import ServiceRates
from negotiator.verification.agent import verify_best_deal
from negotiator.workflow.machine import StageMachine
from negotiator.workflow.stages import (
    StageResult,
    run_intake,
    run_ranking,
    run_research,
    run_search,
)
from negotiator.workflow.transitions import WorkflowEvent

logger = structlog.get_logger()

StageHandler = Callable[[WorkflowState], Awaitable[StageResult]]


class WorkflowUpdate(BaseModel):
    """One stage's result: the new state and the events it produced."""

    model_config = ConfigDict(frozen=True)

    stage: WorkflowStage
    state: WorkflowState
    events: list[AgentEvent]


class WorkflowServices:
    """Collaborators and configuration shared by every stage.

    Args:
        directory: Business directory and geocoding.
        caller: Outbound telephony.
        reasoning: Natural-language reasoning service.
        call_history: Call-record persistence.
        rates: Service rate card for price intelligence.
        settings: Application settings (radius, polling, vendor cap).
    """

    def __init__(
        self,
        directory: BusinessDirectory,
        caller: OutboundCaller,
        reasoning: ReasoningService,
        call_history: CallHistory,
        rates: ServiceRates,
        settings: Settings,
    ) -> None:
        self.directory = directory
        self.caller = caller
        self.reasoning = reasoning
        self.call_history = call_history
        self.rates = rates
        self.settings = settings


def apply_transition(state: WorkflowState, event: str) -> WorkflowStage:
    """Move *state* along the transition map, recording the step in its history.

    Raises:
        InvalidTransitionError: If *event* is not valid from the current stage.
    """
    machine = StageMachine.from_snapshot(state.stage, state.stage_history)
    state.stage = machine.trigger(event)
    state.stage_history = machine.history
    if machine.is_terminal:
        state.should_continue = False
    return state.stage


def fail(state: WorkflowState) -> None:
    """Move *state* into ERROR; a terminal state is left as it is."""
    if state.stage in (WorkflowStage.COMPLETED, WorkflowStage.ERROR):
        state.should_continue = False
        return
    apply_transition(state, WorkflowEvent.FAIL)


class NegotiationWorkflow:
    """Stage sequencer for one negotiation session.

    Args:
        services: Collaborators shared by the stages.
    """

    def __init__(self, services: WorkflowServices) -> None:
        self.services = services
        self._handlers: dict[WorkflowStage, StageHandler] = {
            WorkflowStage.INTAKE: run_intake,
            WorkflowStage.SEARCH: self._search,
            WorkflowStage.RESEARCH: self._research,
            WorkflowStage.RANKING: self._ranking,
            WorkflowStage.CONTACT: self._contact,
            WorkflowStage.HUMAN_INTERRUPT: resume_after_interrupt,
            WorkflowStage.CALL_DECISION: apply_call_decision,
            WorkflowStage.LEARNING: self._learning,
            WorkflowStage.VERIFICATION: self._verification,
        }

    async def advance(self, state: WorkflowState) -> AsyncIterator[WorkflowUpdate]:
        """Run stages from ``state.stage`` until a pause or a terminal stage.

        A state that is waiting on a human answer or a call decision yields
        nothing, so advancing it again has no side effects.  *state* itself is
        never mutated.

        Args:
            state: The persisted session state to resume from.

        Yields:
            One ``WorkflowUpdate`` per executed stage, in order.

        Raises:
            ValueError: If a stage leaves the state awaiting a human answer
                and a call decision at once.
        """
        if state.awaiting_input:
            logger.info("advance_skipped_awaiting_input", session_id=state.session_id)
            return

        current = state
        while current.stage in self._handlers:
            working = current.model_copy(deep=True)
            handler = self._handlers[working.stage]
            event, events = await handler(working)
            stage = apply_transition(working, event)
            working.check_pending_inputs()
            logger.info(
                "stage_advanced",
                session_id=working.session_id,
                workflow_event=str(event),
                stage=stage,
            )
            yield WorkflowUpdate(stage=stage, state=working, events=events)
            current = working
            if not current.should_continue:
                return

    async def _search(self, state: WorkflowState) -> StageResult:
        return await run_search(
            state, self.services.directory, self.services.settings.search_radius_km
        )

    async def _research(self, state: WorkflowState) -> StageResult:
        return await run_research(
            state, self.services.directory, self.services.reasoning, self.services.rates
        )

    async def _ranking(self, state: WorkflowState) -> StageResult:
        return await run_ranking(state, self.services.reasoning)

    async def _contact(self, state: WorkflowState) -> StageResult:
        return await contact_next_vendor(
            state,
            caller=self.services.caller,
            reasoning=self.services.reasoning,
            call_history=self.services.call_history,
            settings=self.services.settings,
        )

    async def _learning(self, state: WorkflowState) -> StageResult:
        return await run_learning(state, self.services.reasoning)

    async def _verification(self, state: WorkflowState) -> StageResult:
        return await verify_best_deal(
            state,
            caller=self.services.caller,
            reasoning=self.services.reasoning,
            settings=self.services.settings,
        )
