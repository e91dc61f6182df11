"""Session orchestrator: the single entry point drivers use to act on sessions.

Every action is validated before the session is touched, then executed under
the session's lock so at most one action (and therefore one workflow
advance) runs per session at a time.  Workflow updates are applied by
swapping the session's state reference, so concurrent readers such as event
streams and snapshots always see a complete state.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, assert_never

import structlog
from pydantic import BaseModel, ConfigDict

from negotiator.domain.errors import InvalidActionError
from negotiator.domain.models import (
    AgentEvent,
    BestDeal,
    CallDecisionState,
    HumanInterruptState,
    StageError,
    WorkflowState,
)
from negotiator.domain.types import (
    AgentName,
    EventType,
    SessionStatus,
    WorkflowStage,
)
from negotiator.sessions.models import Session
from negotiator.sessions.store import SessionStore
from negotiator.workflow.actions import (
    PRE_CONTACT_STAGES,
    Action,
    CallDecisionAction,
    HumanResponse,
    Reset,
    Run,
    SearchBusinesses,
    SkipVerification,
    UpdateRequirements,
    apply_call_decision_action,
    apply_human_response,
    apply_skip_verification,
    apply_update_requirements,
    parse_action,
)
from negotiator.workflow.engine import NegotiationWorkflow, fail
from negotiator.workflow.stages import lookup_businesses, search_events

logger = structlog.get_logger()


class StatusSummary(BaseModel):
    """What a driver gets back after submitting an action."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    status: SessionStatus
    stage: WorkflowStage
    current_agent: AgentName
    events_count: int
    businesses_count: int
    missing_fields: list[str]
    best_deal: BestDeal | None = None
    human_interrupt: HumanInterruptState | None = None
    call_decision: CallDecisionState | None = None


class SessionSnapshot(BaseModel):
    """Full state of a session for reconciliation and debugging."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    status: SessionStatus
    last_updated: datetime
    state: WorkflowState
    events: list[AgentEvent]
    events_count: int


def settled_status(state: WorkflowState) -> SessionStatus:
    """Status of a session that is not currently advancing."""
    if state.stage == WorkflowStage.ERROR:
        return SessionStatus.ERROR
    if state.stage == WorkflowStage.COMPLETED:
        return SessionStatus.COMPLETED
    return SessionStatus.PAUSED


def summarize(session: Session) -> StatusSummary:
    """Build the status summary for *session*."""
    state = session.state
    return StatusSummary(
        session_id=session.id,
        status=session.status,
        stage=state.stage,
        current_agent=state.current_agent,
        events_count=len(session.events),
        businesses_count=len(state.businesses),
        missing_fields=state.requirements.missing_fields if state.requirements else [],
        best_deal=state.best_deal,
        human_interrupt=state.human_interrupt if state.human_interrupt.pending else None,
        call_decision=state.call_decision if state.call_decision.awaiting_decision else None,
    )


class Orchestrator:
    """Applies actions to sessions and drives the negotiation workflow.

    Args:
        store: The session registry.
        workflow: The workflow engine.
        snapshot_event_limit: Most recent events included in a snapshot.
    """

    def __init__(
        self,
        store: SessionStore,
        workflow: NegotiationWorkflow,
        snapshot_event_limit: int = 50,
    ) -> None:
        self.store = store
        self.workflow = workflow
        self._snapshot_event_limit = snapshot_event_limit

    async def submit(self, session_id: str, payload: Action | dict[str, Any]) -> StatusSummary:
        """Validate and execute one action against *session_id*.

        The session is created on first reference.

        Args:
            session_id: Target session.
            payload: A parsed ``Action`` or a raw payload with an ``action`` tag.

        Returns:
            The session's status summary after the action.

        Raises:
            InvalidActionError: If the payload is malformed or the action is
                not allowed in the session's current state.  Nothing is
                mutated in that case.
        """
        action = parse_action(payload) if isinstance(payload, dict) else payload
        session = self.store.get_or_create(session_id)
        async with session.lock:
            log = logger.bind(session_id=session_id, action=action.action)
            match action:
                case UpdateRequirements(requirements=requirements):
                    self._commit(session, apply_update_requirements, requirements)
                case SearchBusinesses():
                    await self._search(session)
                case HumanResponse(response=response):
                    self._commit(session, apply_human_response, response)
                case CallDecisionAction(decision=decision):
                    self._commit(session, apply_call_decision_action, decision)
                case SkipVerification():
                    self._commit(session, apply_skip_verification)
                case Run():
                    await self._run(session)
                case Reset():
                    self._reset(session)
                case _:
                    assert_never(action)
            log.info("action_applied", status=session.status, stage=session.state.stage)
            return summarize(session)

    def snapshot(self, session_id: str) -> SessionSnapshot:
        """Return the full state and most recent events of *session_id*.

        Raises:
            SessionNotFoundError: If *session_id* is unknown.
        """
        session = self.store.get(session_id)
        events = list(session.events)
        limit = self._snapshot_event_limit
        return SessionSnapshot(
            session_id=session.id,
            status=session.status,
            last_updated=session.last_updated,
            state=session.state,
            events=events[-limit:] if limit else [],
            events_count=len(events),
        )

    def delete(self, session_id: str) -> bool:
        """Delete *session_id*; returns False if it did not exist."""
        return self.store.delete(session_id)

    def _commit(self, session: Session, change: Any, *args: Any) -> None:
        """Apply *change* to a copy of the state, then publish the copy.

        *change* raises before anything is published when the action is not
        allowed, leaving the session untouched.
        """
        working = session.state.model_copy(deep=True)
        events = change(working, *args)
        try:
            working.check_pending_inputs()
        except ValueError as exc:
            raise InvalidActionError(str(exc)) from exc
        session.replace_state(working)
        session.append_events(events)
        if session.status != SessionStatus.ERROR:
            session.set_status(settled_status(working))

    async def _search(self, session: Session) -> None:
        state = session.state
        requirements = state.requirements
        if requirements is None or not requirements.from_location:
            raise InvalidActionError("a pickup location is required before searching")
        if state.stage not in PRE_CONTACT_STAGES:
            raise InvalidActionError(f"cannot search once the session is at {state.stage}")

        services = self.workflow.services
        businesses, error = await lookup_businesses(
            requirements, services.directory, services.settings.search_radius_km
        )
        working = state.model_copy(deep=True)
        working.businesses = businesses
        events = search_events(working, businesses, error)
        working.research = None
        if businesses and working.stage != WorkflowStage.INTAKE:
            working.stage = WorkflowStage.RESEARCH
        if businesses:
            working.should_continue = True
        session.replace_state(working)
        session.append_events(events)

    async def _run(self, session: Session) -> None:
        state = session.state
        if state.stage == WorkflowStage.ERROR or session.status == SessionStatus.ERROR:
            raise InvalidActionError("session is in error state; reset required")

        if not state.awaiting_input and not state.should_continue:
            resumed = state.model_copy(deep=True)
            resumed.should_continue = True
            session.replace_state(resumed)
        session.set_status(SessionStatus.RUNNING)

        try:
            async for update in self.workflow.advance(session.state):
                session.replace_state(update.state)
                session.append_events(update.events)
        except Exception as exc:
            logger.exception("workflow_advance_failed", session_id=session.id)
            failed = session.state.model_copy(deep=True)
            failed.errors.append(
                StageError(agent=failed.current_agent, error=str(exc), recoverable=False)
            )
            stage = failed.stage
            fail(failed)
            session.replace_state(failed)
            session.append_events(
                [
                    AgentEvent(
                        type=EventType.AGENT_ERROR,
                        agent=failed.current_agent,
                        message=f"Workflow failed during {stage}: {exc}",
                        data={"recoverable": False, "stage": stage},
                    )
                ]
            )
            session.set_status(SessionStatus.ERROR)
            return

        session.set_status(settled_status(session.state))

    def _reset(self, session: Session) -> None:
        self.store.reset(session.id)
        session.announce(
            AgentEvent(
                type=EventType.SESSION_RESET,
                agent=AgentName.SYSTEM,
                message="Session reset",
            )
        )
