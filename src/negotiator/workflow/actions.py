"""Session actions as a tagged union, and the pure state changes they make.

Every action a driver can submit is one model in the ``Action`` union,
discriminated by its ``action`` field.  ``parse_action`` turns a raw payload
into one of them or raises ``InvalidActionError``.  The ``apply_*`` helpers
here mutate a working copy of the state for the actions that do not need
collaborators; ``run``, ``reset`` and ``search_businesses`` are handled by
the orchestrator.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from negotiator.domain.errors import InvalidActionError
from negotiator.domain.models import AgentEvent, Requirements, WorkflowState, utc_now
from negotiator.domain.types import AgentName, CallDecision, EventType, WorkflowStage
from negotiator.negotiation.human_interrupt import remember_response

# Stages whose work depends on the requirements and is redone when they change
PRE_CONTACT_STAGES = frozenset(
    {WorkflowStage.INTAKE, WorkflowStage.SEARCH, WorkflowStage.RESEARCH, WorkflowStage.RANKING}
)


class _Action(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class UpdateRequirements(_Action):
    """Replace the session's requirements."""

    action: Literal["update_requirements", "start"]
    requirements: Requirements


class SearchBusinesses(_Action):
    """Run only the directory search."""

    action: Literal["search_businesses"]


class HumanResponse(_Action):
    """Answer the pending vendor question."""

    action: Literal["human_response"]
    response: str = Field(min_length=1)


class CallDecisionAction(_Action):
    """Continue calling or stop after a concluded call."""

    action: Literal["call_decision"]
    decision: CallDecision


class SkipVerification(_Action):
    """Do not re-confirm the best deal."""

    action: Literal["skip_verification"]


class Run(_Action):
    """Advance the workflow until it pauses or finishes."""

    action: Literal["run"]


class Reset(_Action):
    """Return the session to a fresh intake state."""

    action: Literal["reset"]


Action = Annotated[
    UpdateRequirements
    | SearchBusinesses
    | HumanResponse
    | CallDecisionAction
    | SkipVerification
    | Run
    | Reset,
    Field(discriminator="action"),
]

_ACTION_ADAPTER: TypeAdapter[Action] = TypeAdapter(Action)


def parse_action(payload: Any) -> Action:
    """Validate a raw action payload.

    Raises:
        InvalidActionError: On an unknown ``action`` tag or a malformed payload.
    """
    try:
        return _ACTION_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        messages = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'action'}: {err['msg']}"
            for err in exc.errors()
        )
        raise InvalidActionError(messages) from exc


def apply_update_requirements(state: WorkflowState, requirements: Requirements) -> list[AgentEvent]:
    """Store new requirements, sending pre-contact work back to intake.

    Businesses are dropped when the service or pickup location changed, since
    the search would return different candidates.
    """
    previous = state.requirements
    state.requirements = requirements
    if state.stage in PRE_CONTACT_STAGES:
        search_changed = previous is None or (
            previous.service != requirements.service
            or previous.from_location != requirements.from_location
        )
        if search_changed:
            state.businesses = []
        state.research = None
        state.stage = WorkflowStage.INTAKE
    state.should_continue = True
    return [
        AgentEvent(
            type=EventType.REQUIREMENTS_UPDATED,
            agent=AgentName.INTAKE,
            message=(
                "Requirements complete"
                if requirements.is_complete
                else f"Still missing: {', '.join(requirements.missing_fields)}"
            ),
            data={
                "requirements": requirements.model_dump(mode="json", by_alias=True),
                "is_complete": requirements.is_complete,
                "missing_fields": requirements.missing_fields,
            },
        )
    ]


def apply_human_response(state: WorkflowState, response: str) -> list[AgentEvent]:
    """Record the customer's answer to the pending vendor question.

    Raises:
        InvalidActionError: If no vendor question is waiting for an answer.
    """
    interrupt = state.human_interrupt
    if not interrupt.pending:
        raise InvalidActionError("no pending interrupt")
    question = interrupt.vendor_question or ""
    interrupt.response = response
    interrupt.responded_at = utc_now()
    state.hitl_cache = remember_response(state.hitl_cache, question, response)
    state.should_continue = True
    return [
        AgentEvent(
            type=EventType.HUMAN_INTERRUPT_RESOLVED,
            agent=AgentName.HUMAN_INTERRUPT,
            message=f"Answer received: {response}",
            data={"question": question, "response": response, "from_cache": False},
        )
    ]


def apply_call_decision_action(state: WorkflowState, decision: CallDecision) -> list[AgentEvent]:
    """Record the continue/stop choice.

    ``continue`` moves the contact loop to the next vendor.

    Raises:
        InvalidActionError: If no call decision is pending.
    """
    pending = state.call_decision
    if not pending.awaiting_decision:
        raise InvalidActionError("no pending call decision")
    if decision == CallDecision.CONTINUE:
        state.negotiation.current_vendor_index += 1
    pending.awaiting_decision = False
    pending.user_decision = decision
    state.should_continue = True
    return [
        AgentEvent(
            type=EventType.CALL_DECISION_MADE,
            agent=AgentName.CALL_DECISION,
            message=(
                "Continuing to the next vendor"
                if decision == CallDecision.CONTINUE
                else "Stopping and reviewing the best deal"
            ),
            data={"decision": decision, "vendor_index": state.negotiation.current_vendor_index},
        )
    ]


def apply_skip_verification(state: WorkflowState) -> list[AgentEvent]:
    """Mark the best deal as not needing re-confirmation."""
    state.skip_verification = True
    return [
        AgentEvent(
            type=EventType.MESSAGE,
            agent=AgentName.VERIFICATION,
            message="Verification will be skipped",
        )
    ]
