"""Transition map defining all valid (stage, event) -> stage mappings."""

from enum import StrEnum

from negotiator.domain.types import WorkflowStage


class WorkflowEvent(StrEnum):
    """Events that move a session between workflow stages."""

    AWAIT_INPUT = "await_input"
    REQUIREMENTS_COMPLETE = "requirements_complete"
    BUSINESSES_READY = "businesses_ready"
    SEARCH_FINISHED = "search_finished"
    NO_CANDIDATES = "no_candidates"
    RESEARCHED = "researched"
    RANKED = "ranked"
    CALL_FAILED = "call_failed"
    RETRY_VENDOR = "retry_vendor"
    INTERRUPT = "interrupt"
    HUMAN_ANSWERED = "human_answered"
    CALL_CONCLUDED = "call_concluded"
    VENDORS_EXHAUSTED = "vendors_exhausted"
    CONTINUE_CALLING = "continue_calling"
    STOP_CALLING = "stop_calling"
    DEAL_SELECTED = "deal_selected"
    NO_DEAL = "no_deal"
    VERIFIED = "verified"
    FAIL = "fail"


_S = WorkflowStage
_E = WorkflowEvent

# All valid (current_stage, event_string) -> next_stage mappings.
# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[WorkflowStage, str], WorkflowStage] = {
    # From INTAKE
    (_S.INTAKE, _E.AWAIT_INPUT): _S.INTAKE,
    (_S.INTAKE, _E.REQUIREMENTS_COMPLETE): _S.SEARCH,
    (_S.INTAKE, _E.BUSINESSES_READY): _S.RESEARCH,
    # From SEARCH
    (_S.SEARCH, _E.SEARCH_FINISHED): _S.RESEARCH,
    # From RESEARCH
    (_S.RESEARCH, _E.NO_CANDIDATES): _S.RESEARCH,
    (_S.RESEARCH, _E.RESEARCHED): _S.RANKING,
    # From RANKING
    (_S.RANKING, _E.NO_CANDIDATES): _S.RANKING,
    (_S.RANKING, _E.RANKED): _S.CONTACT,
    # From CONTACT
    (_S.CONTACT, _E.CALL_FAILED): _S.CONTACT,
    (_S.CONTACT, _E.RETRY_VENDOR): _S.CONTACT,
    (_S.CONTACT, _E.INTERRUPT): _S.HUMAN_INTERRUPT,
    (_S.CONTACT, _E.CALL_CONCLUDED): _S.CALL_DECISION,
    (_S.CONTACT, _E.VENDORS_EXHAUSTED): _S.LEARNING,
    # From HUMAN_INTERRUPT
    (_S.HUMAN_INTERRUPT, _E.HUMAN_ANSWERED): _S.CONTACT,
    # From CALL_DECISION
    (_S.CALL_DECISION, _E.CONTINUE_CALLING): _S.CONTACT,
    (_S.CALL_DECISION, _E.STOP_CALLING): _S.LEARNING,
    # From LEARNING
    (_S.LEARNING, _E.DEAL_SELECTED): _S.VERIFICATION,
    (_S.LEARNING, _E.NO_DEAL): _S.COMPLETED,
    # From VERIFICATION
    (_S.VERIFICATION, _E.VERIFIED): _S.COMPLETED,
}

# Every live stage can fail into ERROR
TRANSITIONS.update(
    {
        (stage, _E.FAIL): _S.ERROR
        for stage in WorkflowStage
        if stage not in (_S.COMPLETED, _S.ERROR)
    }
)

# Stages that reject all events -- no outgoing transitions allowed.
TERMINAL_STAGES: frozenset[WorkflowStage] = frozenset({_S.COMPLETED, _S.ERROR})
