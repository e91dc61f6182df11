"""Domain-specific exception classes for the vendor negotiation agent."""

from negotiator.domain.types import WorkflowStage


class NegotiatorError(Exception):
    """Base class for all domain errors in the negotiation agent."""


class InvalidTransitionError(NegotiatorError):
    """Raised when an invalid stage transition is attempted.

    Attributes:
        current_stage: The stage the workflow was in when the transition was attempted.
        event: The event that was rejected.
    """

    def __init__(self, current_stage: WorkflowStage, event: str) -> None:
        self.current_stage = current_stage
        self.event = event
        super().__init__(f"Cannot apply event '{event}' in stage '{current_stage}'")


class SessionNotFoundError(NegotiatorError):
    """Raised when a session id is not present in the session store.

    Attributes:
        session_id: The id that was looked up.
    """

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' not found")


class InvalidActionError(NegotiatorError):
    """Raised when an action is malformed or not allowed in the current state.

    The session is never mutated when this is raised.
    """


class CollaboratorError(NegotiatorError):
    """Raised by collaborator adapters when an external provider fails.

    Attributes:
        service: Name of the failing collaborator (e.g. ``"google_maps"``).
        detail: Human-readable failure description.
    """

    def __init__(self, service: str, detail: str) -> None:
        self.service = service
        self.detail = detail
        super().__init__(f"{service}: {detail}")


class CallRecordNotFoundError(NegotiatorError):
    """Raised when a call record id is not present in the call-history store."""

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__(f"Call record '{call_id}' not found")


class CallTrackingError(CollaboratorError):
    """Raised when a placed call cannot be followed to its final status.

    Attributes:
        call_id: Provider id of the call that was placed.
    """

    def __init__(self, call_id: str, detail: str) -> None:
        self.call_id = call_id
        super().__init__("telephony", f"lost track of call {call_id}: {detail}")
