"""Domain enumerations for the vendor negotiation agent."""

from enum import StrEnum


class WorkflowStage(StrEnum):
    """Stages of the per-session negotiation workflow."""

    INTAKE = "intake"
    SEARCH = "search"
    RESEARCH = "research"
    RANKING = "ranking"
    CONTACT = "contact"
    HUMAN_INTERRUPT = "human_interrupt"
    CALL_DECISION = "call_decision"
    LEARNING = "learning"
    VERIFICATION = "verification"
    COMPLETED = "completed"
    ERROR = "error"


class SessionStatus(StrEnum):
    """Externally visible status of a session."""

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class AgentName(StrEnum):
    """Agents that act on a session and author its events."""

    INTAKE = "intake"
    SEARCH = "search"
    RESEARCH = "research"
    RANKING = "ranking"
    NEGOTIATOR = "negotiator"
    HUMAN_INTERRUPT = "human_interrupt"
    CALL_DECISION = "call_decision"
    LEARNING = "learning"
    VERIFICATION = "verification"
    SYSTEM = "system"


class EventType(StrEnum):
    """Types of events appended to a session's event log."""

    AGENT_STARTED = "agent_started"
    AGENT_COMPLETED = "agent_completed"
    AGENT_ERROR = "agent_error"
    MESSAGE = "message"
    REQUIREMENTS_UPDATED = "requirements_updated"
    BUSINESS_FOUND = "business_found"
    RESEARCH_COMPLETE = "research_complete"
    RANKING_COMPLETE = "ranking_complete"
    CALL_STARTED = "call_started"
    CALL_ENDED = "call_ended"
    CALL_SUMMARY = "call_summary"
    AWAITING_CALL_DECISION = "awaiting_call_decision"
    CALL_DECISION_MADE = "call_decision_made"
    HUMAN_INTERRUPT_REQUESTED = "human_interrupt_requested"
    HUMAN_INTERRUPT_RESOLVED = "human_interrupt_resolved"
    PRICE_VERIFICATION_NEEDED = "price_verification_needed"
    LEARNING_INSIGHT = "learning_insight"
    VERIFICATION_RESULT = "verification_result"
    SESSION_RESET = "session_reset"


class Sentiment(StrEnum):
    """Overall review sentiment for a business."""

    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class PricePerception(StrEnum):
    """How reviewers perceive a business's prices."""

    CHEAP = "cheap"
    FAIR = "fair"
    EXPENSIVE = "expensive"
    UNKNOWN = "unknown"


class Professionalism(StrEnum):
    """Professionalism level inferred from reviews."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CallStatus(StrEnum):
    """Normalized status of an outbound vendor call."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no_answer"


class CallDecision(StrEnum):
    """User choice after a vendor call concludes."""

    CONTINUE = "continue"
    STOP = "stop"


class VerificationStatus(StrEnum):
    """Outcome of re-confirming the best deal with its vendor."""

    VERIFIED = "verified"
    DISCREPANCY = "discrepancy"
    PENDING = "pending"
    SKIPPED = "skipped"


# Raw telephony statuses that end polling, mapped to our normalized status
FINAL_CALL_STATUSES: dict[str, CallStatus] = {
    "ended": CallStatus.COMPLETED,
    "completed": CallStatus.COMPLETED,
    "failed": CallStatus.FAILED,
    "busy": CallStatus.BUSY,
    "no-answer": CallStatus.NO_ANSWER,
    "no_answer": CallStatus.NO_ANSWER,
}


def normalize_call_status(raw: str) -> CallStatus:
    """Map a raw telephony status string onto ``CallStatus``.

    Unknown non-final statuses (``queued``, ``ringing``, ``in-progress``) are
    treated as still in progress.

    Args:
        raw: Status string as reported by the telephony provider.

    Returns:
        The normalized ``CallStatus``.
    """
    key = raw.strip().lower()
    if key in FINAL_CALL_STATUSES:
        return FINAL_CALL_STATUSES[key]
    if key == "queued":
        return CallStatus.QUEUED
    return CallStatus.IN_PROGRESS
