"""Domain types, models, and errors for the vendor negotiation agent."""

from negotiator.domain.errors import (
    CallRecordNotFoundError,
    CallTrackingError,
    CollaboratorError,
    InvalidActionError,
    InvalidTransitionError,
    NegotiatorError,
    SessionNotFoundError,
)
from negotiator.domain.models import (
    AgentEvent,
    BestDeal,
    Business,
    CallRecord,
    CallRecordUpdate,
    GeoPoint,
    PriceBand,
    PriceIntel,
    RankedVendor,
    Requirements,
    ReviewAnalysis,
    StageError,
    WorkflowState,
)
from negotiator.domain.types import (
    AgentName,
    CallDecision,
    CallStatus,
    EventType,
    PricePerception,
    Professionalism,
    Sentiment,
    SessionStatus,
    VerificationStatus,
    WorkflowStage,
)

__all__ = [
    "AgentEvent",
    "AgentName",
    "BestDeal",
    "Business",
    "CallDecision",
    "CallRecord",
    "CallRecordNotFoundError",
    "CallRecordUpdate",
    "CallStatus",
    "CallTrackingError",
    "CollaboratorError",
    "EventType",
    "GeoPoint",
    "InvalidActionError",
    "InvalidTransitionError",
    "NegotiatorError",
    "PriceBand",
    "PriceIntel",
    "PricePerception",
    "Professionalism",
    "RankedVendor",
    "Requirements",
    "ReviewAnalysis",
    "Sentiment",
    "SessionNotFoundError",
    "SessionStatus",
    "StageError",
    "VerificationStatus",
    "WorkflowStage",
    "WorkflowState",
]
