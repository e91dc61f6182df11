"""Pydantic v2 models for the negotiation workflow state and its records."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from negotiator.domain.types import (
    AgentName,
    CallDecision,
    CallStatus,
    EventType,
    PricePerception,
    Professionalism,
    Sentiment,
    VerificationStatus,
    WorkflowStage,
)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=UTC)


def new_id() -> str:
    """Return a fresh opaque identifier."""
    return uuid.uuid4().hex


# -- Directory data -----------------------------------------------------------


class GeoPoint(BaseModel):
    """A latitude/longitude pair returned by geocoding."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class Business(BaseModel):
    """A candidate vendor returned by the business directory."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    phone: str = ""
    address: str = ""
    rating: float = 0.0
    review_count: int = 0
    distance_km: float = 0.0
    place_id: str = ""
    types: list[str] = Field(default_factory=list)


class Review(BaseModel):
    """A single customer review of a business."""

    model_config = ConfigDict(frozen=True)

    author: str = ""
    rating: float = 0.0
    text: str = ""


class PlaceReviews(BaseModel):
    """Review details for one business as reported by the directory."""

    model_config = ConfigDict(frozen=True)

    rating: float = 0.0
    review_count: int = 0
    reviews: list[Review] = Field(default_factory=list)


class RouteEstimate(BaseModel):
    """Driving distance and duration between two addresses."""

    model_config = ConfigDict(frozen=True)

    distance_km: float
    duration_min: float


# -- User requirements --------------------------------------------------------


REQUIRED_FIELDS: tuple[str, ...] = ("service", "from", "to", "date")


class Requirements(BaseModel):
    """What the user wants to book.

    ``from``/``to`` are accepted under their short names on input and stored as
    ``from_location``/``to_location``.  ``clarifications`` carries answers a
    human gave to vendor questions so that re-attempted calls can use them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service: str = ""
    from_location: str = Field(default="", alias="from")
    to_location: str = Field(default="", alias="to")
    date: str = ""
    time: str = ""
    budget: float | None = None
    passengers: int | None = None
    vehicle_type: str | None = None
    trip_type: str = "one-way"
    waiting_time: int | None = None
    toll_preference: str | None = None
    special_instructions: str | None = None
    additional_details: str | None = None
    preferred_vendors: list[str] = Field(default_factory=list)
    clarifications: dict[str, str] = Field(default_factory=dict)

    @field_validator("service", "from_location", "to_location", "date", "time", mode="before")
    @classmethod
    def strip_text(cls, v: object) -> object:
        """Trim surrounding whitespace from free-text fields."""
        if isinstance(v, str):
            return v.strip()
        if v is None:
            return ""
        return v

    @property
    def missing_fields(self) -> list[str]:
        """Return the required field names that are still empty."""
        values = {
            "service": self.service,
            "from": self.from_location,
            "to": self.to_location,
            "date": self.date,
        }
        return [name for name in REQUIRED_FIELDS if not values[name]]

    @property
    def is_complete(self) -> bool:
        """Return True when every required field is present."""
        return not self.missing_fields


# -- Events and errors --------------------------------------------------------


class AgentEvent(BaseModel):
    """Immutable, append-only record of something an agent did."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=utc_now)
    type: EventType
    agent: AgentName
    message: str
    data: dict[str, Any] | None = None


class StageError(BaseModel):
    """An error recorded against the workflow state."""

    model_config = ConfigDict(frozen=True)

    agent: AgentName
    error: str
    timestamp: datetime = Field(default_factory=utc_now)
    recoverable: bool = True


# -- Research -----------------------------------------------------------------


class PriceBand(BaseModel):
    """Baseline low/mid/high market price for the requested service."""

    model_config = ConfigDict(frozen=True)

    low: int
    mid: int
    high: int


class PriceIntel(BaseModel):
    """Price-intelligence summary shared by every candidate."""

    model_config = ConfigDict(frozen=True)

    estimated_distance_km: float
    estimated_duration_min: float
    baseline: PriceBand
    factors: list[str] = Field(default_factory=list)
    data_source: str = ""
    confidence: str = "medium"


class ReviewAnalysis(BaseModel):
    """Qualitative signals extracted from one business's reviews."""

    model_config = ConfigDict(frozen=True)

    business_id: str
    business_name: str
    rating: float = 0.0
    review_count: int = 0
    sentiment: Sentiment = Sentiment.NEUTRAL
    price_perception: PricePerception = PricePerception.UNKNOWN
    professionalism: Professionalism = Professionalism.MEDIUM
    red_flags: list[str] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)
    negotiation_leverage: list[str] = Field(default_factory=list)
    sample_reviews: list[str] = Field(default_factory=list)


class PriceRange(BaseModel):
    """Negotiable price band for one vendor."""

    model_config = ConfigDict(frozen=True)

    low: int
    high: int


class RankedVendor(BaseModel):
    """A business with its composite score, rank and negotiation strategy."""

    model_config = ConfigDict(frozen=True)

    business: Business
    composite_score: int
    rank: int
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    negotiation_strategy: str = ""
    estimated_price_range: PriceRange
    preferred: bool = False


class VendorRanking(BaseModel):
    """Ordered ranking plus a description of the criteria weights."""

    model_config = ConfigDict(frozen=True)

    ranked_vendors: list[RankedVendor] = Field(default_factory=list)
    ranking_criteria: list[str] = Field(default_factory=list)


class ResearchResult(BaseModel):
    """Everything the research and ranking stages produced."""

    model_config = ConfigDict(frozen=True)

    price_intel: PriceIntel | None = None
    review_analysis: list[ReviewAnalysis] = Field(default_factory=list)
    vendor_ranking: VendorRanking | None = None
    completed_at: datetime | None = None


# -- Contact loop -------------------------------------------------------------


class PlacedCall(BaseModel):
    """Acknowledgement returned when an outbound call is placed."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    status: str


class CallStatusReport(BaseModel):
    """A telephony status poll result."""

    model_config = ConfigDict(frozen=True)

    status: str
    transcript: str | None = None
    summary: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    ended_reason: str | None = None
    recording_url: str | None = None

    @property
    def duration_seconds(self) -> int | None:
        """Call length in whole seconds when both timestamps are known."""
        if self.started_at is None or self.ended_at is None:
            return None
        return round((self.ended_at - self.started_at).total_seconds())


class QuoteExtraction(BaseModel):
    """Price information extracted from a call transcript."""

    model_config = ConfigDict(frozen=True)

    price: float | None = None
    notes: str = ""


class InterruptExchange(BaseModel):
    """A vendor question answered by a human during a call."""

    model_config = ConfigDict(frozen=True)

    question: str
    response: str
    timestamp: datetime = Field(default_factory=utc_now)
    from_cache: bool = False


class VendorCall(BaseModel):
    """Outcome of one contact attempt with one vendor."""

    call_id: str
    business_id: str
    business_name: str
    status: CallStatus = CallStatus.IN_PROGRESS
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    transcript: str | None = None
    quoted_price: float | None = None
    negotiated_price: float | None = None
    suspicious_price: bool = False
    notes: str = ""
    human_interrupts: list[InterruptExchange] = Field(default_factory=list)


class NegotiationProgress(BaseModel):
    """Where the contact loop stands."""

    current_vendor_index: int = 0
    lowest_price_so_far: float | None = None
    best_vendor_so_far: str | None = None
    calls: list[VendorCall] = Field(default_factory=list)
    total_calls_made: int = 0


class HumanInterruptState(BaseModel):
    """A vendor question that needs a human answer."""

    active: bool = False
    interrupt_id: str | None = None
    reason: str | None = None
    vendor_question: str | None = None
    context: str | None = None
    requested_at: datetime | None = None
    response: str | None = None
    responded_at: datetime | None = None

    @property
    def pending(self) -> bool:
        """True while the interrupt is active and still unanswered."""
        return self.active and self.response is None


class HITLCacheEntry(BaseModel):
    """A previously answered vendor question, reused for the same category."""

    question_pattern: str
    original_question: str
    response: str
    answered_at: datetime = Field(default_factory=utc_now)
    used_count: int = 0


class CallSummary(BaseModel):
    """What the user sees when deciding whether to keep calling."""

    model_config = ConfigDict(frozen=True)

    vendor_name: str
    vendor_phone: str
    quoted_price: float | None = None
    negotiated_price: float | None = None
    call_duration: int = 0
    outcome: str = "success"
    highlights: list[str] = Field(default_factory=list)


class CallDecisionState(BaseModel):
    """Pending continue/stop choice after a concluded call."""

    awaiting_decision: bool = False
    last_call_summary: CallSummary | None = None
    vendors_remaining: int = 0
    current_best_price: float | None = None
    current_best_vendor: str | None = None
    user_decision: CallDecision | None = None


# -- Learning, verification and the result ------------------------------------


class LearningState(BaseModel):
    """Insights collected once calling is over."""

    session_learnings: list[str] = Field(default_factory=list)


class VerificationResult(BaseModel):
    """Outcome of re-confirming the best deal with its vendor."""

    model_config = ConfigDict(frozen=True)

    status: VerificationStatus
    verification_call_id: str | None = None
    confirmed_price: float | None = None
    notes: str = ""


class BestDeal(BaseModel):
    """The lowest trustworthy quote across all contacted vendors."""

    vendor: Business
    price: float
    details: str = ""
    verification_status: VerificationStatus = VerificationStatus.PENDING


class WorkflowState(BaseModel):
    """Full negotiation context for one session.

    Instances handed to readers are never mutated afterwards: the workflow
    works on deep copies and the session swaps the reference atomically.
    """

    session_id: str
    started_at: datetime = Field(default_factory=utc_now)
    stage: WorkflowStage = WorkflowStage.INTAKE
    stage_history: list[tuple[WorkflowStage, str, WorkflowStage]] = Field(default_factory=list)
    current_agent: AgentName = AgentName.INTAKE
    previous_agents: list[AgentName] = Field(default_factory=list)
    requirements: Requirements | None = None
    businesses: list[Business] = Field(default_factory=list)
    research: ResearchResult | None = None
    negotiation: NegotiationProgress = Field(default_factory=NegotiationProgress)
    human_interrupt: HumanInterruptState = Field(default_factory=HumanInterruptState)
    hitl_cache: list[HITLCacheEntry] = Field(default_factory=list)
    call_decision: CallDecisionState = Field(default_factory=CallDecisionState)
    learning: LearningState = Field(default_factory=LearningState)
    verification: VerificationResult | None = None
    best_deal: BestDeal | None = None
    errors: list[StageError] = Field(default_factory=list)
    should_continue: bool = True
    skip_verification: bool = False

    @model_validator(mode="after")
    def never_awaits_two_inputs(self) -> WorkflowState:
        """Ensure the workflow is not waiting on a human answer and a decision at once."""
        self.check_pending_inputs()
        return self

    def check_pending_inputs(self) -> None:
        """Raise ``ValueError`` if a human answer and a call decision are both awaited.

        Assignments are not validated, so stages mutating a working copy are
        checked again with this before the copy is published.
        """
        if self.human_interrupt.pending and self.call_decision.awaiting_decision:
            raise ValueError("cannot await a human response and a call decision at the same time")

    @property
    def awaiting_input(self) -> bool:
        """True while the workflow is halted on a human answer or call decision."""
        return self.human_interrupt.pending or self.call_decision.awaiting_decision

    def hand_over(self, agent: AgentName) -> None:
        """Make *agent* current, pushing the previous one onto the trail."""
        if agent != self.current_agent:
            self.previous_agents.append(self.current_agent)
        self.current_agent = agent


# -- Persistence boundary -----------------------------------------------------


class CallRecord(BaseModel):
    """A persisted call-history record."""

    call_id: str
    session_id: str | None = None
    vendor_name: str
    vendor_phone: str = ""
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    status: str = CallStatus.COMPLETED.value
    ended_reason: str | None = None
    requirements: dict[str, Any] | None = None
    quoted_price: float | None = None
    negotiated_price: float | None = None
    transcript: str | None = None
    recording_url: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class CallRecordUpdate(BaseModel):
    """Partial update of a ``CallRecord``; unset fields are left untouched."""

    model_config = ConfigDict(extra="forbid")

    status: str | None = None
    ended_reason: str | None = None
    ended_at: datetime | None = None
    duration_seconds: int | None = None
    quoted_price: float | None = None
    negotiated_price: float | None = None
    transcript: str | None = None
    recording_url: str | None = None
    notes: str | None = None
