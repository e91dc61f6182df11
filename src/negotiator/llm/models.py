"""Pydantic models defining structured outputs expected from the reasoning service.

Each model is lenient: missing keys fall back to neutral defaults so that a
partially useful reply still yields a result.
"""

from pydantic import BaseModel, Field

from negotiator.domain.types import PricePerception, Professionalism, Sentiment


class StrategyOutput(BaseModel):
    """Negotiation strategy for one ranked vendor."""

    strategy: str = ""
    estimated_low: float | None = None
    estimated_high: float | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)


class ReviewAnalysisOutput(BaseModel):
    """Qualitative review signals for one business."""

    sentiment: Sentiment = Sentiment.NEUTRAL
    price_perception: PricePerception = PricePerception.UNKNOWN
    professionalism: Professionalism = Professionalism.MEDIUM
    red_flags: list[str] = Field(default_factory=list)
    positives: list[str] = Field(default_factory=list)
    negotiation_leverage: list[str] = Field(default_factory=list)
    sample_reviews: list[str] = Field(default_factory=list)


class QuoteOutput(BaseModel):
    """Price information read from a call transcript."""

    price: float | None = None
    base_price: float | None = None
    has_extra_charges: bool = False
    extra_charge_types: list[str] = Field(default_factory=list)
    availability: str | None = None
    notes: str = ""


class VerificationOutput(BaseModel):
    """Whether a confirmation call matched the negotiated deal."""

    verified: bool = False
    confirmed_price: float | None = None
    discrepancies: list[str] = Field(default_factory=list)
    notes: str = ""


class LearningOutput(BaseModel):
    """Lessons drawn from a session's calls."""

    lessons: list[str] = Field(default_factory=list)
