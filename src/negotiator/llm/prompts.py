"""Prompt templates for reasoning-service calls and the voice agent brief.

Templates use Python string placeholders ({variable_name}).  Every prompt
that expects structured output asks for a single JSON object; parsing and
validation live in ``negotiator.llm.parsing``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from negotiator.domain.models import Business, Requirements

# Said by the voice agent while a vendor question waits on the customer
HOLD_PHRASE = "One moment please, let me check on that."

REASONING_SYSTEM_PROMPT = """You are the analyst behind a price-negotiation agent that calls \
local service vendors on a customer's behalf. Be concise and factual. When asked for JSON, reply \
with a single JSON object and nothing else."""

STRATEGY_PROMPT = """Based on this vendor analysis, generate a negotiation strategy.

Vendor: {vendor_name}
Ranking: #{rank} out of {total} candidates
Rating: {rating} stars ({review_count} reviews)
Distance: {distance_km} km
Professionalism: {professionalism}
Price perception: {price_perception}
Negotiation leverage: {leverage}
Red flags: {red_flags}
Positives: {positives}

Baseline price range: {baseline_low} - {baseline_high}

Respond in JSON:
{{
  "strategy": "2-3 sentence strategy",
  "estimated_low": number,
  "estimated_high": number,
  "strengths": ["..."],
  "weaknesses": ["..."]
}}"""

REVIEW_ANALYSIS_PROMPT = """Analyze these reviews for "{business_name}" \
(overall {rating} stars, {review_count} reviews) to help with price negotiation:

{reviews}

Respond in JSON:
{{
  "sentiment": "positive" | "neutral" | "negative",
  "price_perception": "cheap" | "fair" | "expensive" | "unknown",
  "professionalism": "high" | "medium" | "low",
  "red_flags": ["safety, reliability or behaviour issues"],
  "positives": ["..."],
  "negotiation_leverage": ["e.g. reviews mention flexible pricing"],
  "sample_reviews": ["2-3 short excerpts"]
}}"""

QUOTE_EXTRACTION_PROMPT = """Extract the quoted price from this call transcript with \
{vendor_name}. The transcript may mix languages.

If the vendor gave a base price plus extras (toll, parking, night or waiting charges), return the \
all-inclusive total. If they gave an all-inclusive price, return that.

Transcript:
{transcript}

Respond in JSON:
{{
  "price": number or null,
  "base_price": number or null,
  "has_extra_charges": true | false,
  "extra_charge_types": ["toll", "parking"],
  "availability": "confirmed" | "not available" | "unclear",
  "notes": "other important information"
}}"""

VERIFICATION_ANALYSIS_PROMPT = """Analyze this verification call transcript.

Expected details:
- Price: {expected_price}
- Service: {service}
- From: {from_location}
- To: {to_location}
- Date: {date}
- Time: {time}

Transcript:
{transcript}

Respond in JSON:
{{
  "verified": true | false,
  "confirmed_price": number or null,
  "discrepancies": ["field: negotiated vs confirmed"],
  "notes": "short summary"
}}"""

LEARNING_PROMPT = """These vendor calls were made for a {service} booking:

{call_lines}

List up to five short, concrete lessons for negotiating better next time.

Respond in JSON:
{{
  "lessons": ["..."]
}}"""


def call_brief(
    business: Business,
    requirements: Requirements,
    benchmark: float | None,
    purpose: str = "negotiation",
) -> str:
    """Build the system brief handed to the voice agent for one call.

    Args:
        business: The vendor being called.
        requirements: What the customer needs.
        benchmark: Lowest trustworthy quote so far, if any.
        purpose: ``"negotiation"`` or ``"verification"``.

    Returns:
        Plain-text instructions for the voice agent.
    """
    lines = [
        f"You are calling {business.name} on behalf of a customer.",
        f"Service: {requirements.service}",
        f"From: {requirements.from_location or 'pickup location'}",
        f"To: {requirements.to_location or 'destination'}",
        f"Date: {requirements.date or 'today'}",
        f"Time: {requirements.time or 'as soon as possible'}",
        f"Trip type: {requirements.trip_type}",
    ]
    if requirements.passengers:
        lines.append(f"Passengers: {requirements.passengers}")
    if requirements.vehicle_type:
        lines.append(f"Vehicle: {requirements.vehicle_type}")
    if requirements.special_instructions:
        lines.append(f"Special instructions: {requirements.special_instructions}")
    for question, answer in requirements.clarifications.items():
        lines.append(f"If asked '{question}', answer: {answer}")

    if purpose == "verification":
        lines.append(
            f"This is a confirmation call. Confirm the agreed price of {benchmark} and the "
            "booking details; note any difference the vendor mentions."
        )
    else:
        lines.append("Ask for their best all-inclusive price, then negotiate it down politely.")
        if benchmark is not None:
            lines.append(f"Another vendor has quoted {benchmark}; ask them to beat it.")
        lines.append(f"If they ask something you cannot answer, say: '{HOLD_PHRASE}'")
    return "\n".join(lines)
