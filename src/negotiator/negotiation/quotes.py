"""Quote extraction from call transcripts and price plausibility checks."""

from __future__ import annotations

import structlog

from negotiator.domain.models import Business, PriceBand, QuoteExtraction
from negotiator.llm.client import ReasoningService
from negotiator.llm.models import QuoteOutput
from negotiator.llm.parsing import parse_reply
from negotiator.llm.prompts import QUOTE_EXTRACTION_PROMPT

logger = structlog.get_logger()

# Quotes outside [low * MIN, high * MAX] of the baseline are not trusted
PLAUSIBLE_MIN_FACTOR = 0.3
PLAUSIBLE_MAX_FACTOR = 2.0


def is_plausible_price(price: float, baseline: PriceBand | None) -> bool:
    """Return True when *price* sits inside the plausible band around *baseline*.

    Without a baseline every positive price is accepted.
    """
    if price <= 0:
        return False
    if baseline is None:
        return True
    return baseline.low * PLAUSIBLE_MIN_FACTOR <= price <= baseline.high * PLAUSIBLE_MAX_FACTOR


async def extract_quote(
    business: Business,
    transcript: str,
    reasoning: ReasoningService,
) -> QuoteExtraction:
    """Read the all-inclusive quoted price out of *transcript*.

    Reasoning failures and unusable replies yield a quote with no price.
    """
    if not transcript.strip():
        return QuoteExtraction()
    try:
        reply = await reasoning.invoke(
            QUOTE_EXTRACTION_PROMPT.format(vendor_name=business.name, transcript=transcript)
        )
    except Exception:
        logger.warning("quote_extraction_failed", vendor=business.name, exc_info=True)
        return QuoteExtraction(notes="Price extraction failed")

    parsed = parse_reply(reply, QuoteOutput)
    if parsed is None:
        return QuoteExtraction(notes="Price extraction returned no usable data")

    notes = parsed.notes
    if parsed.has_extra_charges and parsed.extra_charge_types:
        extras = ", ".join(parsed.extra_charge_types)
        notes = f"{notes} (extras: {extras})".strip()
    price = parsed.price if parsed.price is not None else parsed.base_price
    return QuoteExtraction(price=price, notes=notes)
