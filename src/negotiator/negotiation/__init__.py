"""Contact loop, vendor question handling and quote extraction."""

from negotiator.negotiation.agent import (
    apply_call_decision,
    contact_next_vendor,
    place_and_wait,
    resume_after_interrupt,
)
from negotiator.negotiation.human_interrupt import (
    detect_unanswerable_question,
    find_cached_response,
    normalize_question,
    remember_response,
)
from negotiator.negotiation.quotes import extract_quote, is_plausible_price

__all__ = [
    "apply_call_decision",
    "contact_next_vendor",
    "detect_unanswerable_question",
    "extract_quote",
    "find_cached_response",
    "is_plausible_price",
    "normalize_question",
    "place_and_wait",
    "remember_response",
    "resume_after_interrupt",
]
