"""Detection of vendor questions that need a human, and the answer cache.

A vendor question is sorted into a category (address, contact, ...) so that
one human answer can be reused for the same kind of question on later calls
within the session.
"""

from __future__ import annotations

import re

from pydantic import BaseModel

from negotiator.domain.models import HITLCacheEntry, utc_now

DETAIL_REASON = "Vendor asked for specific details that require user input"
PREFERENCE_REASON = "Vendor asked a preference question"

_I = re.IGNORECASE

QUESTION_CATEGORIES: dict[str, list[re.Pattern[str]]] = {
    "address": [
        re.compile(p, _I)
        for p in (
            r"address",
            r"location",
            r"pickup.*point",
            r"exact.*place",
            r"where.*exactly",
            r"building",
            r"floor",
            r"gate",
            r"entrance",
            r"landmark",
        )
    ],
    "contact": [
        re.compile(p, _I)
        for p in (r"contact.*(number|details)", r"phone", r"mobile", r"call.*back")
    ],
    "name": [
        re.compile(p, _I)
        for p in (r"what.*your.*name", r"who.*am.*i.*speaking", r"customer.*name")
    ],
    "preferences": [
        re.compile(p, _I)
        for p in (
            r"child.*seat",
            r"luggage",
            r"ac",
            r"music",
            r"special.*(requirement|request)",
            r"prefer",
        )
    ],
    "payment": [
        re.compile(p, _I)
        for p in (r"pay", r"advance", r"upfront", r"cash", r"online", r"payment.*(method|mode)")
    ],
    "timing": [
        re.compile(p, _I)
        for p in (r"exact.*time", r"how.*long.*(wait|waiting)", r"can.*(wait|hold)")
    ],
    "confirmation": [
        re.compile(p, _I)
        for p in (
            r"confirm.*(booking|reservation)",
            r"want.*to.*book.*now",
            r"shall.*i.*confirm",
        )
    ],
}

UNANSWERABLE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, _I)
    for p in (
        r"what.*(address|location|pickup.*point|exact.*place)",
        r"where.*exactly",
        r"which.*(building|floor|gate|entrance)",
        r"landmark",
        r"what.*your.*name",
        r"who.*am.*i.*speaking",
        r"contact.*(number|details)",
        r"(do you|will you).*(need|want|require).*(child.*seat|luggage|ac|music)",
        r"any.*special.*(requirement|request)",
        r"(can you|will you).*(pay|advance|upfront|cash|online)",
        r"payment.*(method|mode)",
        r"exact.*time",
        r"how.*long.*(wait|waiting)",
        r"can.*(wait|hold)",
        r"confirm.*(booking|reservation)",
        r"want.*to.*book.*now",
        r"shall.*i.*confirm",
    )
]

# Questions the voice agent answers on its own
HANDLEABLE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, _I)
    for p in (
        r"what.*price",
        r"how.*much",
        r"rate",
        r"discount",
        r"available",
        r"when.*pick",
        r"what.*car",
        r"vehicle.*type",
    )
]

_PREFERENCE_WORDS = ("you", "your", "want", "need", "prefer")
_DIGITS = re.compile(r"[0-9]+")
_FILLER_WORDS = re.compile(
    r"\b(please|kindly|can|could|would|will|do|does|is|are|the|a|an|your|my|our|their)\b"
)
_WHITESPACE = re.compile(r"\s+")
_SPEAKER_PREFIX = re.compile(r"^\s*(vendor|user|customer|human)\s*:\s*", _I)
_AGENT_PREFIX = re.compile(r"^\s*(ai|assistant|bot|agent)\s*:", _I)


class QuestionCheck(BaseModel, frozen=True):
    """Whether a vendor utterance needs a human answer, and why."""

    needs_human_input: bool
    question: str | None = None
    reason: str | None = None


def detect_unanswerable_question(vendor_message: str) -> QuestionCheck:
    """Decide whether *vendor_message* asks something only the user can answer.

    Price, availability and vehicle questions are handled by the agent.
    Known detail patterns (address, name, payment, ...) need the user, as do
    other questions addressed to the customer ("you", "need", "prefer").

    Args:
        vendor_message: One thing the vendor said.

    Returns:
        A ``QuestionCheck``.
    """
    if any(p.search(vendor_message) for p in HANDLEABLE_PATTERNS):
        return QuestionCheck(needs_human_input=False)

    if any(p.search(vendor_message) for p in UNANSWERABLE_PATTERNS):
        return QuestionCheck(needs_human_input=True, question=vendor_message, reason=DETAIL_REASON)

    if "?" in vendor_message:
        lowered = vendor_message.lower()
        if any(word in lowered for word in _PREFERENCE_WORDS):
            return QuestionCheck(
                needs_human_input=True, question=vendor_message, reason=PREFERENCE_REASON
            )

    return QuestionCheck(needs_human_input=False)


def vendor_lines(transcript: str) -> list[str]:
    """Return the lines of *transcript* spoken by the vendor.

    Agent lines (``AI:``, ``assistant:``) are dropped and speaker prefixes
    stripped; unlabelled lines are kept.
    """
    lines: list[str] = []
    for raw in transcript.splitlines():
        if not raw.strip() or _AGENT_PREFIX.match(raw):
            continue
        lines.append(_SPEAKER_PREFIX.sub("", raw).strip())
    return lines


def find_unanswered_question(transcript: str, answered_patterns: set[str]) -> QuestionCheck:
    """Find the first vendor question in *transcript* that still needs the user.

    Questions whose category is already in *answered_patterns* (the categories
    this vendor asked before) are skipped so a re-attempted call never
    interrupts twice for the same thing.
    """
    for line in vendor_lines(transcript):
        check = detect_unanswerable_question(line)
        if check.needs_human_input and normalize_question(line) not in answered_patterns:
            return check
    return QuestionCheck(needs_human_input=False)


def normalize_question(question: str) -> str:
    """Reduce a question to its cache key.

    Known categories map to the category name; anything else becomes
    ``generic:`` plus the question with digits and filler words removed,
    truncated to 50 characters.
    """
    lowered = question.lower()
    for category, patterns in QUESTION_CATEGORIES.items():
        if any(p.search(lowered) for p in patterns):
            return category

    simplified = _DIGITS.sub("", lowered)
    simplified = _FILLER_WORDS.sub("", simplified)
    simplified = _WHITESPACE.sub(" ", simplified).strip()
    return f"generic:{simplified[:50]}"


def find_cached_response(question: str, cache: list[HITLCacheEntry]) -> HITLCacheEntry | None:
    """Return the cache entry answering the same kind of question, if any."""
    pattern = normalize_question(question)
    return next((entry for entry in cache if entry.question_pattern == pattern), None)


def create_cache_entry(question: str, response: str) -> HITLCacheEntry:
    """Build a cache entry from a fresh human answer."""
    return HITLCacheEntry(
        question_pattern=normalize_question(question),
        original_question=question,
        response=response,
        answered_at=utc_now(),
        used_count=1,
    )


def remember_response(
    cache: list[HITLCacheEntry], question: str, response: str
) -> list[HITLCacheEntry]:
    """Return *cache* with *response* stored for *question*'s category.

    An existing entry for the same category is replaced.
    """
    entry = create_cache_entry(question, response)
    kept = [e for e in cache if e.question_pattern != entry.question_pattern]
    return [*kept, entry]
