"""Tests for vendor-question detection and the per-session answer cache."""

import pytest

from negotiator.negotiation.human_interrupt import (
    DETAIL_REASON,
    PREFERENCE_REASON,
    create_cache_entry,
    detect_unanswerable_question,
    find_cached_response,
    find_unanswered_question,
    normalize_question,
    remember_response,
    vendor_lines,
)


class TestDetectUnanswerableQuestion:
    @pytest.mark.parametrize(
        "message",
        [
            "What is the exact pickup address?",
            "Which gate should I come to?",
            "Shall I confirm the booking?",
            "Will you pay in cash?",
            "What is your name, sir?",
        ],
    )
    def test_detail_questions_need_the_user(self, message: str) -> None:
        check = detect_unanswerable_question(message)
        assert check.needs_human_input is True
        assert check.question == message
        assert check.reason == DETAIL_REASON

    @pytest.mark.parametrize(
        "message",
        [
            "How much are you expecting to pay?",
            "What price did the other vendor give?",
            "Is a sedan available?",
            "What car do you want?",
        ],
    )
    def test_agent_handles_price_and_vehicle_questions(self, message: str) -> None:
        assert detect_unanswerable_question(message).needs_human_input is False

    def test_preference_question(self) -> None:
        check = detect_unanswerable_question("Do you prefer a sedan or an SUV?")
        assert check.needs_human_input is True
        assert check.reason == PREFERENCE_REASON

    def test_statements_are_ignored(self) -> None:
        assert detect_unanswerable_question("Okay, see you tomorrow.").needs_human_input is False


class TestTranscriptScanning:
    def test_vendor_lines_drop_agent_turns(self) -> None:
        transcript = (
            "AI: Hello, I am calling about a cab.\n"
            "Vendor: Hi there\n"
            "\n"
            "assistant: Great.\n"
            "Customer: fine\n"
            "plain line"
        )
        assert vendor_lines(transcript) == ["Hi there", "fine", "plain line"]

    def test_first_unanswered_question(self) -> None:
        transcript = "AI: Hello\nVendor: Sure. What is the exact pickup address?"
        check = find_unanswered_question(transcript, set())
        assert check.question == "Sure. What is the exact pickup address?"

    def test_answered_categories_are_skipped(self) -> None:
        transcript = (
            "Vendor: What is the exact pickup address?\nVendor: Will you pay in cash?"
        )
        check = find_unanswered_question(transcript, {"address"})
        assert check.question == "Will you pay in cash?"

        assert not find_unanswered_question(transcript, {"address", "payment"}).needs_human_input


class TestNormalizeQuestion:
    @pytest.mark.parametrize(
        ("question", "category"),
        [
            ("What is the exact pickup address?", "address"),
            ("Which gate should I come to?", "address"),
            ("Can you give me a contact number?", "contact"),
            ("Will you pay in cash?", "payment"),
            ("Shall I confirm the reservation?", "confirmation"),
        ],
    )
    def test_categories(self, question: str, category: str) -> None:
        assert normalize_question(question) == category

    def test_generic_questions_ignore_digits_and_filler(self) -> None:
        assert normalize_question("Is it 2 bags?") == "generic:it bags?"
        assert normalize_question("is it 3 bags?") == normalize_question("Is it 2 bags?")

    def test_generic_key_is_truncated(self) -> None:
        key = normalize_question("Tell me " + "something very long " * 10 + "?")
        assert key.startswith("generic:")
        assert len(key) == len("generic:") + 50


class TestAnswerCache:
    def test_create_entry(self) -> None:
        entry = create_cache_entry("Where exactly should I pick you up?", "Gate 2")
        assert entry.question_pattern == "address"
        assert entry.response == "Gate 2"
        assert entry.used_count == 1

    def test_lookup_by_category(self) -> None:
        cache = [create_cache_entry("Where exactly should I pick you up?", "Gate 2")]
        hit = find_cached_response("Which gate should I come to?", cache)
        assert hit is not None
        assert hit.response == "Gate 2"
        assert find_cached_response("Will you pay in cash?", cache) is None

    def test_remember_replaces_same_category(self) -> None:
        cache = [create_cache_entry("Where exactly should I pick you up?", "Gate 2")]

        cache = remember_response(cache, "What is the exact pickup address?", "Gate 5")
        assert [e.response for e in cache] == ["Gate 5"]

        cache = remember_response(cache, "Will you pay in cash?", "UPI only")
        assert [e.question_pattern for e in cache] == ["address", "payment"]
