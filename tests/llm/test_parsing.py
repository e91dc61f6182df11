"""Tests for extracting validated models from free-text replies."""

import pytest

from negotiator.llm.models import QuoteOutput, ReviewAnalysisOutput
from negotiator.llm.parsing import extract_json_object, parse_reply


class TestExtractJsonObject:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ('{"price": 600}', {"price": 600}),
            ('Sure! Here it is:\n```json\n{"price": 600}\n```', {"price": 600}),
            ('{"outer": {"inner": 1}} trailing', {"outer": {"inner": 1}}),
        ],
    )
    def test_finds_object(self, text: str, expected: dict) -> None:
        assert extract_json_object(text) == expected

    @pytest.mark.parametrize("text", ["", "no json here", "{not: valid}", "[1, 2]"])
    def test_nothing_usable(self, text: str) -> None:
        assert extract_json_object(text) is None


class TestParseReply:
    def test_valid_reply(self) -> None:
        parsed = parse_reply('{"price": 600, "notes": "AC sedan"}', QuoteOutput)
        assert parsed == QuoteOutput(price=600, notes="AC sedan")

    def test_missing_keys_use_defaults(self) -> None:
        parsed = parse_reply("{}", ReviewAnalysisOutput)
        assert parsed is not None
        assert parsed.red_flags == []

    def test_wrong_types_are_rejected(self) -> None:
        assert parse_reply('{"price": "a lot"}', QuoteOutput) is None

    def test_prose_is_rejected(self) -> None:
        assert parse_reply("The vendor quoted six hundred.", QuoteOutput) is None
