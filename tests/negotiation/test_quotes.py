"""Tests for quote extraction and the plausibility band."""

from __future__ import annotations

import json
from typing import Any

import pytest

from negotiator.domain.models import Business, PriceBand, QuoteExtraction
from negotiator.negotiation.quotes import extract_quote, is_plausible_price

BASELINE = PriceBand(low=250, mid=300, high=400)


class TestIsPlausiblePrice:
    @pytest.mark.parametrize(
        ("price", "expected"),
        [
            (75, True),
            (74.9, False),
            (600, True),
            (800, True),
            (800.5, False),
            (0, False),
            (-10, False),
        ],
    )
    def test_band_edges(self, price: float, expected: bool) -> None:
        assert is_plausible_price(price, BASELINE) is expected

    def test_any_positive_price_without_baseline(self) -> None:
        assert is_plausible_price(12, None) is True
        assert is_plausible_price(0, None) is False


class TestExtractQuote:
    @pytest.mark.anyio()
    async def test_empty_transcript_skips_reasoning(self, alpha: Business, reasoning: Any) -> None:
        quote = await extract_quote(alpha, "   ", reasoning)
        assert quote == QuoteExtraction()
        assert reasoning.prompts == []

    @pytest.mark.anyio()
    async def test_price_from_transcript(self, alpha: Business, reasoning: Any) -> None:
        quote = await extract_quote(alpha, "Vendor: 600 rupees all inclusive.", reasoning)
        assert quote.price == 600
        assert "Alpha Cabs" in reasoning.prompts[0]

    @pytest.mark.anyio()
    async def test_base_price_and_extras(self, alpha: Business, reasoning: Any) -> None:
        reasoning.replies = {
            "Extract the quoted price": json.dumps(
                {
                    "price": None,
                    "base_price": 500,
                    "has_extra_charges": True,
                    "extra_charge_types": ["toll", "parking"],
                    "notes": "AC sedan",
                }
            )
        }

        quote = await extract_quote(alpha, "Vendor: 500 plus toll and parking.", reasoning)

        assert quote.price == 500
        assert quote.notes == "AC sedan (extras: toll, parking)"

    @pytest.mark.anyio()
    async def test_reasoning_failure(self, alpha: Business, reasoning: Any) -> None:
        reasoning.fail = True
        quote = await extract_quote(alpha, "Vendor: 600 rupees.", reasoning)
        assert quote.price is None
        assert quote.notes == "Price extraction failed"

    @pytest.mark.anyio()
    async def test_unusable_reply(self, alpha: Business, reasoning: Any) -> None:
        reasoning.replies = {"Extract the quoted price": "I am not sure."}
        quote = await extract_quote(alpha, "Vendor: 600 rupees.", reasoning)
        assert quote.price is None
        assert "no usable data" in quote.notes
