"""Reasoning-service client, prompts and reply parsing."""

from negotiator.llm.client import (
    REASONING_MODEL,
    AnthropicReasoningService,
    ReasoningService,
    get_anthropic_client,
)
from negotiator.llm.parsing import extract_json_object, parse_reply

__all__ = [
    "REASONING_MODEL",
    "AnthropicReasoningService",
    "ReasoningService",
    "extract_json_object",
    "get_anthropic_client",
    "parse_reply",
]
