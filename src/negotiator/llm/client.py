"""Anthropic-backed reasoning service.

``ReasoningService`` is the contract every caller depends on: a single
``invoke`` that turns a prompt into text.  Callers own their fallbacks, so
provider failures surface as ``CollaboratorError`` and never as SDK errors.
"""

from __future__ import annotations

from typing import Protocol

import anthropic
import structlog
from anthropic import AsyncAnthropic

from negotiator.domain.errors import CollaboratorError
from negotiator.llm.prompts import REASONING_SYSTEM_PROMPT

logger = structlog.get_logger()

# Sonnet for analysis and strategy text
REASONING_MODEL = "claude-sonnet-4-5"
DEFAULT_MAX_TOKENS = 1024


class ReasoningService(Protocol):
    """Natural-language generation used for strategy, extraction and analysis."""

    async def invoke(self, prompt: str, *, max_tokens: int = DEFAULT_MAX_TOKENS) -> str: ...


def get_anthropic_client(api_key: str | None = None) -> AsyncAnthropic:
    """Create an async Anthropic client.

    Without *api_key* the client reads ``ANTHROPIC_API_KEY`` from the
    environment.

    Returns:
        Configured ``AsyncAnthropic`` instance.
    """
    if api_key:
        return AsyncAnthropic(api_key=api_key)
    return AsyncAnthropic()


class AnthropicReasoningService:
    """``ReasoningService`` on top of the Anthropic Messages API.

    Args:
        client: An ``AsyncAnthropic`` instance (or compatible mock).
        model: Model id to use.
    """

    def __init__(self, client: AsyncAnthropic, model: str = REASONING_MODEL) -> None:
        self._client = client
        self._model = model

    async def invoke(self, prompt: str, *, max_tokens: int = DEFAULT_MAX_TOKENS) -> str:
        """Send *prompt* as a single user turn and return the text reply.

        Raises:
            CollaboratorError: If the API call fails.
        """
        try:
            response = await self._client.messages.create(
                model=self._model,
                max_tokens=max_tokens,
                system=REASONING_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            logger.warning("reasoning_call_failed", model=self._model, error=str(exc))
            raise CollaboratorError("anthropic", str(exc)) from exc

        return "".join(block.text for block in response.content if block.type == "text")
