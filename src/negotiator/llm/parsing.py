"""Helpers for turning free-text reasoning replies into validated models."""

from __future__ import annotations

import json
import re
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

logger = structlog.get_logger()

M = TypeVar("M", bound=BaseModel)

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def extract_json_object(text: str) -> dict[str, object] | None:
    """Return the outermost JSON object embedded in *text*, if any.

    Models often wrap JSON in prose or code fences; everything between the
    first ``{`` and the last ``}`` is parsed.
    """
    match = _JSON_OBJECT.search(text)
    if match is None:
        return None
    try:
        value = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


def parse_reply(text: str, model: type[M]) -> M | None:
    """Validate the JSON object in *text* against *model*.

    Args:
        text: Raw reasoning-service reply.
        model: Pydantic model describing the expected shape.

    Returns:
        The validated model, or ``None`` when the reply holds no usable JSON.
    """
    payload = extract_json_object(text)
    if payload is None:
        logger.warning("reasoning_reply_not_json", model=model.__name__)
        return None
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        logger.warning("reasoning_reply_invalid", model=model.__name__, errors=exc.errors())
        return None
