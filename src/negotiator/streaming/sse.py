"""Server-Sent Events wire formatting."""

from __future__ import annotations

import json
from typing import Any

KEEPALIVE_COMMENT = ": keepalive\n\n"


def format_sse(payload: dict[str, Any]) -> str:
    """Convert *payload* into one unnamed Server-Sent Events frame.

    Clients tell frames apart by the payload's ``type`` field.
    """
    message = json.dumps(payload, ensure_ascii=False, default=str)
    return f"data: {message}\n\n"
