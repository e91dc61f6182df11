"""Outbound telephony collaborator: place vendor calls and poll their status.

``OutboundCaller`` is the contract the workflow consumes.  ``VapiCaller``
implements it against the Vapi REST API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Protocol

import httpx
import structlog

from negotiator.domain.errors import CollaboratorError
from negotiator.domain.models import Business, CallStatusReport, PlacedCall, Requirements
from negotiator.llm.prompts import call_brief
from negotiator.resilience.retry import resilient_api_call

logger = structlog.get_logger()

VAPI_BASE_URL = "https://api.vapi.ai"
DEFAULT_COUNTRY_CODE = "91"
# Vapi rejects customer names longer than this
MAX_CUSTOMER_NAME = 40

CallPurpose = Literal["negotiation", "verification"]


class OutboundCaller(Protocol):
    """Telephony operations the workflow depends on."""

    async def place_call(
        self,
        business: Business,
        requirements: Requirements,
        benchmark: float | None = None,
        *,
        purpose: CallPurpose = "negotiation",
    ) -> PlacedCall: ...

    async def get_call_status(self, call_id: str) -> CallStatusReport: ...


def format_phone_number(raw: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Normalise a local phone number to E.164.

    Spaces and dashes are removed; a leading trunk ``0`` is replaced by the
    country code, and a bare number gets ``+<country_code>`` prepended.

    Args:
        raw: Phone number as listed by the directory.
        country_code: Country calling code without ``+``.

    Returns:
        The number in ``+<digits>`` form.
    """
    number = raw.replace(" ", "").replace("-", "")
    if number.startswith("+"):
        return number
    if number.startswith("0"):
        return f"+{country_code}{number[1:]}"
    if number.startswith(country_code):
        return f"+{number}"
    return f"+{country_code}{number}"


def _parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class VapiCaller:
    """``OutboundCaller`` backed by the Vapi voice-agent API.

    Args:
        api_key: Vapi private API key.
        phone_number_id: Vapi id of the number calls are placed from.
        client: Shared ``httpx.AsyncClient``; the caller owns its lifecycle.
    """

    def __init__(self, api_key: str, phone_number_id: str, client: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._phone_number_id = phone_number_id
        self._client = client

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}

    async def place_call(
        self,
        business: Business,
        requirements: Requirements,
        benchmark: float | None = None,
        *,
        purpose: CallPurpose = "negotiation",
    ) -> PlacedCall:
        """Start an outbound call to *business*.

        Placement is not retried: a duplicate POST would dial the vendor twice.

        Raises:
            CollaboratorError: If Vapi rejects the call.
        """
        payload = {
            "phoneNumberId": self._phone_number_id,
            "customer": {
                "number": format_phone_number(business.phone),
                "name": business.name[:MAX_CUSTOMER_NAME],
            },
            "assistant": {
                "model": {
                    "provider": "anthropic",
                    "model": "claude-sonnet-4-5",
                    "messages": [
                        {
                            "role": "system",
                            "content": call_brief(business, requirements, benchmark, purpose),
                        }
                    ],
                },
                "endCallFunctionEnabled": True,
                "maxDurationSeconds": 120 if purpose == "verification" else 180,
                "artifactPlan": {"recordingEnabled": True, "transcriptPlan": {"enabled": True}},
            },
            "metadata": {
                "businessId": business.id,
                "businessName": business.name,
                "service": requirements.service,
                "callType": purpose,
            },
        }
        response = await self._client.post(
            f"{VAPI_BASE_URL}/call", json=payload, headers=self._headers, timeout=30.0
        )
        if response.is_error:
            raise CollaboratorError("vapi", f"call placement failed: {response.text}")
        data = response.json()
        logger.info("call_placed", vendor=business.name, call_id=data["id"], purpose=purpose)
        return PlacedCall(call_id=data["id"], status=data.get("status", "queued"))

    async def get_call_status(self, call_id: str) -> CallStatusReport:
        """Fetch the current status, and transcript once available, of a call."""
        data = await self._fetch_call(call_id)
        artifact = data.get("artifact") or {}
        return CallStatusReport(
            status=data.get("status", "unknown"),
            transcript=data.get("transcript") or artifact.get("transcript"),
            summary=data.get("summary") or (data.get("analysis") or {}).get("summary"),
            started_at=_parse_timestamp(data.get("startedAt") or data.get("createdAt")),
            ended_at=_parse_timestamp(data.get("endedAt")),
            ended_reason=data.get("endedReason"),
            recording_url=data.get("recordingUrl") or artifact.get("recordingUrl"),
        )

    @resilient_api_call("vapi")
    async def _fetch_call(self, call_id: str) -> dict[str, Any]:
        response = await self._client.get(
            f"{VAPI_BASE_URL}/call/{call_id}", headers=self._headers, timeout=30.0
        )
        response.raise_for_status()
        return dict(response.json())
