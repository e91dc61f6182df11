"""Tests for SSE formatting and the live event stream."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any, cast

import pytest

from negotiator.domain.models import AgentEvent
from negotiator.domain.types import AgentName, EventType
from negotiator.sessions.store import SessionStore
from negotiator.streaming.gateway import EventStreamGateway
from negotiator.streaming.sse import KEEPALIVE_COMMENT, format_sse


def _event(message: str) -> AgentEvent:
    return AgentEvent(type=EventType.MESSAGE, agent=AgentName.INTAKE, message=message)


def _payload(frame: str) -> dict[str, Any]:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return cast(dict[str, Any], json.loads(frame[len("data: ") :]))


class TestFormatSse:
    def test_data_frame(self) -> None:
        assert format_sse({"type": "init", "n": 1}) == 'data: {"type": "init", "n": 1}\n\n'

    def test_frames_are_unnamed(self) -> None:
        frame = format_sse({"type": "status", "ok": True})
        assert not frame.startswith("event:")
        assert frame.count("\n") == 2

    def test_non_ascii_and_datetimes(self) -> None:
        frame = format_sse({"vendor": "Café Cabs", "at": _event("x").timestamp})
        assert "Café Cabs" in frame
        assert _payload(frame)["at"]


class TestEventStreamGateway:
    @pytest.fixture
    def gateway(self, store: SessionStore) -> EventStreamGateway:
        return EventStreamGateway(store, replay_count=2, keepalive_seconds=0.01)

    @pytest.mark.anyio()
    async def test_snapshot_then_replay(
        self, store: SessionStore, gateway: EventStreamGateway
    ) -> None:
        session = store.get_or_create("s-1")
        session.append_events([_event("one"), _event("two"), _event("three")])

        frames = cast(AsyncIterator[str], gateway.stream("s-1"))
        init = _payload(await anext(frames))
        replayed = [_payload(await anext(frames)) for _ in range(2)]
        await frames.aclose()  # type: ignore[attr-defined]

        assert init == {
            "type": "init",
            "session_id": "s-1",
            "status": "paused",
            "events_count": 3,
            "current_stage": "intake",
            "current_agent": "intake",
        }
        assert [p["event"]["message"] for p in replayed] == ["two", "three"]
        assert all(p["type"] == "event" for p in replayed)

    @pytest.mark.anyio()
    async def test_live_events_and_keepalive(
        self, store: SessionStore, gateway: EventStreamGateway
    ) -> None:
        frames = gateway.stream("s-live")
        await anext(frames)
        session = store.get("s-live")
        assert session.listener_count == 1

        assert await anext(frames) == KEEPALIVE_COMMENT

        session.append_events([_event("live")])
        assert _payload(await anext(frames))["event"]["message"] == "live"
        await frames.aclose()  # type: ignore[attr-defined]

    @pytest.mark.anyio()
    async def test_closing_the_stream_unsubscribes(
        self, store: SessionStore, gateway: EventStreamGateway
    ) -> None:
        frames = gateway.stream("s-1")
        await anext(frames)
        assert gateway.subscriber_count("s-1") == 1

        await frames.aclose()  # type: ignore[attr-defined]

        assert gateway.subscriber_count("s-1") == 0

    @pytest.mark.anyio()
    async def test_deleting_the_session_ends_the_stream(
        self, store: SessionStore, gateway: EventStreamGateway
    ) -> None:
        frames = gateway.stream("s-1")
        await anext(frames)

        store.delete("s-1")

        with pytest.raises(StopAsyncIteration):
            await anext(frames)

    def test_unknown_session_has_no_subscribers(self, gateway: EventStreamGateway) -> None:
        assert gateway.subscriber_count("nobody") == 0
