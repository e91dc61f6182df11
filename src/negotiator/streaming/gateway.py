"""Live event streams for session observers.

A subscriber receives, in order: one ``init`` snapshot, the most recent
buffered events, then every newly appended event, with keepalive comments
while the session is idle.  Delivery is best-effort: a disconnected
subscriber resubscribes and gets a fresh snapshot.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

import structlog

from negotiator.sessions.models import Session
from negotiator.sessions.store import SessionStore
from negotiator.streaming.sse import KEEPALIVE_COMMENT, format_sse

logger = structlog.get_logger()


class EventStreamGateway:
    """Turns a session's event log into an SSE stream.

    Args:
        store: The session registry.
        replay_count: Buffered events replayed after the snapshot.
        keepalive_seconds: Idle interval after which a keepalive comment is sent.
    """

    def __init__(
        self,
        store: SessionStore,
        replay_count: int = 20,
        keepalive_seconds: float = 15.0,
    ) -> None:
        self._store = store
        self._replay_count = replay_count
        self._keepalive_seconds = keepalive_seconds

    def stream(self, session_id: str) -> AsyncIterator[str]:
        """Open a stream for *session_id*, creating the session if needed."""
        return self._frames(self._store.get_or_create(session_id))

    async def _frames(self, session: Session) -> AsyncIterator[str]:
        # Snapshot, replay and subscription happen without an await in between,
        # so no event is missed or delivered twice.
        queue = session.subscribe()
        replay = session.events[-self._replay_count :] if self._replay_count else []
        snapshot = {
            "type": "init",
            "session_id": session.id,
            "status": session.status,
            "events_count": len(session.events),
            "current_stage": session.state.stage,
            "current_agent": session.state.current_agent,
        }
        logger.info("stream_opened", session_id=session.id, replayed=len(replay))
        try:
            yield format_sse(snapshot)
            for event in replay:
                yield format_sse({"type": "event", "event": event.model_dump(mode="json")})
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=self._keepalive_seconds)
                except TimeoutError:
                    yield KEEPALIVE_COMMENT
                    continue
                if event is None:
                    break
                yield format_sse({"type": "event", "event": event.model_dump(mode="json")})
        finally:
            session.unsubscribe(queue)
            logger.info("stream_closed", session_id=session.id)

    def subscriber_count(self, session_id: str) -> int:
        """Number of open streams on *session_id* (0 for unknown sessions)."""
        if session_id not in self._store:
            return 0
        return self._store.get(session_id).listener_count
