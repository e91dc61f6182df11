"""The per-session record owned by the session store."""

from __future__ import annotations

import asyncio
from datetime import datetime

from negotiator.domain.models import AgentEvent, WorkflowState, utc_now
from negotiator.domain.types import SessionStatus


def initial_state(session_id: str) -> WorkflowState:
    """A fresh workflow state at intake."""
    return WorkflowState(session_id=session_id)


class Session:
    """One negotiation session: state, event log, status and live listeners.

    ``state`` is replaced, never mutated in place, so a reader holding a
    reference always sees a consistent snapshot.  ``lock`` serializes
    actions against this session.

    Args:
        session_id: Opaque session identifier.
    """

    def __init__(self, session_id: str) -> None:
        self.id = session_id
        self.state: WorkflowState = initial_state(session_id)
        self.events: list[AgentEvent] = []
        self.status: SessionStatus = SessionStatus.PAUSED
        self.last_updated: datetime = utc_now()
        self.lock = asyncio.Lock()
        self._listeners: set[asyncio.Queue[AgentEvent | None]] = set()

    def touch(self) -> None:
        """Record that the session changed."""
        self.last_updated = utc_now()

    def replace_state(self, state: WorkflowState) -> None:
        """Swap in a new state snapshot."""
        self.state = state
        self.touch()

    def set_status(self, status: SessionStatus) -> None:
        self.status = status
        self.touch()

    def append_events(self, events: list[AgentEvent]) -> None:
        """Append *events* to the log and push them to every listener."""
        if not events:
            return
        self.events.extend(events)
        for queue in self._listeners:
            for event in events:
                queue.put_nowait(event)
        self.touch()

    def announce(self, event: AgentEvent) -> None:
        """Push *event* to live listeners without adding it to the log."""
        for queue in self._listeners:
            queue.put_nowait(event)

    def clear(self) -> None:
        """Back to a fresh intake state with an empty log; listeners stay attached."""
        self.state = initial_state(self.id)
        self.events = []
        self.status = SessionStatus.PAUSED
        self.touch()

    def subscribe(self) -> asyncio.Queue[AgentEvent | None]:
        """Attach a listener queue that receives every newly appended event."""
        queue: asyncio.Queue[AgentEvent | None] = asyncio.Queue()
        self._listeners.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[AgentEvent | None]) -> None:
        self._listeners.discard(queue)

    def close_listeners(self) -> None:
        """Tell every listener the session is gone (``None`` sentinel) and detach them."""
        for queue in self._listeners:
            queue.put_nowait(None)
        self._listeners.clear()

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
