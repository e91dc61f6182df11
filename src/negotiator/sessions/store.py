"""In-process session registry.

The registry map is the only structure shared across sessions.  A
``threading.Lock`` makes create-if-absent atomic, so concurrent first
references to one id always end up with the same ``Session``.  Work on a
single session is serialized separately by that session's ``asyncio.Lock``.
"""

from __future__ import annotations

import threading

import structlog

from negotiator.domain.errors import SessionNotFoundError
from negotiator.observability.metrics import ACTIVE_SESSIONS
from negotiator.sessions.models import Session

logger = structlog.get_logger()


class SessionStore:
    """Concurrency-safe registry of one ``Session`` per session id."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> Session:
        """Return the session for *session_id*, creating it at intake if absent."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id)
                self._sessions[session_id] = session
                ACTIVE_SESSIONS.set(len(self._sessions))
                logger.info("session_created", session_id=session_id)
            return session

    def get(self, session_id: str) -> Session:
        """Return an existing session.

        Raises:
            SessionNotFoundError: If *session_id* is unknown.
        """
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def reset(self, session_id: str) -> Session:
        """Return the session to a fresh intake state, creating it if absent.

        The caller must hold the session's lock if actions may be running.
        """
        session = self.get_or_create(session_id)
        session.clear()
        logger.info("session_reset", session_id=session_id)
        return session

    def delete(self, session_id: str) -> bool:
        """Remove a session and close its event streams.

        Returns:
            True if a session was removed.
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)
            ACTIVE_SESSIONS.set(len(self._sessions))
        if session is None:
            return False
        session.close_listeners()
        logger.info("session_deleted", session_id=session_id)
        return True

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
