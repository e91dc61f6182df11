"""Session records and the in-process session registry."""

from negotiator.sessions.models import Session, initial_state
from negotiator.sessions.store import SessionStore

__all__ = ["Session", "SessionStore", "initial_state"]
