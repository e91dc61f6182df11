"""HTTP routes for sessions, event streams and call history."""

from negotiator.api.routes import register_error_handlers, router

__all__ = ["register_error_handlers", "router"]
