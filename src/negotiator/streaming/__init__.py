"""Server-Sent Events delivery of session events."""

from negotiator.streaming.gateway import EventStreamGateway
from negotiator.streaming.sse import KEEPALIVE_COMMENT, format_sse

__all__ = ["KEEPALIVE_COMMENT", "EventStreamGateway", "format_sse"]
