"""External collaborators: business directory, telephony, call history."""

from negotiator.collaborators.call_history import (
    CallHistory,
    CallHistoryStore,
    init_call_history_db,
)
from negotiator.collaborators.directory import BusinessDirectory, GoogleMapsDirectory
from negotiator.collaborators.telephony import OutboundCaller, VapiCaller

__all__ = [
    "BusinessDirectory",
    "CallHistory",
    "CallHistoryStore",
    "GoogleMapsDirectory",
    "OutboundCaller",
    "VapiCaller",
    "init_call_history_db",
]
