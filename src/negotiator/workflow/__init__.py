"""Workflow stage machine with transition validation.

The engine and action models live in ``negotiator.workflow.engine`` and
``negotiator.workflow.actions``; they import the stage agents, which in turn
import the transition map from this package.
"""

from negotiator.workflow.machine import StageMachine
from negotiator.workflow.transitions import TERMINAL_STAGES, TRANSITIONS, WorkflowEvent

__all__ = [
    "StageMachine",
    "TERMINAL_STAGES",
    "TRANSITIONS",
    "WorkflowEvent",
]
