"""StageMachine class with trigger, history, and valid_events."""

from __future__ import annotations

from negotiator.domain.errors import InvalidTransitionError
from negotiator.domain.types import WorkflowStage
from negotiator.workflow.transitions import TERMINAL_STAGES, TRANSITIONS

StageHistory = list[tuple[WorkflowStage, str, WorkflowStage]]


class StageMachine:
    """Finite state machine governing a session's workflow stages.

    Tracks the current stage, validates transitions against the transition
    map, and records a full history of all stage changes.

    Usage::

        sm = StageMachine()
        sm.trigger("requirements_complete")  # -> SEARCH
        sm.trigger("search_finished")        # -> RESEARCH
    """

    def __init__(self, initial_stage: WorkflowStage = WorkflowStage.INTAKE) -> None:
        self._stage: WorkflowStage = initial_stage
        self._history: StageHistory = []

    @classmethod
    def from_snapshot(cls, stage: WorkflowStage, history: StageHistory) -> StageMachine:
        """Reconstruct a machine at *stage* with *history* already recorded.

        Args:
            stage: The stage to restore.
            history: ``(from, event, to)`` tuples in chronological order.

        Returns:
            A ``StageMachine`` positioned at *stage*.
        """
        instance = cls(initial_stage=stage)
        instance._history = list(history)
        return instance

    @property
    def stage(self) -> WorkflowStage:
        """Return the current stage."""
        return self._stage

    @property
    def is_terminal(self) -> bool:
        """Return True if the machine is in COMPLETED or ERROR."""
        return self._stage in TERMINAL_STAGES

    @property
    def history(self) -> StageHistory:
        """Return a copy of the transition history."""
        return list(self._history)

    def trigger(self, event: str) -> WorkflowStage:
        """Apply an event to the current stage and transition.

        Args:
            event: The event string (e.g. ``"ranked"``).

        Returns:
            The new stage after the transition.

        Raises:
            InvalidTransitionError: If the transition is not allowed from
                the current stage, or if the machine is terminal.
        """
        if self.is_terminal:
            raise InvalidTransitionError(self._stage, event)

        key = (self._stage, event)
        if key not in TRANSITIONS:
            raise InvalidTransitionError(self._stage, event)

        old_stage = self._stage
        new_stage = TRANSITIONS[key]
        self._history.append((old_stage, event, new_stage))
        self._stage = new_stage
        return new_stage

    def get_valid_events(self) -> list[str]:
        """Return a sorted list of events valid from the current stage."""
        if self.is_terminal:
            return []
        return sorted(event for stage, event in TRANSITIONS if stage == self._stage)
