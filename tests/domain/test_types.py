"""Tests for domain enumerations and call-status normalization."""

import pytest

from negotiator.domain.types import (
    FINAL_CALL_STATUSES,
    CallDecision,
    CallStatus,
    WorkflowStage,
    normalize_call_status,
)


class TestWorkflowStage:
    def test_string_serialization(self):
        assert str(WorkflowStage.HUMAN_INTERRUPT) == "human_interrupt"
        assert WorkflowStage("call_decision") == WorkflowStage.CALL_DECISION

    def test_invalid_value_raises(self):
        with pytest.raises(ValueError):
            WorkflowStage("billing")


class TestCallDecision:
    def test_members(self):
        assert {d.value for d in CallDecision} == {"continue", "stop"}


class TestNormalizeCallStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("ended", CallStatus.COMPLETED),
            ("Completed", CallStatus.COMPLETED),
            ("no-answer", CallStatus.NO_ANSWER),
            (" busy ", CallStatus.BUSY),
            ("failed", CallStatus.FAILED),
            ("queued", CallStatus.QUEUED),
            ("ringing", CallStatus.IN_PROGRESS),
            ("in-progress", CallStatus.IN_PROGRESS),
        ],
    )
    def test_mapping(self, raw: str, expected: CallStatus):
        assert normalize_call_status(raw) == expected

    def test_final_statuses_never_in_progress(self):
        assert CallStatus.IN_PROGRESS not in FINAL_CALL_STATUSES.values()
        assert CallStatus.QUEUED not in FINAL_CALL_STATUSES.values()
