"""Tests for workflow event models."""

import pytest

from mvpflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


class TestWorkflowEventType:
    """Tests for WorkflowEventType enum."""

    def test_event_type_values(self):
        """Event types have correct string values."""
        assert WorkflowEventType.WORKFLOW_START.value == "WORKFLOW_START"
        assert WorkflowEventType.STEP_SKIP.value == "STEP_SKIP"
        assert WorkflowEventType.CHECKPOINT_FAIL.value == "CHECKPOINT_FAIL"
        assert WorkflowEventType.RECOVERY.value == "RECOVERY"
        assert WorkflowEventType.WORKFLOW_END.value == "WORKFLOW_END"

    def test_event_type_is_str_enum(self):
        """WorkflowEventType is a string enum."""
        assert isinstance(WorkflowEventType.STEP_START, str)
        assert WorkflowEventType.STEP_START == "STEP_START"


class TestWorkflowEvent:
    """Tests for WorkflowEvent dataclass."""

    def test_workflow_event_frozen(self):
        """WorkflowEvent is immutable."""
        event = WorkflowEvent(
            event_id="evt-1",
            event_type=WorkflowEventType.STEP_START,
            workflow_id="wf-1",
            step_id="reproduce_issue",
        )

        with pytest.raises(AttributeError):
            event.event_id = "evt-2"  # type: ignore

    def test_recovery_event_fields(self):
        """Recovery events carry the strategy that was applied."""
        event = WorkflowEvent(
            event_id="evt-1",
            event_type=WorkflowEventType.RECOVERY,
            workflow_id="wf-1",
            step_id="write_tests",
            attempt=2,
            strategy="retry",
            summary="Retrying step",
            created_at="2024-01-01T00:00:00Z",
        )

        assert event.strategy == "retry"
        assert event.attempt == 2
        assert event.created_at == "2024-01-01T00:00:00Z"

    def test_workflow_event_defaults(self):
        """WorkflowEvent has correct defaults."""
        event = WorkflowEvent(
            event_id="evt-1",
            event_type=WorkflowEventType.WORKFLOW_END,
            workflow_id="wf-1",
        )

        assert event.step_id is None
        assert event.checkpoint_id is None
        assert event.attempt is None
        assert event.strategy is None
        assert event.status is None
        assert event.summary == ""
