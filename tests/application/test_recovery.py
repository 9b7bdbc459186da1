"""Tests for step recovery strategies."""

from mvpflow.application.dependency_tracker import DependencyTracker
from mvpflow.application.recovery import RecoveryStrategy, StepRecovery
from mvpflow.domain.models import (
    CheckpointStatus,
    StepStatus,
    ValidationCheckpoint,
    WorkflowInstance,
)


def fallback_executor(instance, step, context):
    return True


class TestRecoveryOrder:
    """Strategies are tried as retry, skip, fallback, rollback."""

    def test_retry_first(self, linear_instance: WorkflowInstance) -> None:
        step = linear_instance.steps[0]
        step.status = StepStatus.FAILED

        attempt = StepRecovery().recover(linear_instance, step, "boom")

        assert attempt.strategy is RecoveryStrategy.RETRY
        assert step.retry_count == 1
        assert step.status is StepStatus.PENDING

    def test_skip_optional_when_retries_exhausted(
        self, linear_instance: WorkflowInstance
    ) -> None:
        """An optional step is skipped and the cursor advances."""
        step = linear_instance.steps[0]
        step.required = False

        attempt = StepRecovery().recover(linear_instance, step, "boom", max_retries=0)

        assert attempt.strategy is RecoveryStrategy.SKIP_OPTIONAL
        assert step.status is StepStatus.SKIPPED
        assert step.skip_reason == "Skipped due to error: boom"
        assert linear_instance.current_step == 1

    def test_fallback_swaps_implementation_once(
        self, linear_instance: WorkflowInstance
    ) -> None:
        step = linear_instance.steps[0]
        step.fallback = fallback_executor
        recovery = StepRecovery()

        first = recovery.recover(linear_instance, step, "boom", max_retries=0)
        second = recovery.recover(linear_instance, step, "boom", max_retries=0)

        assert first.strategy is RecoveryStrategy.FALLBACK_APPROACH
        assert step.implementation is fallback_executor
        assert step.fallback is None
        assert not second.recovered

    def test_rollback_to_last_passed_checkpoint(
        self, linear_instance: WorkflowInstance
    ) -> None:
        """Cursor rewinds to the checkpoint's step; later checkpoints reset."""
        for step in linear_instance.steps[:2]:
            step.status = StepStatus.COMPLETED
        linear_instance.checkpoints = {
            "cp_a": ValidationCheckpoint(
                id="cp_a", name="A done", step_index=1, status=CheckpointStatus.PASSED
            ),
        }
        linear_instance.current_step = 2
        failed = linear_instance.steps[2]

        attempt = StepRecovery().recover(linear_instance, failed, "boom", max_retries=0)

        assert attempt.strategy is RecoveryStrategy.ROLLBACK_CHECKPOINT
        assert linear_instance.current_step == 1
        assert linear_instance.rollback_count == 1
        assert linear_instance.steps[0].status is StepStatus.COMPLETED
        assert linear_instance.steps[1].status is StepStatus.PENDING
        assert linear_instance.checkpoints["cp_a"].status is CheckpointStatus.PENDING

    def test_rollback_budget(self, linear_instance: WorkflowInstance) -> None:
        linear_instance.checkpoints = {
            "cp_a": ValidationCheckpoint(
                id="cp_a", name="A done", step_index=0, status=CheckpointStatus.PASSED
            ),
        }
        linear_instance.current_step = 2
        linear_instance.rollback_count = 1

        attempt = StepRecovery().recover(
            linear_instance, linear_instance.steps[2], "boom", max_retries=0, max_rollbacks=1
        )

        assert not attempt.recovered
        assert attempt.message == "All recovery strategies exhausted"

    def test_recovery_never_clears_errors(self, linear_instance: WorkflowInstance) -> None:
        step = linear_instance.steps[0]
        linear_instance.add_error("boom", step)

        StepRecovery().recover(linear_instance, step, "boom")

        assert len(linear_instance.errors) == 1


class TestTrackerSync:
    """Recovery keeps the dependency graph in sync."""

    def test_skip_is_visible_to_tracker(self, linear_instance: WorkflowInstance) -> None:
        tracker = DependencyTracker()
        tracker.track(linear_instance)
        step = linear_instance.steps[0]
        step.required = False

        StepRecovery(tracker).recover(linear_instance, step, "boom", max_retries=0)

        assert tracker.check_step_dependencies(linear_instance.id, "b").all_satisfied
