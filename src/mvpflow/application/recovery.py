"""
Step recovery strategies.

After a step failure the engine asks StepRecovery for a way forward.
Strategies are tried in a fixed order and the first one that applies wins:
retry, skip_optional, fallback_approach, rollback_checkpoint.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from mvpflow.application.dependency_tracker import DependencyTracker
from mvpflow.domain.models import (
    CheckpointStatus,
    Step,
    StepStatus,
    ValidationCheckpoint,
    WorkflowInstance,
)

logger = logging.getLogger(__name__)


class RecoveryStrategy(str, Enum):
    RETRY = "retry"
    SKIP_OPTIONAL = "skip_optional"
    FALLBACK_APPROACH = "fallback_approach"
    ROLLBACK_CHECKPOINT = "rollback_checkpoint"


RECOVERY_ORDER = (
    RecoveryStrategy.RETRY,
    RecoveryStrategy.SKIP_OPTIONAL,
    RecoveryStrategy.FALLBACK_APPROACH,
    RecoveryStrategy.ROLLBACK_CHECKPOINT,
)


@dataclass(frozen=True)
class RecoveryAttempt:
    """Outcome of a recovery pass for one failed step."""

    recovered: bool
    strategy: RecoveryStrategy | None = None
    message: str = ""


def last_passed_checkpoint(instance: WorkflowInstance) -> ValidationCheckpoint | None:
    """Latest PASSED checkpoint bound before the current cursor."""
    candidates = [
        cp
        for cp in instance.checkpoints.values()
        if cp.status is CheckpointStatus.PASSED
        and cp.step_index is not None
        and cp.step_index < instance.current_step
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda cp: cp.step_index)


class StepRecovery:
    """
    Applies recovery strategies to a failed step in place.

    Args:
        tracker: Dependency tracker kept in sync with step status changes
    """

    def __init__(self, tracker: DependencyTracker | None = None) -> None:
        self._tracker = tracker

    def recover(
        self,
        instance: WorkflowInstance,
        step: Step,
        error: str,
        max_retries: int = 3,
        max_rollbacks: int = 1,
    ) -> RecoveryAttempt:
        """
        Try each strategy in order until one applies.

        Args:
            instance: The workflow instance, cursor on the failed step
            step: The failed step
            error: Failure message, used for skip reasons
            max_retries: Retry budget per step
            max_rollbacks: Rollback budget per instance

        Returns:
            The first successful attempt, or an unrecovered attempt when
            every strategy is exhausted
        """
        logger.info("Attempting recovery for workflow %s at step '%s'", instance.id, step.id)
        for strategy in RECOVERY_ORDER:
            if strategy is RecoveryStrategy.RETRY:
                attempt = self._retry(instance, step, max_retries)
            elif strategy is RecoveryStrategy.SKIP_OPTIONAL:
                attempt = self._skip_optional(instance, step, error)
            elif strategy is RecoveryStrategy.FALLBACK_APPROACH:
                attempt = self._fallback(instance, step)
            else:
                attempt = self._rollback(instance, max_rollbacks)
            if attempt is not None:
                logger.info(
                    "Recovery successful using strategy: %s (%s)",
                    strategy.value,
                    attempt.message,
                )
                return attempt
        return RecoveryAttempt(recovered=False, message="All recovery strategies exhausted")

    # =========================================================================
    # STRATEGIES
    # =========================================================================

    def _retry(
        self, instance: WorkflowInstance, step: Step, max_retries: int
    ) -> RecoveryAttempt | None:
        if step.retry_count >= max_retries:
            return None
        step.retry_count += 1
        self._set_status(instance, step, StepStatus.PENDING)
        return RecoveryAttempt(
            recovered=True,
            strategy=RecoveryStrategy.RETRY,
            message=f"Retrying step (attempt {step.retry_count})",
        )

    def _skip_optional(
        self, instance: WorkflowInstance, step: Step, error: str
    ) -> RecoveryAttempt | None:
        if step.required:
            return None
        step.skip(f"Skipped due to error: {error}")
        self._set_status(instance, step, StepStatus.SKIPPED)
        instance.current_step += 1
        return RecoveryAttempt(
            recovered=True,
            strategy=RecoveryStrategy.SKIP_OPTIONAL,
            message=f"Skipped optional step: {step.name}",
        )

    def _fallback(self, instance: WorkflowInstance, step: Step) -> RecoveryAttempt | None:
        if step.fallback is None:
            return None
        step.implementation = step.fallback
        step.executor = None
        step.fallback = None
        self._set_status(instance, step, StepStatus.PENDING)
        return RecoveryAttempt(
            recovered=True,
            strategy=RecoveryStrategy.FALLBACK_APPROACH,
            message=f"Using fallback approach for step: {step.name}",
        )

    def _rollback(
        self, instance: WorkflowInstance, max_rollbacks: int
    ) -> RecoveryAttempt | None:
        if instance.rollback_count >= max_rollbacks:
            return None
        checkpoint = last_passed_checkpoint(instance)
        if checkpoint is None:
            return None
        rewind_to = checkpoint.step_index
        for step in instance.steps[rewind_to:]:
            # Retry counters survive so a deterministic failure cannot loop
            if step.status is not StepStatus.SKIPPED:
                self._set_status(instance, step, StepStatus.PENDING)
        for cp in instance.checkpoints.values():
            if cp.step_index is not None and cp.step_index >= rewind_to:
                cp.status = CheckpointStatus.PENDING
        instance.current_step = rewind_to
        instance.rollback_count += 1
        return RecoveryAttempt(
            recovered=True,
            strategy=RecoveryStrategy.ROLLBACK_CHECKPOINT,
            message=f"Rolling back to checkpoint: {checkpoint.name}",
        )

    def _set_status(self, instance: WorkflowInstance, step: Step, status: StepStatus) -> None:
        step.status = status
        if self._tracker is not None:
            self._tracker.update_step_status(instance.id, step.id, status)
