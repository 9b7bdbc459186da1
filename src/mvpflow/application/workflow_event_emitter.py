"""Workflow event emission service."""

import uuid
from datetime import UTC, datetime

from mvpflow.domain.interfaces import WorkflowEventStoreInterface
from mvpflow.domain.workflow_event import WorkflowEvent, WorkflowEventType


class WorkflowEventEmitter:
    """Emits workflow events to a store.

    Provides convenience methods for emitting common workflow events
    during execution, handling ID generation and timestamps.
    """

    def __init__(
        self, event_store: WorkflowEventStoreInterface, workflow_id: str
    ) -> None:
        self._store = event_store
        self._workflow_id = workflow_id

    def _emit(self, event_type: WorkflowEventType, **fields: object) -> str:
        return self._store.store_event(
            WorkflowEvent(
                event_id=str(uuid.uuid4()),
                event_type=event_type,
                workflow_id=self._workflow_id,
                created_at=datetime.now(UTC).isoformat(),
                **fields,  # type: ignore[arg-type]
            )
        )

    def workflow_start(self, step_count: int) -> None:
        self._emit(WorkflowEventType.WORKFLOW_START, summary=f"{step_count} steps")

    def step_start(self, step_id: str, attempt: int) -> None:
        """Emit STEP_START event when beginning a step execution."""
        self._emit(WorkflowEventType.STEP_START, step_id=step_id, attempt=attempt)

    def step_pass(self, step_id: str, attempt: int) -> None:
        """Emit STEP_PASS event when a step and its checkpoints succeed."""
        self._emit(WorkflowEventType.STEP_PASS, step_id=step_id, attempt=attempt)

    def step_fail(self, step_id: str, attempt: int, error: str) -> None:
        """Emit STEP_FAIL event when a step or a required checkpoint fails."""
        self._emit(
            WorkflowEventType.STEP_FAIL,
            step_id=step_id,
            attempt=attempt,
            summary=error[:500],
        )

    def step_skip(self, step_id: str, reason: str) -> None:
        self._emit(WorkflowEventType.STEP_SKIP, step_id=step_id, summary=reason)

    def checkpoint(self, checkpoint_id: str, passed: bool, summary: str = "") -> None:
        """Emit CHECKPOINT_PASS or CHECKPOINT_FAIL."""
        self._emit(
            WorkflowEventType.CHECKPOINT_PASS if passed else WorkflowEventType.CHECKPOINT_FAIL,
            checkpoint_id=checkpoint_id,
            summary=summary,
        )

    def recovery(self, step_id: str, strategy: str, summary: str) -> None:
        """Emit RECOVERY event when a recovery strategy succeeds."""
        self._emit(
            WorkflowEventType.RECOVERY,
            step_id=step_id,
            strategy=strategy,
            summary=summary,
        )

    def workflow_end(self, status: str, summary: str = "") -> None:
        self._emit(WorkflowEventType.WORKFLOW_END, status=status, summary=summary)
