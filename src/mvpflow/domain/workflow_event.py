"""Workflow execution trace models."""

from dataclasses import dataclass
from enum import Enum


class WorkflowEventType(str, Enum):
    """Types of workflow execution events."""

    WORKFLOW_START = "WORKFLOW_START"
    STEP_START = "STEP_START"
    STEP_PASS = "STEP_PASS"
    STEP_FAIL = "STEP_FAIL"
    STEP_SKIP = "STEP_SKIP"
    CHECKPOINT_PASS = "CHECKPOINT_PASS"
    CHECKPOINT_FAIL = "CHECKPOINT_FAIL"
    RECOVERY = "RECOVERY"
    WORKFLOW_END = "WORKFLOW_END"


@dataclass(frozen=True)
class WorkflowEvent:
    """
    Single workflow state transition.

    Represents an atomic event in the workflow execution trace,
    capturing state changes for observability and debugging.
    """

    event_id: str
    event_type: WorkflowEventType
    workflow_id: str
    step_id: str | None = None
    checkpoint_id: str | None = None
    attempt: int | None = None
    strategy: str | None = None  # recovery strategy, for RECOVERY events
    status: str | None = None  # final status, for WORKFLOW_END events
    summary: str = ""
    created_at: str = ""  # ISO 8601
