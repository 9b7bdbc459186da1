"""
Domain exceptions for the workflow engine.

These represent business rule violations in the domain layer. Every step
or workflow level failure is also appended to the instance error log, so
raising one of these never hides the failure from the Completion Report.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mvpflow.domain.models import ValidationResult


class WorkflowError(Exception):
    """Base class for all workflow engine errors."""


class ConfigurationError(WorkflowError):
    """
    Raised for invalid task specifications, templates or configurations.

    Configuration errors fail fast at creation, registration or import
    time and are never retried.
    """

    def __init__(self, message: str, problems: list[str] | None = None):
        """
        Args:
            message: Human-readable error message
            problems: Individual problems found, if more than one
        """
        super().__init__(message)
        self.problems = problems or []


class DependencyError(WorkflowError):
    """
    Raised when a step's dependencies stay unresolved after resolution.

    Cycles are reported as analysis output and never raise this.
    """

    def __init__(self, step_id: str, blocking: list[str], message: str = ""):
        """
        Args:
            step_id: The step whose dependencies are blocking
            blocking: Ids of the dependencies still blocking it
            message: Optional override for the error message
        """
        super().__init__(
            message
            or f"Step '{step_id}' blocked by unresolved dependencies: "
            + ", ".join(blocking)
        )
        self.step_id = step_id
        self.blocking = blocking


class ValidationError(WorkflowError):
    """Raised when a required checkpoint fails after a step succeeded."""

    def __init__(self, message: str, result: "ValidationResult | None" = None):
        super().__init__(message)
        self.result = result


class CheckpointTimeoutError(ValidationError):
    """Checkpoint evaluation exceeded its timeout. Converted to a failed result."""


class ExecutionError(WorkflowError):
    """Raised when a step executor raises, reports failure, or is missing."""

    def __init__(self, step_id: str, message: str):
        super().__init__(message)
        self.step_id = step_id


class WorkflowCancelled(WorkflowError):
    """Raised by a cancellation token when an executor asks to stop early."""

    def __init__(self, reason: str = ""):
        super().__init__(reason or "Workflow cancelled")
        self.reason = reason
