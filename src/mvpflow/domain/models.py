"""
Domain models for the workflow engine.

Value objects (task specifications, outcomes, validation results, reports)
are frozen dataclasses. Steps, checkpoints and workflow instances are the
runtime state the Execution Engine mutates while a workflow runs, so they
are plain dataclasses.
"""

import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from mvpflow.domain.criteria import CriteriaSpec, CriterionValidator
from mvpflow.domain.exceptions import WorkflowCancelled

# Executor contract: (instance, step, context) -> StepOutcome | bool | mapping | awaitable
StepExecutor = Callable[..., Any]


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_workflow_id() -> str:
    return f"workflow_{uuid.uuid4().hex[:12]}"


# =============================================================================
# ENUMERATIONS
# =============================================================================


class TaskType(str, Enum):
    """Task classification produced by the decomposer."""

    FEATURE_ADDITION = "feature_addition"
    BUG_FIX = "bug_fix"
    REFACTORING = "refactoring"
    TESTING = "testing"
    DOCUMENTATION = "documentation"
    MAINTENANCE = "maintenance"
    INTEGRATION = "integration"
    INVESTIGATION = "investigation"
    GENERAL = "general"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepType(str, Enum):
    """What kind of work a step performs; selects the engine dispatch path."""

    ANALYSIS = "analysis"
    DESIGN = "design"
    IMPLEMENTATION = "implementation"
    TESTING = "testing"
    VERIFICATION = "verification"
    PLANNING = "planning"
    INVESTIGATION = "investigation"
    CUSTOM = "custom"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"  # Only as an effective status in the dependency graph


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PriorityTier(str, Enum):
    """Priority tiers, best first. MVP level is the tier rank (1..4)."""

    ESSENTIAL = "essential"
    IMPORTANT = "important"
    NICE_TO_HAVE = "nice_to_have"
    FUTURE = "future"

    @property
    def weight(self) -> int:
        return _TIER_WEIGHTS[self]

    @property
    def mvp_level(self) -> int:
        return list(PriorityTier).index(self) + 1


_TIER_WEIGHTS = {
    PriorityTier.ESSENTIAL: 100,
    PriorityTier.IMPORTANT: 75,
    PriorityTier.NICE_TO_HAVE: 50,
    PriorityTier.FUTURE: 25,
}


class WorkflowStatus(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {
        WorkflowStatus.COMPLETED,
        WorkflowStatus.FAILED,
        WorkflowStatus.CANCELLED,
        WorkflowStatus.STOPPED,
    }
)


class CheckpointStatus(str, Enum):
    PENDING = "pending"
    PASSED = "passed"
    FAILED = "failed"


class ValidationMode(str, Enum):
    AUTOMATIC = "automatic"
    CUSTOM = "custom"


# =============================================================================
# TASK SPECIFICATION
# =============================================================================


@dataclass(frozen=True)
class TaskSpecification:
    """
    Caller-supplied description of the work.

    Valid iff title, description and at least one requirement are present.
    Sequences are stored as tuples and constraints as a read-only mapping,
    so consumers can only read it once attached to an instance.
    """

    title: str
    description: str
    requirements: tuple[str, ...] = ()
    constraints: Mapping[str, Any] = field(default_factory=dict)
    acceptance_criteria: tuple[str, ...] = ()
    scope: str = ""
    priority: str = ""
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "requirements", tuple(self.requirements))
        object.__setattr__(
            self, "acceptance_criteria", tuple(self.acceptance_criteria)
        )
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(
            self, "constraints", MappingProxyType(dict(self.constraints))
        )

    def problems(self) -> list[str]:
        """List what makes this specification invalid (empty when valid)."""
        found = []
        if not (self.title or "").strip():
            found.append("Task specification requires a title")
        if not (self.description or "").strip():
            found.append("Task specification requires a description")
        if not any((r or "").strip() for r in self.requirements):
            found.append("Task specification requires at least one requirement")
        return found

    def is_valid(self) -> bool:
        return not self.problems()

    @property
    def text(self) -> str:
        """Lower-cased title and description, used for classification."""
        return f"{self.title} {self.description}".lower()


# =============================================================================
# EXECUTION CONTRACT
# =============================================================================


class CancellationToken:
    """
    Cooperative cancellation signal threaded through executors and validators.

    The engine never interrupts an executor in flight. Long-running executors
    must poll ``cancelled`` (or call ``raise_if_cancelled``) themselves.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        self._cancelled = True
        self._reason = reason

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise WorkflowCancelled(self._reason)


@dataclass(frozen=True)
class ExecutionContext:
    """Per-call context handed to step executors."""

    workflow_id: str
    attempt: int
    token: CancellationToken
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StepOutcome:
    """Normalized executor result."""

    success: bool
    output: Any = None
    error: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> "StepOutcome":
        """
        Normalize whatever an executor returned.

        ``None`` counts as failure; booleans map to success; mappings are
        read for ``success``/``output``/``error`` keys (missing ``success``
        means success); anything else is treated as a successful output.
        """
        if isinstance(raw, StepOutcome):
            return raw
        if raw is None:
            return cls(success=False, error="Executor returned no outcome")
        if isinstance(raw, bool):
            return cls(success=raw)
        if isinstance(raw, Mapping):
            return cls(
                success=raw.get("success", True) is not False,
                output=raw.get("output"),
                error=raw.get("error"),
            )
        return cls(success=True, output=raw)


# =============================================================================
# STEPS AND CHECKPOINTS
# =============================================================================


@dataclass
class Step:
    """
    A unit of work in a workflow instance.

    Created during decomposition or template instantiation; mutated only by
    the Execution Engine during a run.
    """

    id: str
    name: str
    type: StepType = StepType.CUSTOM
    dependencies: list[str] = field(default_factory=list)
    estimated_effort: float = 2.0
    risk_level: RiskLevel = RiskLevel.MEDIUM
    required: bool = True
    user_facing: bool = False
    description: str = ""
    status: StepStatus = StepStatus.PENDING
    retry_count: int = 0
    implementation: StepExecutor | None = None
    fallback: StepExecutor | None = None
    executor: StepExecutor | str | None = None  # callable or registry name
    validation: tuple = ()  # typed criteria for verification/testing steps
    priority: PriorityTier | None = None
    mvp_level: int | None = None
    weight: int | None = None
    skip_reason: str = ""
    error: str = ""
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def skip(self, reason: str) -> None:
        self.status = StepStatus.SKIPPED
        self.skip_reason = reason


@dataclass
class ValidationCheckpoint:
    """
    A validation gate bound to a step index.

    ``criteria`` is a callable, a single typed criterion, or an ordered
    tuple of typed criteria. The latest result is cached on the checkpoint
    until the next evaluation.
    """

    id: str
    name: str
    criteria: CriteriaSpec = ()
    description: str = ""
    step_index: int | None = None
    mode: ValidationMode = ValidationMode.AUTOMATIC
    timeout: float = 30.0  # seconds
    required: bool = True
    status: CheckpointStatus = CheckpointStatus.PENDING
    last_result: "ValidationResult | None" = None
    last_validated_at: datetime | None = None


@dataclass(frozen=True)
class ErrorEntry:
    """Single entry in a workflow error log."""

    timestamp: str  # ISO 8601
    step_index: int
    message: str
    step_id: str | None = None


# =============================================================================
# VALIDATION RESULTS
# =============================================================================


@dataclass(frozen=True)
class CriterionResult:
    """Outcome of evaluating one criterion."""

    success: bool
    type: str
    message: str = ""
    details: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationSummary:
    """Counts over criterion results; independent of the overall success flag."""

    total: int
    passed: int
    failed: int
    pass_rate: float
    details: tuple[CriterionResult, ...] = ()

    @classmethod
    def of(cls, results: tuple[CriterionResult, ...]) -> "ValidationSummary":
        passed = sum(1 for r in results if r.success)
        total = len(results)
        return cls(
            total=total,
            passed=passed,
            failed=total - passed,
            pass_rate=(passed / total * 100) if total else 0.0,
            details=results,
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of one checkpoint evaluation."""

    success: bool
    results: tuple[CriterionResult, ...]
    summary: ValidationSummary
    timestamp: str
    checkpoint_id: str = ""
    checkpoint_name: str = ""
    error: str | None = None
    timed_out: bool = False
    duration: float = 0.0


# =============================================================================
# COMPLETION CRITERIA AND REPORTS
# =============================================================================


@dataclass(frozen=True)
class QualityGate:
    name: str
    validator: CriterionValidator


@dataclass(frozen=True)
class Deliverable:
    id: str
    validator: CriterionValidator
    description: str = ""


@dataclass(frozen=True)
class CompletionCriteria:
    """
    Criteria evaluated at finalization.

    Requirements may be plain strings (recorded as met) or validators that
    must pass. Quality gates and deliverables are named validators.
    """

    requirements: tuple[str | CriterionValidator, ...] = ()
    quality_gates: tuple[QualityGate, ...] = ()
    deliverables: tuple[Deliverable, ...] = ()


@dataclass(frozen=True)
class ValidationCriteria:
    """Extra checkpoints and completion criteria supplied at workflow creation."""

    checkpoints: tuple[ValidationCheckpoint, ...] = ()
    completion_criteria: CompletionCriteria | None = None


@dataclass(frozen=True)
class CompletionEvaluation:
    met: bool
    requirements_met: tuple[str, ...] = ()
    unmet_requirements: tuple[str, ...] = ()
    quality_gates_passed: tuple[str, ...] = ()
    quality_gates_failed: tuple[str, ...] = ()
    deliverables_completed: tuple[str, ...] = ()
    deliverables_missing: tuple[str, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class QualityMetrics:
    completion_rate: float
    error_rate: float
    checkpoint_pass_rate: float
    average_step_duration: float
    quality_score: float  # bounded 0..100


@dataclass(frozen=True)
class CompletionReport:
    """Immutable snapshot taken when a workflow instance finalizes."""

    workflow_id: str
    status: WorkflowStatus
    success: bool
    duration_seconds: float
    paused_seconds: float
    total_steps: int
    completed_steps: int
    skipped_steps: int
    failed_steps: int
    error_count: int
    errors: tuple[ErrorEntry, ...]
    evaluation: CompletionEvaluation
    quality: QualityMetrics
    template_name: str | None = None
    started_at: str | None = None
    ended_at: str | None = None


@dataclass(frozen=True)
class RecoveryOption:
    """A workflow-level recovery option offered for FAILED instances."""

    type: str
    description: str
    risk_level: RiskLevel


# =============================================================================
# WORKFLOW INSTANCE
# =============================================================================


@dataclass
class WorkflowInstance:
    """
    A running (or runnable) workflow.

    Created by the orchestrator; mutated by the Execution Engine while
    RUNNING; terminal once COMPLETED, FAILED, CANCELLED or STOPPED.
    """

    id: str
    task_spec: TaskSpecification
    steps: list[Step] = field(default_factory=list)
    checkpoints: dict[str, ValidationCheckpoint] = field(default_factory=dict)
    template_name: str | None = None
    current_step: int = 0
    status: WorkflowStatus = WorkflowStatus.CREATED
    results: dict[str, Any] = field(default_factory=dict)
    errors: list[ErrorEntry] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    completion_criteria: CompletionCriteria | None = None
    decomposition: Any = None  # Decomposition, for from-scratch workflows
    options: dict[str, Any] = field(default_factory=dict)
    tracking_id: str | None = None
    pause_reason: str = ""
    paused_at: datetime | None = None
    paused_seconds: float = 0.0
    cancel_reason: str = ""
    rollback_count: int = 0

    @property
    def progress(self) -> float:
        """Percent of the step list the cursor has passed."""
        if not self.steps:
            return 100.0
        return min(self.current_step, len(self.steps)) / len(self.steps) * 100

    def is_complete(self) -> bool:
        return (
            self.status is WorkflowStatus.COMPLETED
            or self.current_step >= len(self.steps)
        )

    def current(self) -> Step | None:
        if 0 <= self.current_step < len(self.steps):
            return self.steps[self.current_step]
        return None

    def step_by_id(self, step_id: str) -> Step | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def index_of(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return -1

    def checkpoints_for(self, step_index: int) -> list[ValidationCheckpoint]:
        return [
            cp for cp in self.checkpoints.values() if cp.step_index == step_index
        ]

    def add_error(self, message: str, step: Step | None = None) -> ErrorEntry:
        entry = ErrorEntry(
            timestamp=utc_now().isoformat(),
            step_index=self.current_step,
            message=message,
            step_id=step.id if step else None,
        )
        self.errors.append(entry)
        return entry
