"""
Domain layer for the workflow engine.

Contains core business logic with no external dependencies.
"""

from mvpflow.domain.criteria import (
    CriterionType,
    CustomCriterion,
    FileExists,
    NoErrors,
    ProgressMin,
    ResultContains,
    ResultEquals,
    ResultExists,
    StepCompleted,
    TestPassed,
    UnknownCriterion,
    criterion_from_dict,
)
from mvpflow.domain.exceptions import (
    CheckpointTimeoutError,
    ConfigurationError,
    DependencyError,
    ExecutionError,
    ValidationError,
    WorkflowCancelled,
    WorkflowError,
)
from mvpflow.domain.interfaces import (
    FilesystemProbeInterface,
    TemplateRepositoryInterface,
    TestResultsInterface,
    WorkflowEventStoreInterface,
)
from mvpflow.domain.models import (
    CancellationToken,
    CompletionCriteria,
    CompletionReport,
    Complexity,
    PriorityTier,
    RiskLevel,
    Step,
    StepOutcome,
    StepStatus,
    StepType,
    TaskSpecification,
    TaskType,
    ValidationCheckpoint,
    ValidationCriteria,
    ValidationResult,
    WorkflowInstance,
    WorkflowStatus,
)

__all__ = [
    # Models
    "CancellationToken",
    "CompletionCriteria",
    "CompletionReport",
    "Complexity",
    "PriorityTier",
    "RiskLevel",
    "Step",
    "StepOutcome",
    "StepStatus",
    "StepType",
    "TaskSpecification",
    "TaskType",
    "ValidationCheckpoint",
    "ValidationCriteria",
    "ValidationResult",
    "WorkflowInstance",
    "WorkflowStatus",
    # Criteria
    "CriterionType",
    "CustomCriterion",
    "FileExists",
    "NoErrors",
    "ProgressMin",
    "ResultContains",
    "ResultEquals",
    "ResultExists",
    "StepCompleted",
    "TestPassed",
    "UnknownCriterion",
    "criterion_from_dict",
    # Exceptions
    "CheckpointTimeoutError",
    "ConfigurationError",
    "DependencyError",
    "ExecutionError",
    "ValidationError",
    "WorkflowCancelled",
    "WorkflowError",
    # Interfaces
    "FilesystemProbeInterface",
    "TemplateRepositoryInterface",
    "TestResultsInterface",
    "WorkflowEventStoreInterface",
]
