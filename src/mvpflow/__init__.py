"""
mvpflow: MVP-first workflow orchestration.

Decomposes development tasks into prioritized step graphs, instantiates
reusable workflow templates, tracks step dependencies, runs validation
checkpoints and drives execution with automatic recovery.

Example:
    import asyncio

    from mvpflow import TaskSpecification, build_orchestrator

    orchestrator = build_orchestrator(executor="noop")
    task = TaskSpecification(
        title="Fix login timeout",
        description="Sessions expire after two minutes",
        requirements=("Sessions last 30 minutes",),
    )
    instance = orchestrator.create_workflow(task)
    report = asyncio.run(orchestrator.execute_workflow(instance))
    print(report.status, report.success)
"""

# Application layer (orchestration)
from mvpflow.application import (
    CreationOptions,
    DecompositionOptions,
    DependencyTracker,
    ExecutionEngine,
    ExecutionOptions,
    OrchestratorConfig,
    ResolutionContext,
    TaskDecomposer,
    TemplateManager,
    ValidationController,
    WorkflowOrchestrator,
)

# Domain exceptions
from mvpflow.domain.exceptions import (
    ConfigurationError,
    DependencyError,
    ExecutionError,
    ValidationError,
    WorkflowCancelled,
    WorkflowError,
)

# Domain models (most commonly used)
from mvpflow.domain.models import (
    CancellationToken,
    CompletionCriteria,
    CompletionReport,
    ExecutionContext,
    Step,
    StepOutcome,
    StepStatus,
    StepType,
    TaskSpecification,
    ValidationCheckpoint,
    ValidationCriteria,
    WorkflowInstance,
    WorkflowStatus,
)
from mvpflow.domain.templates import (
    CheckpointTemplate,
    StepTemplate,
    TemplateCustomizations,
    WorkflowTemplate,
)

# Wiring
from mvpflow.factory import build_orchestrator

# Infrastructure (explicit import encouraged for dependency injection)
from mvpflow.infrastructure import (
    ExecutorRegistry,
    InMemoryTemplateRepository,
    InMemoryWorkflowEventStore,
)

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Application
    "CreationOptions",
    "DecompositionOptions",
    "DependencyTracker",
    "ExecutionEngine",
    "ExecutionOptions",
    "OrchestratorConfig",
    "ResolutionContext",
    "TaskDecomposer",
    "TemplateManager",
    "ValidationController",
    "WorkflowOrchestrator",
    "build_orchestrator",
    # Domain models
    "CancellationToken",
    "CompletionCriteria",
    "CompletionReport",
    "ExecutionContext",
    "Step",
    "StepOutcome",
    "StepStatus",
    "StepType",
    "TaskSpecification",
    "ValidationCheckpoint",
    "ValidationCriteria",
    "WorkflowInstance",
    "WorkflowStatus",
    # Templates
    "CheckpointTemplate",
    "StepTemplate",
    "TemplateCustomizations",
    "WorkflowTemplate",
    # Exceptions
    "ConfigurationError",
    "DependencyError",
    "ExecutionError",
    "ValidationError",
    "WorkflowCancelled",
    "WorkflowError",
    # Infrastructure
    "ExecutorRegistry",
    "InMemoryTemplateRepository",
    "InMemoryWorkflowEventStore",
]
