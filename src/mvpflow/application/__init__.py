"""
Application layer for the workflow engine.

Contains the services that coordinate domain objects: decomposition,
templates, dependency tracking, validation, execution and orchestration.
"""

from mvpflow.application.configuration import (
    export_workflow_configuration,
    import_workflow_configuration,
)
from mvpflow.application.decomposer import DecompositionOptions, TaskDecomposer
from mvpflow.application.dependency_tracker import (
    DependencyTracker,
    ResolutionContext,
    ResolutionStrategy,
)
from mvpflow.application.engine import ExecutionEngine, ExecutionOptions
from mvpflow.application.orchestrator import (
    CreationOptions,
    OrchestratorConfig,
    WorkflowOrchestrator,
)
from mvpflow.application.recovery import RecoveryStrategy, StepRecovery
from mvpflow.application.template_manager import TemplateManager
from mvpflow.application.validation_controller import (
    ValidationContext,
    ValidationController,
)

__all__ = [
    "CreationOptions",
    "DecompositionOptions",
    "DependencyTracker",
    "ExecutionEngine",
    "ExecutionOptions",
    "OrchestratorConfig",
    "RecoveryStrategy",
    "ResolutionContext",
    "ResolutionStrategy",
    "StepRecovery",
    "TaskDecomposer",
    "TemplateManager",
    "ValidationContext",
    "ValidationController",
    "WorkflowOrchestrator",
    "export_workflow_configuration",
    "import_workflow_configuration",
]
