"""Wiring of a ready-to-use orchestrator from the default adapters."""

from pathlib import Path

from mvpflow.application.decomposer import TaskDecomposer
from mvpflow.application.dependency_tracker import DependencyTracker
from mvpflow.application.engine import CompletionCallback
from mvpflow.application.orchestrator import OrchestratorConfig, WorkflowOrchestrator
from mvpflow.application.template_manager import TemplateManager
from mvpflow.application.validation_controller import ValidationController
from mvpflow.domain.interfaces import (
    FilesystemProbeInterface,
    TestResultsInterface,
    WorkflowEventStoreInterface,
)
from mvpflow.domain.models import StepExecutor
from mvpflow.infrastructure.persistence import (
    FilesystemWorkflowEventStore,
    InMemoryTemplateRepository,
    InMemoryWorkflowEventStore,
)
from mvpflow.infrastructure.probes import LocalFilesystemProbe, MappingTestResults
from mvpflow.infrastructure.registry import ExecutorRegistry


def build_orchestrator(
    executor: StepExecutor | str | None = None,
    root: str | Path = ".",
    events_dir: str | Path | None = None,
    event_store: WorkflowEventStoreInterface | None = None,
    filesystem: FilesystemProbeInterface | None = None,
    test_results: TestResultsInterface | None = None,
    config: OrchestratorConfig | None = None,
    on_complete: CompletionCallback | None = None,
) -> WorkflowOrchestrator:
    """
    Build an orchestrator backed by in-memory templates.

    Args:
        executor: Default step executor, or its registry name
        root: Root directory for ``file_exists`` criteria
        events_dir: Write the execution trace as JSONL under this directory
        event_store: Explicit event store (overrides ``events_dir``)
        filesystem: Explicit filesystem probe (overrides ``root``)
        test_results: Source for ``test_passed`` criteria
        config: Orchestrator configuration
        on_complete: Extra callback for every Completion Report

    Returns:
        The wired orchestrator

    Raises:
        KeyError: If ``executor`` names an unregistered executor
    """
    if isinstance(executor, str):
        executor = ExecutorRegistry.get(executor)
    if event_store is None:
        event_store = (
            FilesystemWorkflowEventStore(Path(events_dir))
            if events_dir is not None
            else InMemoryWorkflowEventStore()
        )

    tracker = DependencyTracker()
    return WorkflowOrchestrator(
        decomposer=TaskDecomposer(),
        tracker=tracker,
        validation=ValidationController(
            filesystem=filesystem or LocalFilesystemProbe(root),
            test_results=test_results or MappingTestResults(),
        ),
        templates=TemplateManager(InMemoryTemplateRepository()),
        executor=executor,
        executor_resolver=ExecutorRegistry.get,
        event_store=event_store,
        config=config,
        on_complete=on_complete,
    )
