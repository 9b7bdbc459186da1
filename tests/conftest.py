"""Shared pytest fixtures for mvpflow tests."""

from collections.abc import Iterator

import pytest

from mvpflow.application.decomposer import TaskDecomposer
from mvpflow.application.dependency_tracker import DependencyTracker
from mvpflow.application.engine import ExecutionEngine
from mvpflow.application.orchestrator import WorkflowOrchestrator
from mvpflow.application.template_manager import TemplateManager
from mvpflow.application.validation_controller import ValidationController
from mvpflow.domain.models import (
    Step,
    StepOutcome,
    StepType,
    TaskSpecification,
    WorkflowInstance,
)
from mvpflow.infrastructure.persistence import (
    InMemoryTemplateRepository,
    InMemoryWorkflowEventStore,
)
from mvpflow.infrastructure.probes import MappingTestResults, StaticFilesystemProbe
from mvpflow.infrastructure.registry import ExecutorRegistry


def _succeed(instance, step, context) -> StepOutcome:
    """Executor that always succeeds."""
    return StepOutcome(success=True, output=f"{step.id} done")


@pytest.fixture
def bug_task() -> TaskSpecification:
    """The login-timeout bug used across end-to-end tests."""
    return TaskSpecification(
        title="Fix login timeout",
        description="users get logged out",
        requirements=("reproduce the timeout", "patch the session check"),
    )


@pytest.fixture
def feature_task() -> TaskSpecification:
    return TaskSpecification(
        title="Add user search",
        description="Let administrators search users by name or email",
        requirements=("Search API endpoint", "Search input validation", "Add tests"),
    )


@pytest.fixture
def linear_instance(bug_task: TaskSpecification) -> WorkflowInstance:
    """Three-step chain a -> b -> c with no checkpoints."""
    return WorkflowInstance(
        id="wf-linear",
        task_spec=bug_task,
        steps=[
            Step(id="a", name="Step A", type=StepType.IMPLEMENTATION),
            Step(id="b", name="Step B", type=StepType.IMPLEMENTATION, dependencies=["a"]),
            Step(id="c", name="Step C", type=StepType.IMPLEMENTATION, dependencies=["b"]),
        ],
    )


@pytest.fixture
def filesystem() -> StaticFilesystemProbe:
    return StaticFilesystemProbe({"README.md"})


@pytest.fixture
def probe_results() -> MappingTestResults:
    return MappingTestResults({"unit": "passed", "integration": {"status": "failed"}})


@pytest.fixture
def validation(
    filesystem: StaticFilesystemProbe, probe_results: MappingTestResults
) -> ValidationController:
    return ValidationController(filesystem=filesystem, test_results=probe_results)


@pytest.fixture
def tracker() -> DependencyTracker:
    return DependencyTracker()


@pytest.fixture
def template_manager() -> TemplateManager:
    return TemplateManager(InMemoryTemplateRepository())


@pytest.fixture
def event_store() -> InMemoryWorkflowEventStore:
    return InMemoryWorkflowEventStore()


@pytest.fixture
def engine(
    validation: ValidationController,
    tracker: DependencyTracker,
    event_store: InMemoryWorkflowEventStore,
) -> ExecutionEngine:
    """Engine with an always-succeeding default executor."""
    return ExecutionEngine(
        validation=validation,
        tracker=tracker,
        executor=_succeed,
        event_store=event_store,
    )


@pytest.fixture
def orchestrator(
    validation: ValidationController,
    tracker: DependencyTracker,
    template_manager: TemplateManager,
    event_store: InMemoryWorkflowEventStore,
) -> WorkflowOrchestrator:
    """Orchestrator wired with the always-succeeding executor."""
    return WorkflowOrchestrator(
        decomposer=TaskDecomposer(),
        tracker=tracker,
        validation=validation,
        templates=template_manager,
        executor=_succeed,
        executor_resolver=ExecutorRegistry.get,
        event_store=event_store,
    )


@pytest.fixture
def clean_registry() -> Iterator[None]:
    """Reset the executor registry around a test."""
    ExecutorRegistry.clear()
    yield
    ExecutorRegistry.clear()
