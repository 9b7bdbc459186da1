"""
Workflow orchestration facade.

Composes the Task Decomposer, Dependency Tracker, Validation Controller,
Template Manager and Execution Engine into the public workflow API:
create, execute, validate, pause/resume/cancel, recover, export/import.
"""

import dataclasses
import inspect
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from mvpflow.application.configuration import (
    export_workflow_configuration,
    import_workflow_configuration,
)
from mvpflow.application.decomposer import (
    DecompositionOptions,
    TaskDecomposer,
    validate_task_spec,
)
from mvpflow.application.dependency_tracker import DependencyTracker
from mvpflow.application.engine import (
    CompletionCallback,
    ExecutionEngine,
    ExecutionOptions,
    ExecutorResolver,
)
from mvpflow.application.recovery import last_passed_checkpoint
from mvpflow.application.template_manager import TemplateManager
from mvpflow.application.validation_controller import (
    ValidationContext,
    ValidationController,
)
from mvpflow.domain.decomposition import execution_order
from mvpflow.domain.exceptions import ConfigurationError
from mvpflow.domain.interfaces import WorkflowEventStoreInterface
from mvpflow.domain.models import (
    CheckpointStatus,
    CompletionReport,
    RecoveryOption,
    RiskLevel,
    Step,
    StepExecutor,
    StepStatus,
    TaskSpecification,
    ValidationCriteria,
    ValidationResult,
    ValidationSummary,
    WorkflowInstance,
    WorkflowStatus,
    new_workflow_id,
    utc_now,
)
from mvpflow.domain.templates import TemplateCustomizations

logger = logging.getLogger(__name__)

HISTORY_KEEP = 500
_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


@dataclass(frozen=True)
class OrchestratorConfig:
    """
    Attributes:
        auto_template_threshold: Best suggestion score above which a
            template is picked automatically
        history_limit: Finished workflows remembered
        execution: Default execution options
    """

    auto_template_threshold: float = 0.7
    history_limit: int = 1000
    execution: ExecutionOptions = field(default_factory=ExecutionOptions)


@dataclass(frozen=True)
class CreationOptions:
    """
    Options for creating one workflow.

    Attributes:
        customizations: Applied when a template is instantiated
        decomposition: Used when the workflow is built from scratch
        workflow_id: Explicit id (generated when omitted)
        metadata: Free-form options stored on the instance
    """

    customizations: TemplateCustomizations | None = None
    decomposition: DecompositionOptions | None = None
    workflow_id: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


class WorkflowOrchestrator:
    """Public entry point for creating and running MVP-first workflows."""

    def __init__(
        self,
        decomposer: TaskDecomposer,
        tracker: DependencyTracker,
        validation: ValidationController,
        templates: TemplateManager,
        executor: StepExecutor | None = None,
        executor_resolver: ExecutorResolver | None = None,
        event_store: WorkflowEventStoreInterface | None = None,
        config: OrchestratorConfig | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> None:
        """
        Args:
            decomposer: Builds step graphs for workflows without a template
            tracker: Shared dependency tracker
            validation: Shared validation controller
            templates: Template manager (suggestions and usage statistics)
            executor: Default step executor
            executor_resolver: Maps executor names to callables
            event_store: Receives the execution trace
            config: Orchestrator configuration
            on_complete: Extra callback for every Completion Report
        """
        self._decomposer = decomposer
        self._tracker = tracker
        self._validation = validation
        self._templates = templates
        self._config = config or OrchestratorConfig()
        self._on_complete = on_complete
        self._engine = ExecutionEngine(
            validation=validation,
            tracker=tracker,
            executor=executor,
            executor_resolver=executor_resolver,
            event_store=event_store,
            on_complete=self._workflow_finished,
            history_limit=self._config.history_limit,
        )
        self._lock = threading.Lock()
        self._workflows: dict[str, WorkflowInstance] = {}
        self._history: list[dict[str, Any]] = []
        self._started = time.monotonic()
        self._stats = {
            "workflows_created": 0,
            "workflows_completed": 0,
            "successful_completions": 0,
            "failed_workflows": 0,
            "templates_used": 0,
            "custom_workflows": 0,
        }

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    @property
    def templates(self) -> TemplateManager:
        return self._templates

    @property
    def decomposer(self) -> TaskDecomposer:
        return self._decomposer

    @property
    def validation(self) -> ValidationController:
        return self._validation

    @property
    def tracker(self) -> DependencyTracker:
        return self._tracker

    # =========================================================================
    # CREATION
    # =========================================================================

    def create_workflow(
        self,
        task_spec: TaskSpecification,
        template_name: str | None = None,
        validation_criteria: ValidationCriteria | None = None,
        options: CreationOptions | None = None,
    ) -> WorkflowInstance:
        """
        Create a workflow instance for a task.

        Uses the named template; otherwise the best suggestion when it
        scores above the auto-template threshold; otherwise decomposes the
        task from scratch.

        Raises:
            ConfigurationError: If the task specification, template or
                validation criteria are invalid
        """
        validate_task_spec(task_spec)
        options = options or CreationOptions()
        logger.info("Creating workflow for task: %s", task_spec.title)

        if template_name is None:
            suggestions = self._templates.suggest(task_spec)
            if suggestions and suggestions[0].score > self._config.auto_template_threshold:
                template_name = suggestions[0].name
                logger.info(
                    "Auto-selected template: %s (score: %.2f)",
                    template_name,
                    suggestions[0].score,
                )

        if template_name is not None:
            customizations = options.customizations or TemplateCustomizations()
            if options.workflow_id and not customizations.workflow_id:
                customizations = dataclasses.replace(
                    customizations, workflow_id=options.workflow_id
                )
            instance = self._templates.instantiate(template_name, task_spec, customizations)
        else:
            instance = self._create_from_scratch(task_spec, options)

        if validation_criteria is not None:
            self._integrate_validation_criteria(instance, validation_criteria)
        instance.options = dict(options.metadata)
        self._tracker.track(instance)

        with self._lock:
            self._workflows[instance.id] = instance
            self._stats["workflows_created"] += 1
            self._stats["templates_used" if instance.template_name else "custom_workflows"] += 1
        logger.info(
            "Workflow created successfully: %s with %d steps",
            instance.id,
            len(instance.steps),
        )
        return instance

    def _create_from_scratch(
        self, task_spec: TaskSpecification, options: CreationOptions
    ) -> WorkflowInstance:
        logger.info("Creating custom workflow for: %s", task_spec.title)
        decomposition = self._decomposer.decompose(task_spec, options.decomposition)
        steps = execution_order(decomposition.steps)
        instance = WorkflowInstance(
            id=options.workflow_id or new_workflow_id(),
            task_spec=task_spec,
            steps=steps,
            decomposition=decomposition,
        )
        self._add_default_checkpoints(instance)
        return instance

    def _add_default_checkpoints(self, instance: WorkflowInstance) -> None:
        total = len(instance.steps)
        core = set(instance.decomposition.mvp_core.step_ids)
        core_indexes = [i for i, step in enumerate(instance.steps) if step.id in core]
        if core_indexes:
            index = max(core_indexes)
            # Progress when the cursor has just passed the last core step
            threshold = (index + 1) / total * 100
            checkpoint = self._validation.create_checkpoint_from_template(
                "basic_completion",
                id="mvp_core_complete",
                name="MVP Core Completion",
                description="Validate MVP core functionality is complete",
                step_index=index,
                threshold=threshold,
            )
            instance.checkpoints[checkpoint.id] = checkpoint

        checkpoint = self._validation.create_checkpoint_from_template(
            "basic_completion",
            id="workflow_complete",
            name="Workflow Completion",
            description="Validate complete workflow execution",
            step_index=total - 1,
        )
        instance.checkpoints[checkpoint.id] = checkpoint

    def _integrate_validation_criteria(
        self, instance: WorkflowInstance, criteria: ValidationCriteria
    ) -> None:
        for checkpoint in criteria.checkpoints:
            if checkpoint.step_index is not None and not (
                0 <= checkpoint.step_index < len(instance.steps)
            ):
                raise ConfigurationError(
                    f"Checkpoint '{checkpoint.id}' bound to step index "
                    f"{checkpoint.step_index} outside 0..{len(instance.steps) - 1}"
                )
            instance.checkpoints[checkpoint.id] = dataclasses.replace(checkpoint)
        if criteria.completion_criteria is not None:
            instance.completion_criteria = criteria.completion_criteria

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute_workflow(
        self,
        instance: WorkflowInstance,
        options: ExecutionOptions | None = None,
    ) -> CompletionReport:
        """Run a workflow instance to completion and return its report."""
        with self._lock:
            self._workflows.setdefault(instance.id, instance)
        if not self._tracker.is_tracking(instance.id):
            self._tracker.track(instance)
        logger.info("Starting workflow execution: %s", instance.id)
        return await self._engine.execute(instance, options or self._config.execution)

    async def _workflow_finished(
        self, instance: WorkflowInstance, report: CompletionReport
    ) -> None:
        with self._lock:
            self._stats["workflows_completed"] += 1
            self._stats[
                "successful_completions" if report.success else "failed_workflows"
            ] += 1
            self._history.append(
                {
                    "workflow_id": instance.id,
                    "status": report.status.value,
                    "success": report.success,
                    "template": instance.template_name,
                    "completed_at": instance.ended_at,
                }
            )
            if len(self._history) > self._config.history_limit:
                self._history = self._history[-HISTORY_KEEP:]

        name = instance.template_name
        if name and self._templates.exists(name):
            if report.success:
                self._templates.record_completion(name, report.duration_seconds)
            else:
                reason = report.errors[-1].message if report.errors else report.status.value
                self._templates.record_failure(name, reason)

        if self._on_complete is not None:
            result = self._on_complete(instance, report)
            if inspect.isawaitable(result):
                await result

    async def validate_checkpoint(
        self,
        workflow_id: str,
        checkpoint_id: str,
        context: ValidationContext | None = None,
    ) -> ValidationResult:
        """
        Evaluate one checkpoint on demand.

        Unknown checkpoints produce a failed result rather than an error.

        Raises:
            ConfigurationError: If the workflow is unknown
        """
        instance = self.get_workflow(workflow_id)
        checkpoint = instance.checkpoints.get(checkpoint_id)
        if checkpoint is None:
            return ValidationResult(
                success=False,
                results=(),
                summary=ValidationSummary.of(()),
                timestamp=utc_now().isoformat(),
                checkpoint_id=checkpoint_id,
                error=f"Checkpoint not found: {checkpoint_id}",
            )
        return await self._validation.execute_checkpoint(checkpoint, instance, context)

    # =========================================================================
    # CONTROL
    # =========================================================================

    def get_workflow(self, workflow_id: str) -> WorkflowInstance:
        """
        Raises:
            ConfigurationError: If the workflow is unknown
        """
        with self._lock:
            instance = self._workflows.get(workflow_id)
        if instance is None:
            raise ConfigurationError(f"Workflow not found: {workflow_id}")
        return instance

    def pause(self, workflow_id: str, reason: str = "") -> bool:
        return self._engine.pause(workflow_id, reason)

    def resume(self, workflow_id: str) -> bool:
        return self._engine.resume(workflow_id)

    def cancel(self, workflow_id: str, reason: str = "") -> bool:
        """Cancel a workflow whether or not it is currently executing."""
        if self._engine.cancel(workflow_id, reason):
            return True
        with self._lock:
            instance = self._workflows.get(workflow_id)
        if instance is None or instance.status.is_terminal:
            return False
        instance.status = WorkflowStatus.CANCELLED
        instance.cancel_reason = reason
        instance.ended_at = utc_now()
        logger.info("Workflow cancelled: %s - %s", workflow_id, reason)
        return True

    def get_workflow_status(self, workflow_id: str) -> dict[str, Any] | None:
        status = self._engine.get_workflow_status(workflow_id)
        with self._lock:
            instance = self._workflows.get(workflow_id)
        if instance is None:
            return status
        if status is None:
            status = {
                "id": instance.id,
                "status": instance.status.value,
                "progress": instance.progress,
                "current_step": instance.current_step,
                "total_steps": len(instance.steps),
                "errors": len(instance.errors),
                "results": len(instance.results),
            }
        status["template"] = instance.template_name
        dependencies = self._tracker.get_dependency_status(workflow_id)
        if dependencies is not None:
            status["ready_steps"] = list(dependencies.ready)
            status["blocked_steps"] = [b.step_id for b in dependencies.blocked]
        return status

    # =========================================================================
    # WORKFLOW RECOVERY
    # =========================================================================

    def get_workflow_recovery_options(self, workflow_id: str) -> list[RecoveryOption]:
        """
        Recovery options for a FAILED workflow, lowest risk first.

        Returns an empty list for unknown or non-failed workflows.
        """
        with self._lock:
            instance = self._workflows.get(workflow_id)
        if instance is None or instance.status is not WorkflowStatus.FAILED:
            return []

        options = []
        if instance.current_step > 0:
            options.append(
                RecoveryOption(
                    type="resume_from_current",
                    description="Resume from current failed step",
                    risk_level=RiskLevel.MEDIUM,
                )
            )
            checkpoint = last_passed_checkpoint(instance)
            if checkpoint is not None:
                options.append(
                    RecoveryOption(
                        type="rollback_to_checkpoint",
                        description=f"Rollback to checkpoint: {checkpoint.name}",
                        risk_level=RiskLevel.LOW,
                    )
                )
        step = instance.current()
        if step is not None and step.fallback is not None:
            options.append(
                RecoveryOption(
                    type="use_fallback",
                    description="Use fallback approach for current step",
                    risk_level=RiskLevel.LOW,
                )
            )
        if instance.errors and instance.errors[-1].step_id is not None:
            options.append(
                RecoveryOption(
                    type="skip_failed_step",
                    description="Skip failed step and continue (may leave functionality incomplete)",
                    risk_level=RiskLevel.HIGH,
                )
            )
        return sorted(options, key=lambda o: _RISK_RANK[o.risk_level])

    def attempt_workflow_recovery(
        self,
        workflow_id: str,
        recovery_type: str,
        options: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Apply a recovery option to a FAILED workflow.

        On success the instance is left PAUSED; call ``execute_workflow``
        again to continue. The error log is kept.

        Args:
            workflow_id: The failed workflow
            recovery_type: One of the types offered by
                ``get_workflow_recovery_options``
            options: ``checkpoint_id`` selects the rollback target

        Returns:
            Whether the recovery was applied
        """
        options = options or {}
        with self._lock:
            instance = self._workflows.get(workflow_id)
        if instance is None or instance.status is not WorkflowStatus.FAILED:
            return False
        logger.info(
            "Attempting workflow recovery: %s using %s", workflow_id, recovery_type
        )
        step = instance.current()

        if recovery_type == "resume_from_current":
            if step is None:
                return False
            step.retry_count = 0
            self._reset_step(instance, step)
        elif recovery_type == "rollback_to_checkpoint":
            checkpoint_id = options.get("checkpoint_id")
            checkpoint = (
                instance.checkpoints.get(checkpoint_id)
                if checkpoint_id
                else last_passed_checkpoint(instance)
            )
            if checkpoint is None or checkpoint.step_index is None:
                return False
            for rolled_back in instance.steps[checkpoint.step_index :]:
                if rolled_back.status is not StepStatus.SKIPPED:
                    self._reset_step(instance, rolled_back)
            for cp in instance.checkpoints.values():
                if cp.step_index is not None and cp.step_index >= checkpoint.step_index:
                    cp.status = CheckpointStatus.PENDING
            instance.current_step = checkpoint.step_index
        elif recovery_type == "use_fallback":
            if step is None or step.fallback is None:
                return False
            step.implementation = step.fallback
            step.executor = None
            step.fallback = None
            self._reset_step(instance, step)
        elif recovery_type == "skip_failed_step":
            if step is None:
                return False
            step.skip("Recovery skip")
            self._tracker.update_step_status(instance.id, step.id, StepStatus.SKIPPED)
            instance.current_step += 1
        else:
            logger.warning("Unknown recovery type: %s", recovery_type)
            return False

        instance.status = WorkflowStatus.PAUSED
        instance.pause_reason = f"Recovered with {recovery_type}"
        instance.paused_at = utc_now()
        instance.ended_at = None
        return True

    def _reset_step(self, instance: WorkflowInstance, step: Step) -> None:
        step.status = StepStatus.PENDING
        step.error = ""
        self._tracker.update_step_status(instance.id, step.id, StepStatus.PENDING)

    # =========================================================================
    # EXPORT / IMPORT
    # =========================================================================

    def export_workflow_configuration(self, workflow_id: str) -> dict[str, Any] | None:
        with self._lock:
            instance = self._workflows.get(workflow_id)
        if instance is None:
            return None
        return export_workflow_configuration(instance)

    def import_workflow_configuration(self, document: Mapping[str, Any]) -> WorkflowInstance:
        """
        Raises:
            ConfigurationError: If the document is invalid, tampered with,
                or its workflow id is already in use
        """
        instance = import_workflow_configuration(document)
        with self._lock:
            if instance.id in self._workflows:
                raise ConfigurationError(f"Workflow already exists: {instance.id}")
            self._workflows[instance.id] = instance
        self._tracker.track(instance)
        return instance

    # =========================================================================
    # STATISTICS AND HOUSEKEEPING
    # =========================================================================

    def get_system_statistics(self) -> dict[str, Any]:
        with self._lock:
            stats = dict(self._stats)
            workflows = len(self._workflows)
            history = len(self._history)
        created = stats["workflows_created"]
        return {
            "system": {
                **stats,
                "uptime_seconds": time.monotonic() - self._started,
                "known_workflows": workflows,
                "history_size": history,
                "success_rate": (
                    stats["successful_completions"] / created * 100 if created else 0.0
                ),
            },
            "engine": self._engine.get_statistics(),
            "validation": self._validation.get_statistics(),
            "templates": self._templates.get_statistics(),
            "dependencies": self._tracker.get_statistics(),
            "decomposer": self._decomposer.get_statistics(),
        }

    def cleanup(self, max_age: float = 24 * 60 * 60) -> int:
        """
        Forget finished workflows older than ``max_age`` seconds.

        Returns:
            Number of records removed (workflows, history, graphs)
        """
        cutoff = utc_now() - timedelta(seconds=max_age)
        with self._lock:
            before = len(self._history)
            self._history = [
                h for h in self._history
                if h["completed_at"] is None or h["completed_at"] > cutoff
            ]
            cleaned = before - len(self._history)
            stale = [
                workflow_id
                for workflow_id, instance in self._workflows.items()
                if instance.created_at < cutoff and instance.status.is_terminal
            ]
            for workflow_id in stale:
                del self._workflows[workflow_id]
        for workflow_id in stale:
            self._tracker.forget(workflow_id)
        cleaned += len(stale) + self._tracker.cleanup(max_age)
        if cleaned:
            logger.info("Cleaned up %d old workflow records", cleaned)
        return cleaned
