"""
Execution Engine.

Drives a workflow instance step by step: dependency gate, dispatch by step
type, checkpoint validation, recovery on failure, and finalization into a
Completion Report.

One instance runs strictly sequentially. Several instances may run
concurrently on the same event loop against the same engine.
"""

import asyncio
import dataclasses
import inspect
import logging
import threading
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from mvpflow.application.dependency_tracker import DependencyTracker, ResolutionContext
from mvpflow.application.recovery import RecoveryStrategy, StepRecovery
from mvpflow.application.validation_controller import (
    ValidationContext,
    ValidationController,
)
from mvpflow.application.workflow_event_emitter import WorkflowEventEmitter
from mvpflow.domain.exceptions import (
    DependencyError,
    ExecutionError,
    ValidationError,
    WorkflowCancelled,
    WorkflowError,
)
from mvpflow.domain.interfaces import WorkflowEventStoreInterface
from mvpflow.domain.models import (
    CancellationToken,
    CheckpointStatus,
    CompletionEvaluation,
    CompletionReport,
    ExecutionContext,
    QualityMetrics,
    Step,
    StepExecutor,
    StepOutcome,
    StepStatus,
    StepType,
    WorkflowInstance,
    WorkflowStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 1000
HISTORY_KEEP = 500

ExecutorResolver = Callable[[str], StepExecutor]
CompletionCallback = Callable[[WorkflowInstance, CompletionReport], Any]


@dataclass(frozen=True)
class ExecutionOptions:
    """
    Options for one workflow execution.

    Attributes:
        max_retries: Retry budget per step
        max_rollbacks: Checkpoint rollbacks allowed per instance
        validate_checkpoints: Evaluate checkpoints bound to finished steps
        track_dependencies: Gate steps on the dependency tracker
        enable_recovery: Run recovery strategies after step failures
        resolution: Limits for resolving blocking dependencies
        extra: Free-form options handed to executors
    """

    max_retries: int = 3
    max_rollbacks: int = 1
    validate_checkpoints: bool = True
    track_dependencies: bool = True
    enable_recovery: bool = True
    resolution: ResolutionContext = field(default_factory=ResolutionContext)
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class _ActiveRun:
    instance: WorkflowInstance
    resume: asyncio.Event
    token: CancellationToken
    emitter: WorkflowEventEmitter | None

    def emit(self, event: str, *args: Any) -> None:
        if self.emitter is not None:
            getattr(self.emitter, event)(*args)


# =============================================================================
# REPORTING
# =============================================================================


def quality_metrics(
    instance: WorkflowInstance, evaluation: CompletionEvaluation
) -> QualityMetrics:
    """Completion, error and checkpoint rates plus a bounded quality score."""
    total = len(instance.steps)
    completed = sum(1 for s in instance.steps if s.status is StepStatus.COMPLETED)
    checkpoints = list(instance.checkpoints.values())
    passed = sum(1 for cp in checkpoints if cp.status is CheckpointStatus.PASSED)
    durations = [s.duration for s in instance.steps if s.duration is not None]

    score = 100.0 - len(instance.errors) * 10 + instance.progress / 100 * 20
    if evaluation.quality_gates_passed:
        score += 15
    return QualityMetrics(
        completion_rate=(completed / total * 100) if total else 100.0,
        error_rate=(len(instance.errors) / total * 100) if total else 0.0,
        checkpoint_pass_rate=(passed / len(checkpoints) * 100) if checkpoints else 100.0,
        average_step_duration=(sum(durations) / len(durations)) if durations else 0.0,
        quality_score=max(0.0, min(100.0, score)),
    )


def build_completion_report(
    instance: WorkflowInstance, evaluation: CompletionEvaluation
) -> CompletionReport:
    """Snapshot a finalized instance."""
    duration = 0.0
    if instance.started_at and instance.ended_at:
        duration = (instance.ended_at - instance.started_at).total_seconds()
    counts = Counter(step.status for step in instance.steps)
    return CompletionReport(
        workflow_id=instance.id,
        status=instance.status,
        success=(
            evaluation.met
            and instance.status is WorkflowStatus.COMPLETED
            and not instance.errors
        ),
        duration_seconds=duration,
        paused_seconds=instance.paused_seconds,
        total_steps=len(instance.steps),
        completed_steps=counts[StepStatus.COMPLETED],
        skipped_steps=counts[StepStatus.SKIPPED],
        failed_steps=counts[StepStatus.FAILED],
        error_count=len(instance.errors),
        errors=tuple(instance.errors),
        evaluation=evaluation,
        quality=quality_metrics(instance, evaluation),
        template_name=instance.template_name,
        started_at=instance.started_at.isoformat() if instance.started_at else None,
        ended_at=instance.ended_at.isoformat() if instance.ended_at else None,
    )


# =============================================================================
# ENGINE
# =============================================================================


class ExecutionEngine:
    """
    Runs workflow instances.

    Executors are resolved per step from ``step.executor`` (a callable, or a
    name looked up through ``executor_resolver``), then
    ``step.implementation``, then the engine-wide default ``executor``.
    Executors are called as ``executor(instance, step, context)`` and may be
    sync or async.
    """

    def __init__(
        self,
        validation: ValidationController,
        tracker: DependencyTracker | None = None,
        executor: StepExecutor | None = None,
        executor_resolver: ExecutorResolver | None = None,
        event_store: WorkflowEventStoreInterface | None = None,
        on_complete: CompletionCallback | None = None,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        """
        Args:
            validation: Evaluates checkpoints and completion criteria
            tracker: Dependency tracker used for the dependency gate
            executor: Default executor for steps without their own
            executor_resolver: Maps executor names to callables
            event_store: Receives the execution trace
            on_complete: Called with every Completion Report
            history_limit: Completion Reports kept in memory
        """
        self._validation = validation
        self._tracker = tracker
        self._executor = executor
        self._resolver = executor_resolver
        self._event_store = event_store
        self._on_complete = on_complete
        self._history_limit = history_limit
        self._recovery = StepRecovery(tracker)
        self._lock = threading.Lock()
        self._active: dict[str, _ActiveRun] = {}
        self._history: list[CompletionReport] = []
        self._stats = {
            "total_executed": 0,
            "successful_completions": 0,
            "total_duration": 0.0,
        }
        self._failure_points: Counter[str] = Counter()
        self._dispatch: dict[StepType, Callable[..., Any]] = {
            StepType.IMPLEMENTATION: self._run_executor_step,
            StepType.CUSTOM: self._run_executor_step,
            StepType.VERIFICATION: self._run_verification_step,
            StepType.TESTING: self._run_verification_step,
            StepType.ANALYSIS: self._run_bookkeeping_step,
            StepType.DESIGN: self._run_bookkeeping_step,
            StepType.PLANNING: self._run_bookkeeping_step,
            StepType.INVESTIGATION: self._run_bookkeeping_step,
        }

    # =========================================================================
    # EXECUTION
    # =========================================================================

    async def execute(
        self,
        instance: WorkflowInstance,
        options: ExecutionOptions | None = None,
    ) -> CompletionReport:
        """
        Run a CREATED or PAUSED instance until it finishes or stops.

        Args:
            instance: The workflow instance to run
            options: Execution options

        Returns:
            The Completion Report

        Raises:
            WorkflowError: If the instance is already executing or is in a
                terminal state
        """
        options = options or ExecutionOptions()
        run = self._start(instance)
        try:
            if (
                options.track_dependencies
                and self._tracker is not None
                and not self._tracker.is_tracking(instance.id)
            ):
                self._tracker.track(instance)
            await self._run_loop(run, options)
            return await self._finalize(run)
        finally:
            with self._lock:
                self._active.pop(instance.id, None)

    def _start(self, instance: WorkflowInstance) -> _ActiveRun:
        with self._lock:
            if instance.id in self._active:
                raise WorkflowError(f"Workflow already executing: {instance.id}")
            if instance.status not in (WorkflowStatus.CREATED, WorkflowStatus.PAUSED):
                raise WorkflowError(
                    f"Cannot execute workflow {instance.id} in status {instance.status.value}"
                )
            emitter = (
                WorkflowEventEmitter(self._event_store, instance.id)
                if self._event_store is not None
                else None
            )
            run = _ActiveRun(
                instance=instance,
                resume=asyncio.Event(),
                token=CancellationToken(),
                emitter=emitter,
            )
            run.resume.set()
            self._active[instance.id] = run

        if instance.paused_at is not None:
            instance.paused_seconds += (utc_now() - instance.paused_at).total_seconds()
            instance.paused_at = None
        instance.status = WorkflowStatus.RUNNING
        instance.pause_reason = ""
        if instance.started_at is None:
            instance.started_at = utc_now()
        run.emit("workflow_start", len(instance.steps))
        logger.info(
            "Starting workflow %s (%d steps, cursor %d)",
            instance.id,
            len(instance.steps),
            instance.current_step,
        )
        return run

    async def _run_loop(self, run: _ActiveRun, options: ExecutionOptions) -> None:
        instance = run.instance
        while not instance.is_complete():
            if instance.status is WorkflowStatus.PAUSED:
                logger.info("Workflow %s paused: %s", instance.id, instance.pause_reason)
                await run.resume.wait()
            if instance.status is not WorkflowStatus.RUNNING:
                break

            step = instance.current()
            if step is None:
                break
            if step.status is StepStatus.SKIPPED:
                run.emit("step_skip", step.id, step.skip_reason)
                self._sync(instance, step)
                instance.current_step += 1
                continue

            try:
                await self._execute_step(run, step, options)
            except WorkflowCancelled:
                self._abandon_step(run, step)
                break
            except WorkflowError as exc:
                self._record_failure(run, step, exc)
                if instance.status is WorkflowStatus.PAUSED:
                    # recovery waits until the operator resumes
                    logger.info(
                        "Workflow %s paused with step '%s' failed", instance.id, step.id
                    )
                    await run.resume.wait()
                if instance.status is not WorkflowStatus.RUNNING:
                    break
                if not self._recover(run, step, str(exc), options):
                    instance.status = WorkflowStatus.FAILED
                    logger.error(
                        "Workflow %s failed at step '%s': %s", instance.id, step.id, exc
                    )
                    break

    async def _execute_step(
        self, run: _ActiveRun, step: Step, options: ExecutionOptions
    ) -> None:
        instance = run.instance
        attempt = step.retry_count + 1
        if options.track_dependencies and self._tracker is not None:
            await self._gate_dependencies(instance, step, options.resolution)

        step.status = StepStatus.RUNNING
        step.started_at = utc_now()
        step.ended_at = None
        step.error = ""
        self._sync(instance, step)
        run.emit("step_start", step.id, attempt)
        logger.info(
            "Executing step %d/%d: %s (attempt %d)",
            instance.current_step + 1,
            len(instance.steps),
            step.name,
            attempt,
        )

        outcome = await self._dispatch[step.type](run, step, options, attempt)
        step.ended_at = utc_now()
        if not outcome.success:
            raise ExecutionError(step.id, outcome.error or f"Step failed: {step.name}")

        instance.results[step.id] = outcome.output
        step.status = StepStatus.COMPLETED
        self._sync(instance, step)
        index = instance.current_step
        instance.current_step += 1

        if options.validate_checkpoints:
            try:
                await self._run_checkpoints(run, index)
            except ValidationError:
                instance.current_step = index
                raise
        run.emit("step_pass", step.id, attempt)

    async def _gate_dependencies(
        self, instance: WorkflowInstance, step: Step, resolution: ResolutionContext
    ) -> None:
        """
        Raises:
            DependencyError: If required dependencies stay unresolved
        """
        if not self._tracker.is_tracking(instance.id):
            return
        check = self._tracker.check_step_dependencies(instance.id, step.id)
        if check.error is not None:
            logger.warning("Dependency check skipped for '%s': %s", step.id, check.error)
            return
        if check.all_satisfied:
            return
        report = await self._tracker.resolve_blocking_dependencies(
            instance.id, check.blocking, resolution
        )
        if report.remaining_blocks:
            raise DependencyError(
                step.id, [o.dependency_id for o in report.remaining_blocks]
            )

    async def _run_checkpoints(self, run: _ActiveRun, step_index: int) -> None:
        """
        Raises:
            ValidationError: If a required checkpoint fails
        """
        instance = run.instance
        for checkpoint in instance.checkpoints_for(step_index):
            result = await self._validation.execute_checkpoint(
                checkpoint, instance, ValidationContext(token=run.token)
            )
            summary = f"{result.summary.passed}/{result.summary.total} criteria passed"
            run.emit("checkpoint", checkpoint.id, result.success, result.error or summary)
            if result.success:
                continue
            if checkpoint.required:
                raise ValidationError(
                    f"Required checkpoint failed: {checkpoint.name}", result
                )
            logger.warning(
                "Non-required checkpoint failed: %s (%s)", checkpoint.name, summary
            )

    # =========================================================================
    # STEP DISPATCH
    # =========================================================================

    def _resolve_executor(self, step: Step) -> StepExecutor | None:
        """
        Raises:
            ExecutionError: If a named executor cannot be resolved
        """
        if isinstance(step.executor, str):
            if self._resolver is None:
                raise ExecutionError(
                    step.id, f"No executor resolver configured for '{step.executor}'"
                )
            try:
                return self._resolver(step.executor)
            except KeyError:
                raise ExecutionError(
                    step.id, f"Unknown executor: {step.executor}"
                ) from None
        return step.executor or step.implementation or self._executor

    async def _call_executor(
        self,
        run: _ActiveRun,
        step: Step,
        executor: StepExecutor,
        options: ExecutionOptions,
        attempt: int,
    ) -> StepOutcome:
        context = ExecutionContext(
            workflow_id=run.instance.id,
            attempt=attempt,
            token=run.token,
            options=options.extra,
        )
        try:
            raw = executor(run.instance, step, context)
            if inspect.isawaitable(raw):
                raw = await raw
        except WorkflowCancelled:
            raise
        except Exception as exc:
            raise ExecutionError(
                step.id, f"Step '{step.name}' raised {type(exc).__name__}: {exc}"
            ) from exc
        return StepOutcome.from_raw(raw)

    async def _run_executor_step(
        self, run: _ActiveRun, step: Step, options: ExecutionOptions, attempt: int
    ) -> StepOutcome:
        executor = self._resolve_executor(step)
        if executor is None:
            raise ExecutionError(step.id, f"No executor available for step: {step.name}")
        return await self._call_executor(run, step, executor, options, attempt)

    async def _run_verification_step(
        self, run: _ActiveRun, step: Step, options: ExecutionOptions, attempt: int
    ) -> StepOutcome:
        if step.validation:
            results = await self._validation.evaluate_criteria(
                step.validation, run.instance, ValidationContext(token=run.token)
            )
            failures = [r.message for r in results if not r.success]
            return StepOutcome(
                success=not failures,
                output={"passed": len(results) - len(failures), "total": len(results)},
                error="; ".join(failures) or None,
            )
        return await self._run_bookkeeping_step(run, step, options, attempt)

    async def _run_bookkeeping_step(
        self, run: _ActiveRun, step: Step, options: ExecutionOptions, attempt: int
    ) -> StepOutcome:
        executor = self._resolve_executor(step)
        if executor is None:
            return StepOutcome(success=True)
        return await self._call_executor(run, step, executor, options, attempt)

    # =========================================================================
    # FAILURE AND RECOVERY
    # =========================================================================

    def _record_failure(self, run: _ActiveRun, step: Step, error: WorkflowError) -> None:
        """Mark the step FAILED and log it on the instance and the trace."""
        instance = run.instance
        message = str(error)
        step.status = StepStatus.FAILED
        step.error = message
        step.ended_at = step.ended_at or utc_now()
        self._sync(instance, step)
        instance.add_error(message, step)
        run.emit("step_fail", step.id, step.retry_count + 1, message)
        logger.warning("Step '%s' failed: %s", step.id, message)

    def _abandon_step(self, run: _ActiveRun, step: Step) -> None:
        """Put a step interrupted by cancellation back to PENDING."""
        if step.status is StepStatus.RUNNING:
            step.status = StepStatus.PENDING
            step.started_at = None
            step.ended_at = None
            self._sync(run.instance, step)
        logger.info("Step '%s' abandoned: workflow cancelled", step.id)

    def _recover(
        self,
        run: _ActiveRun,
        step: Step,
        message: str,
        options: ExecutionOptions,
    ) -> bool:
        """Try recovery for a recorded failure. Returns whether it recovered."""
        instance = run.instance
        if not options.enable_recovery:
            return False
        attempt = self._recovery.recover(
            instance,
            step,
            message,
            max_retries=options.max_retries,
            max_rollbacks=options.max_rollbacks,
        )
        if not attempt.recovered:
            return False
        run.emit("recovery", step.id, attempt.strategy.value, attempt.message)
        if attempt.strategy is RecoveryStrategy.SKIP_OPTIONAL:
            run.emit("step_skip", step.id, step.skip_reason)
        return True

    def _sync(self, instance: WorkflowInstance, step: Step) -> None:
        if self._tracker is not None:
            self._tracker.update_step_status(instance.id, step.id, step.status)

    # =========================================================================
    # FINALIZATION
    # =========================================================================

    async def _finalize(self, run: _ActiveRun) -> CompletionReport:
        instance = run.instance
        instance.ended_at = utc_now()
        if instance.paused_at is not None:
            # pause requested during the last step; nothing is left to pause
            instance.paused_seconds += (instance.ended_at - instance.paused_at).total_seconds()
            instance.paused_at = None
        if instance.status in (WorkflowStatus.RUNNING, WorkflowStatus.PAUSED) and (
            instance.is_complete()
        ):
            instance.status = WorkflowStatus.COMPLETED

        evaluation = await self._evaluate_completion(run)
        report = build_completion_report(instance, evaluation)
        self._record(report)
        run.emit(
            "workflow_end",
            instance.status.value,
            f"success={report.success} errors={report.error_count}",
        )
        logger.info(
            "Workflow finalized: %s - Status: %s", instance.id, instance.status.value
        )

        if self._on_complete is not None:
            callback_result = self._on_complete(instance, report)
            if inspect.isawaitable(callback_result):
                await callback_result
        return report

    async def _evaluate_completion(self, run: _ActiveRun) -> CompletionEvaluation:
        instance = run.instance
        met = instance.is_complete() and not instance.errors
        if instance.completion_criteria is None:
            return CompletionEvaluation(met=met)
        evaluation = await self._validation.evaluate_completion_criteria(
            instance.completion_criteria, instance, ValidationContext(token=run.token)
        )
        return dataclasses.replace(evaluation, met=evaluation.met and met)

    def _record(self, report: CompletionReport) -> None:
        with self._lock:
            self._history.append(report)
            if len(self._history) > self._history_limit:
                self._history = self._history[-HISTORY_KEEP:]
            self._stats["total_executed"] += 1
            self._stats["total_duration"] += report.duration_seconds
            if report.success:
                self._stats["successful_completions"] += 1
            elif report.errors:
                self._failure_points[report.errors[-1].step_id or "workflow"] += 1

    # =========================================================================
    # CONTROL
    # =========================================================================

    def _run_for(self, workflow_id: str) -> _ActiveRun | None:
        with self._lock:
            return self._active.get(workflow_id)

    def is_active(self, workflow_id: str) -> bool:
        return self._run_for(workflow_id) is not None

    def pause(self, workflow_id: str, reason: str = "") -> bool:
        """Pause a running workflow before its next step starts."""
        run = self._run_for(workflow_id)
        if run is None or run.instance.status is not WorkflowStatus.RUNNING:
            return False
        run.instance.status = WorkflowStatus.PAUSED
        run.instance.pause_reason = reason
        run.instance.paused_at = utc_now()
        run.resume.clear()
        logger.info("Workflow %s pause requested: %s", workflow_id, reason)
        return True

    def resume(self, workflow_id: str) -> bool:
        run = self._run_for(workflow_id)
        if run is None or run.instance.status is not WorkflowStatus.PAUSED:
            return False
        instance = run.instance
        if instance.paused_at is not None:
            instance.paused_seconds += (utc_now() - instance.paused_at).total_seconds()
            instance.paused_at = None
        instance.status = WorkflowStatus.RUNNING
        instance.pause_reason = ""
        run.resume.set()
        logger.info("Workflow %s resumed", workflow_id)
        return True

    def cancel(self, workflow_id: str, reason: str = "") -> bool:
        """
        Cancel an executing workflow.

        The step in flight is not interrupted; its executor sees the
        cancelled token and the loop exits before the next step.
        """
        run = self._run_for(workflow_id)
        if run is None or run.instance.status.is_terminal:
            return False
        run.instance.status = WorkflowStatus.CANCELLED
        run.instance.cancel_reason = reason
        run.token.cancel(reason)
        run.resume.set()
        logger.info("Workflow %s cancelled: %s", workflow_id, reason)
        return True

    def force_stop(self, workflow_id: str, reason: str = "Forced stop") -> bool:
        run = self._run_for(workflow_id)
        if run is None:
            return False
        run.instance.status = WorkflowStatus.STOPPED
        run.instance.add_error(f"Workflow stopped: {reason}")
        run.token.cancel(reason)
        run.resume.set()
        logger.info("Workflow %s force stopped: %s", workflow_id, reason)
        return True

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_workflow_status(self, workflow_id: str) -> dict[str, Any] | None:
        run = self._run_for(workflow_id)
        if run is None:
            return None
        instance = run.instance
        return {
            "id": instance.id,
            "status": instance.status.value,
            "progress": instance.progress,
            "current_step": instance.current_step,
            "total_steps": len(instance.steps),
            "errors": len(instance.errors),
            "results": len(instance.results),
        }

    def get_history(self) -> list[CompletionReport]:
        with self._lock:
            return list(self._history)

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            total = self._stats["total_executed"]
            successful = self._stats["successful_completions"]
            return {
                "total_executed": total,
                "successful_completions": successful,
                "success_rate": (successful / total * 100) if total else 0.0,
                "average_execution_time": (
                    self._stats["total_duration"] / total if total else 0.0
                ),
                "common_failure_points": dict(self._failure_points),
                "active_workflows": len(self._active),
                "history_size": len(self._history),
            }
