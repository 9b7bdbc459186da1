"""
Validation Controller service.

Evaluates checkpoints against typed criteria under a hard timeout,
evaluates completion criteria at finalization, and keeps validation
history and statistics.
"""

import asyncio
import inspect
import logging
import threading
import time
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from mvpflow.domain.criteria import (
    Criterion,
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
    criterion_type_name,
    normalize_criteria,
)
from mvpflow.domain.exceptions import CheckpointTimeoutError, ConfigurationError
from mvpflow.domain.interfaces import FilesystemProbeInterface, TestResultsInterface
from mvpflow.domain.models import (
    CancellationToken,
    CheckpointStatus,
    CompletionCriteria,
    CompletionEvaluation,
    CriterionResult,
    StepStatus,
    ValidationCheckpoint,
    ValidationMode,
    ValidationResult,
    ValidationSummary,
    WorkflowInstance,
    utc_now,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 1000
HISTORY_KEEP = 500


@dataclass(frozen=True)
class ValidationContext:
    """
    Extra inputs for one checkpoint evaluation.

    Attributes:
        test_results: Named test results (mapping, or list of mappings with
            a ``name`` key); checked before ``instance.results["test_results"]``
        filesystem: Probe overriding the controller's default for this call
        token: Cancellation signal handed on to custom validators
        data: Free-form data for custom validators
    """

    test_results: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None
    filesystem: FilesystemProbeInterface | None = None
    token: CancellationToken | None = None
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CriteriaTemplate:
    """A reusable, parameterized criteria bundle."""

    name: str
    description: str
    build: Callable[[Mapping[str, Any]], tuple[Criterion, ...]]
    mode: ValidationMode = ValidationMode.AUTOMATIC
    timeout: float = 30.0


@dataclass(frozen=True)
class ValidationRecord:
    checkpoint_id: str
    workflow_id: str
    success: bool
    duration: float
    timed_out: bool
    failures: tuple[str, ...]


def _custom_criteria(params: Mapping[str, Any]) -> tuple[Criterion, ...]:
    validator = params.get("validator")
    if not callable(validator):
        raise ConfigurationError("custom_validation requires a 'validator' callable")
    return (
        CustomCriterion(
            validator=validator,
            name=params.get("description", "Custom validation check"),
        ),
    )


BUILTIN_CRITERIA_TEMPLATES = (
    CriteriaTemplate(
        name="basic_completion",
        description="Validates basic task completion criteria",
        timeout=10.0,
        build=lambda p: (
            NoErrors(max_allowed=p.get("max_allowed", 0)),
            ProgressMin(threshold=p.get("threshold", 100)),
        ),
    ),
    CriteriaTemplate(
        name="implementation_quality",
        description="Validates code quality and implementation standards",
        timeout=30.0,
        build=lambda p: (
            NoErrors(),
            TestPassed(test_name=p.get("test_name", "implementation_test")),
            FileExists(path=p.get("output_file", "")),
        ),
    ),
    CriteriaTemplate(
        name="feature_validation",
        description="Validates new feature implementation and functionality",
        timeout=60.0,
        build=lambda p: (
            ResultExists(key="feature_implemented"),
            TestPassed(test_name=p.get("feature_test", "feature_test")),
            StepCompleted(step_id=p.get("step_id", "implement_core")),
            NoErrors(max_allowed=0),
        ),
    ),
    CriteriaTemplate(
        name="custom_validation",
        description="Flexible validation with custom criteria",
        mode=ValidationMode.CUSTOM,
        timeout=45.0,
        build=_custom_criteria,
    ),
)


def normalize_validator_result(raw: Any, type_name: str) -> CriterionResult:
    """Turn a validator's bool / mapping / result into a CriterionResult."""
    if isinstance(raw, CriterionResult):
        return raw
    if isinstance(raw, Mapping):
        details = dict(raw.get("details") or {})
        if "data" in raw:
            details["data"] = raw["data"]
        return CriterionResult(
            success=bool(raw.get("success")),
            type=type_name,
            message=str(raw.get("message", "")),
            details=details,
        )
    success = bool(raw)
    return CriterionResult(
        success=success,
        type=type_name,
        message="Validator passed" if success else "Validator failed",
    )


async def call_validator(validator: Callable[..., Any], *args: Any) -> Any:
    result = validator(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ValidationController:
    """Executes validation checkpoints and completion criteria."""

    def __init__(
        self,
        filesystem: FilesystemProbeInterface | None = None,
        test_results: TestResultsInterface | None = None,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self._filesystem = filesystem
        self._test_results = test_results
        self._history_limit = history_limit
        self._lock = threading.Lock()
        self._history: list[ValidationRecord] = []
        self._templates: dict[str, CriteriaTemplate] = {
            t.name: t for t in BUILTIN_CRITERIA_TEMPLATES
        }
        self._evaluators: dict[CriterionType, Callable[..., Any]] = {
            CriterionType.RESULT_EXISTS: self._result_exists,
            CriterionType.RESULT_EQUALS: self._result_equals,
            CriterionType.RESULT_CONTAINS: self._result_contains,
            CriterionType.NO_ERRORS: self._no_errors,
            CriterionType.PROGRESS_MIN: self._progress_min,
            CriterionType.STEP_COMPLETED: self._step_completed,
            CriterionType.FILE_EXISTS: self._file_exists,
            CriterionType.TEST_PASSED: self._test_passed,
            CriterionType.CUSTOM: self._custom,
        }

    # =========================================================================
    # CHECKPOINTS
    # =========================================================================

    async def execute_checkpoint(
        self,
        checkpoint: ValidationCheckpoint,
        instance: WorkflowInstance,
        context: ValidationContext | None = None,
    ) -> ValidationResult:
        """
        Evaluate a checkpoint under its timeout.

        Never raises for criterion failures or timeouts; the result is
        cached on the checkpoint and its status set to PASSED or FAILED.
        """
        context = context or ValidationContext()
        started = time.monotonic()
        error: str | None = None
        timed_out = False
        results: tuple[CriterionResult, ...] = ()

        logger.debug("Validating checkpoint %s for workflow %s", checkpoint.id, instance.id)
        try:
            results = await self._evaluate_within_timeout(checkpoint, instance, context)
        except CheckpointTimeoutError as e:
            timed_out = True
            error = str(e)
            logger.warning("%s after %ss", error, checkpoint.timeout)

        success = not timed_out and all(r.success for r in results)
        result = ValidationResult(
            success=success,
            results=results,
            summary=ValidationSummary.of(results),
            timestamp=utc_now().isoformat(),
            checkpoint_id=checkpoint.id,
            checkpoint_name=checkpoint.name,
            error=error,
            timed_out=timed_out,
            duration=time.monotonic() - started,
        )
        checkpoint.last_result = result
        checkpoint.last_validated_at = utc_now()
        checkpoint.status = CheckpointStatus.PASSED if success else CheckpointStatus.FAILED
        self._record(instance.id, result)
        logger.info(
            "Checkpoint validation %s: %s",
            "passed" if success else "failed",
            checkpoint.name,
        )
        return result

    async def _evaluate_within_timeout(
        self,
        checkpoint: ValidationCheckpoint,
        instance: WorkflowInstance,
        context: ValidationContext,
    ) -> tuple[CriterionResult, ...]:
        """
        Raises:
            CheckpointTimeoutError: If evaluation outlives the checkpoint timeout
        """
        evaluation = self.evaluate_criteria(checkpoint.criteria, instance, context)
        if not checkpoint.timeout or checkpoint.timeout <= 0:
            return await evaluation
        try:
            return await asyncio.wait_for(evaluation, timeout=checkpoint.timeout)
        except TimeoutError:
            raise CheckpointTimeoutError(
                f"Validation timeout: {checkpoint.name}"
            ) from None

    async def evaluate_criteria(
        self,
        criteria: Any,
        instance: WorkflowInstance,
        context: ValidationContext | None = None,
    ) -> tuple[CriterionResult, ...]:
        """
        Evaluate a callable, a single criterion, or a list of criteria.

        Lists are evaluated item by item in order.
        """
        context = context or ValidationContext()
        criteria = normalize_criteria(criteria)
        if isinstance(criteria, tuple):
            results = []
            for criterion in criteria:
                results.append(await self.evaluate_criterion(criterion, instance, context))
            return tuple(results)
        if callable(criteria):
            return (await self._invoke(criteria, "callable", instance, context),)
        return (await self.evaluate_criterion(criteria, instance, context),)

    async def evaluate_criterion(
        self,
        criterion: Criterion,
        instance: WorkflowInstance,
        context: ValidationContext | None = None,
    ) -> CriterionResult:
        context = context or ValidationContext()
        if callable(criterion):
            return await self._invoke(criterion, "callable", instance, context)
        if isinstance(criterion, UnknownCriterion) or criterion.kind is None:
            return CriterionResult(
                success=False,
                type=criterion_type_name(criterion),
                message=f"Unknown criterion type: {criterion_type_name(criterion)}",
            )
        evaluator = self._evaluators[criterion.kind]
        try:
            result = evaluator(criterion, instance, context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error("Criterion %s raised: %s", criterion.kind.value, e)
            return CriterionResult(
                success=False,
                type=criterion.kind.value,
                message=f"Criterion raised {type(e).__name__}: {e}",
            )
        logger.debug("Criterion %s: %s", result.type, result.message)
        return result

    async def _invoke(
        self,
        validator: Callable[..., Any],
        type_name: str,
        instance: WorkflowInstance,
        context: ValidationContext,
    ) -> CriterionResult:
        try:
            raw = await call_validator(validator, instance, context)
        except Exception as e:
            logger.error("Validator %s raised: %s", type_name, e)
            return CriterionResult(
                success=False, type=type_name, message=f"Validator raised: {e}"
            )
        return normalize_validator_result(raw, type_name)

    # =========================================================================
    # CRITERION EVALUATORS
    # =========================================================================

    def _result_exists(
        self, c: ResultExists, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        exists = c.key in instance.results
        return CriterionResult(
            success=exists,
            type=c.kind.value,
            message=f"Result '{c.key}' {'exists' if exists else 'does not exist'}",
        )

    def _result_equals(
        self, c: ResultEquals, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        actual = instance.results.get(c.key)
        equal = c.key in instance.results and actual == c.value
        return CriterionResult(
            success=equal,
            type=c.kind.value,
            message=f"Result '{c.key}' {'equals' if equal else 'does not equal'} expected value",
            details={"expected": c.value, "actual": actual},
        )

    def _result_contains(
        self, c: ResultContains, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        value = instance.results.get(c.key)
        if isinstance(value, str):
            contains = str(c.value) in value
        elif isinstance(value, (list, tuple, set, frozenset, Mapping)):
            try:
                contains = c.value in value
            except TypeError:
                # unhashable needle against a set or mapping
                contains = False
        else:
            contains = False
        return CriterionResult(
            success=contains,
            type=c.kind.value,
            message=(
                f"Result '{c.key}' {'contains' if contains else 'does not contain'} "
                "expected content"
            ),
        )

    def _no_errors(
        self, c: NoErrors, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        count = len(instance.errors)
        success = count <= c.max_allowed
        return CriterionResult(
            success=success,
            type=c.kind.value,
            message=(
                f"Error count ({count}) is {'within' if success else 'above'} "
                f"acceptable limit ({c.max_allowed})"
            ),
            details={"error_count": count, "max_allowed": c.max_allowed},
        )

    def _progress_min(
        self, c: ProgressMin, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        progress = instance.progress
        success = progress >= c.threshold
        return CriterionResult(
            success=success,
            type=c.kind.value,
            message=(
                f"Progress ({progress:.0f}%) "
                f"{'meets' if success else 'below'} minimum ({c.threshold:.0f}%)"
            ),
            details={"progress": progress, "threshold": c.threshold},
        )

    def _step_completed(
        self, c: StepCompleted, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        step = instance.step_by_id(c.step_id)
        completed = step is not None and step.status is StepStatus.COMPLETED
        return CriterionResult(
            success=completed,
            type=c.kind.value,
            message=f"Step '{c.step_id}' {'completed' if completed else 'not completed'}",
            details={"status": step.status.value if step else None},
        )

    def _file_exists(
        self, c: FileExists, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        probe = context.filesystem or self._filesystem
        if probe is None:
            return CriterionResult(
                success=False,
                type=c.kind.value,
                message="No filesystem probe configured",
            )
        if not c.path:
            return CriterionResult(
                success=False, type=c.kind.value, message="No path given"
            )
        exists = probe.has(c.path)
        return CriterionResult(
            success=exists,
            type=c.kind.value,
            message=f"File '{c.path}' {'exists' if exists else 'does not exist'}",
        )

    def _find_test_result(
        self, name: str, instance: WorkflowInstance, context: ValidationContext
    ) -> Any:
        for source in (context.test_results, instance.results.get("test_results")):
            if isinstance(source, Mapping) and name in source:
                return source[name]
            if isinstance(source, (list, tuple)):
                for item in source:
                    if isinstance(item, Mapping) and item.get("name") == name:
                        return item
        if self._test_results is not None:
            return self._test_results.lookup(name)
        return None

    def _test_passed(
        self, c: TestPassed, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        result = self._find_test_result(c.test_name, instance, context)
        if result is None:
            return CriterionResult(
                success=False,
                type=c.kind.value,
                message=f"Test result not found: {c.test_name}",
            )
        if isinstance(result, Mapping):
            status = result.get("status")
        elif isinstance(result, bool):
            status = "passed" if result else "failed"
        else:
            status = str(result)
        passed = status == "passed"
        return CriterionResult(
            success=passed,
            type=c.kind.value,
            message=f"Test '{c.test_name}' {'passed' if passed else 'failed'}",
            details={"status": status},
        )

    async def _custom(
        self, c: CustomCriterion, instance: WorkflowInstance, context: ValidationContext
    ) -> CriterionResult:
        if c.validator is None:
            return CriterionResult(
                success=False,
                type=c.kind.value,
                message=f"Custom criterion '{c.name}' has no validator",
            )
        return await self._invoke(c.validator, c.kind.value, instance, context)

    # =========================================================================
    # TEMPLATES
    # =========================================================================

    def register_criteria_template(self, template: CriteriaTemplate) -> None:
        with self._lock:
            self._templates[template.name] = template
        logger.info("Registered criteria template '%s'", template.name)

    def create_checkpoint_from_template(
        self, template_name: str, **params: Any
    ) -> ValidationCheckpoint:
        """
        Build a checkpoint from a named criteria template.

        Args:
            template_name: Registered criteria template name
            **params: ``id``, ``name``, ``description``, ``timeout``,
                ``required``, ``step_index`` plus template parameters

        Raises:
            ConfigurationError: If the template is unknown
        """
        with self._lock:
            template = self._templates.get(template_name)
        if template is None:
            raise ConfigurationError(f"Unknown validation template: {template_name}")
        return ValidationCheckpoint(
            id=params.get("id", f"{template_name}_{int(time.time() * 1000)}"),
            name=params.get("name", template.description),
            description=params.get("description", template.description),
            criteria=template.build(params),
            step_index=params.get("step_index"),
            mode=template.mode,
            timeout=params.get("timeout", template.timeout),
            required=params.get("required", True),
        )

    def available_templates(self) -> list[str]:
        with self._lock:
            return list(self._templates)

    # =========================================================================
    # COMPLETION CRITERIA
    # =========================================================================

    async def evaluate_completion_criteria(
        self,
        criteria: CompletionCriteria,
        instance: WorkflowInstance,
        context: ValidationContext | None = None,
    ) -> CompletionEvaluation:
        """
        Evaluate requirements, quality gates and deliverables.

        Plain-string requirements are recorded as met; callable ones must
        pass. The criteria are met when nothing is unmet, failed or missing.
        """
        context = context or ValidationContext()
        met_reqs, unmet_reqs = [], []
        for requirement in criteria.requirements:
            if isinstance(requirement, str):
                met_reqs.append(requirement)
                continue
            label = getattr(requirement, "__name__", "requirement")
            result = await self._invoke(requirement, "requirement", instance, context)
            (met_reqs if result.success else unmet_reqs).append(label)

        gates_passed, gates_failed = [], []
        for gate in criteria.quality_gates:
            result = await self._invoke(gate.validator, "quality_gate", instance, context)
            (gates_passed if result.success else gates_failed).append(gate.name)

        delivered, missing = [], []
        for deliverable in criteria.deliverables:
            result = await self._invoke(deliverable.validator, "deliverable", instance, context)
            (delivered if result.success else missing).append(deliverable.id)

        evaluation = CompletionEvaluation(
            met=not (unmet_reqs or gates_failed or missing),
            requirements_met=tuple(met_reqs),
            unmet_requirements=tuple(unmet_reqs),
            quality_gates_passed=tuple(gates_passed),
            quality_gates_failed=tuple(gates_failed),
            deliverables_completed=tuple(delivered),
            deliverables_missing=tuple(missing),
        )
        logger.info(
            "Completion criteria for workflow %s: %s",
            instance.id,
            "MET" if evaluation.met else "NOT MET",
        )
        return evaluation

    # =========================================================================
    # HISTORY AND STATISTICS
    # =========================================================================

    def _record(self, workflow_id: str, result: ValidationResult) -> None:
        failures = tuple(r.message for r in result.results if not r.success)
        if result.error:
            failures += (result.error,)
        with self._lock:
            self._history.append(
                ValidationRecord(
                    checkpoint_id=result.checkpoint_id,
                    workflow_id=workflow_id,
                    success=result.success,
                    duration=result.duration,
                    timed_out=result.timed_out,
                    failures=failures,
                )
            )
            if len(self._history) > self._history_limit:
                self._history = self._history[-HISTORY_KEEP:]

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            history = list(self._history)
            templates = list(self._templates)
        total = len(history)
        successful = sum(1 for r in history if r.success)
        failures = Counter(f for r in history for f in r.failures)
        return {
            "total_validations": total,
            "successful_validations": successful,
            "failed_validations": total - successful,
            "timeouts": sum(1 for r in history if r.timed_out),
            "success_rate": (successful / total * 100) if total else 0.0,
            "average_validation_time": (
                sum(r.duration for r in history) / total if total else 0.0
            ),
            "common_failures": failures.most_common(5),
            "available_templates": templates,
        }
