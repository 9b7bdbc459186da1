"""
Workflow configuration export and import.

An exported configuration is a plain JSON-compatible document describing a
workflow instance: task specification, steps, checkpoints, a decomposition
summary and options. Documents are schema-checked both ways and carry a
content hash (``workflow_ref``) so edited or corrupted files are caught on
import.

Callables (executors, custom validators) cannot be exported. Executor
references survive only when they are registry names.
"""

import logging
from collections.abc import Mapping
from typing import Any

import jsonschema

from mvpflow.domain.criteria import (
    CustomCriterion,
    criterion_from_dict,
    criterion_to_dict,
    normalize_criteria,
)
from mvpflow.domain.decomposition import Decomposition
from mvpflow.domain.exceptions import ConfigurationError
from mvpflow.domain.models import (
    CheckpointStatus,
    PriorityTier,
    RiskLevel,
    Step,
    StepStatus,
    StepType,
    TaskSpecification,
    ValidationCheckpoint,
    ValidationMode,
    WorkflowInstance,
    WorkflowStatus,
    utc_now,
)
from mvpflow.domain.workflow import REF_KEY, compute_workflow_ref, verify_workflow_ref
from mvpflow.schemas import validate_workflow_config

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0"


# =============================================================================
# EXPORT
# =============================================================================


def _criteria_to_list(criteria: Any) -> list[dict[str, Any]]:
    criteria = normalize_criteria(criteria)
    if isinstance(criteria, tuple):
        items = criteria
    elif callable(criteria):
        items = (CustomCriterion(name=getattr(criteria, "__name__", "custom")),)
    else:
        items = (criteria,)
    exported = []
    for item in items:
        if callable(item):
            item = CustomCriterion(name=getattr(item, "__name__", "custom"))
        exported.append(criterion_to_dict(item))
    return exported


def _task_spec_to_dict(task_spec: TaskSpecification) -> dict[str, Any]:
    return {
        "title": task_spec.title,
        "description": task_spec.description,
        "requirements": list(task_spec.requirements),
        "constraints": dict(task_spec.constraints),
        "acceptance_criteria": list(task_spec.acceptance_criteria),
        "scope": task_spec.scope,
        "priority": task_spec.priority,
        "tags": list(task_spec.tags),
    }


def _step_to_dict(step: Step) -> dict[str, Any]:
    return {
        "id": step.id,
        "name": step.name,
        "type": step.type.value,
        "description": step.description,
        "dependencies": list(step.dependencies),
        "estimated_effort": step.estimated_effort,
        "risk_level": step.risk_level.value,
        "required": step.required,
        "user_facing": step.user_facing,
        "status": step.status.value,
        "retry_count": step.retry_count,
        "priority": step.priority.value if step.priority else None,
        "mvp_level": step.mvp_level,
        "weight": step.weight,
        "skip_reason": step.skip_reason,
        "executor": step.executor if isinstance(step.executor, str) else None,
        "validation": _criteria_to_list(step.validation),
    }


def _checkpoint_to_dict(checkpoint: ValidationCheckpoint) -> dict[str, Any]:
    return {
        "id": checkpoint.id,
        "name": checkpoint.name,
        "description": checkpoint.description,
        "step_index": checkpoint.step_index,
        "mode": checkpoint.mode.value,
        "timeout": checkpoint.timeout,
        "required": checkpoint.required,
        "status": checkpoint.status.value,
        "criteria": _criteria_to_list(checkpoint.criteria),
    }


def _decomposition_to_dict(decomposition: Any) -> dict[str, Any] | None:
    if decomposition is None:
        return None
    if isinstance(decomposition, Mapping):
        return dict(decomposition)
    if not isinstance(decomposition, Decomposition):
        return None
    return {
        "task_type": decomposition.task_type.value,
        "complexity": decomposition.complexity.value,
        "complexity_score": decomposition.complexity_score,
        "mvp_core": list(decomposition.mvp_core.step_ids),
        "estimated_hours": decomposition.estimated_duration.estimated_hours,
        "phases": [
            {
                "name": phase.name,
                "mvp_level": phase.mvp_level,
                "step_ids": list(phase.step_ids),
            }
            for phase in decomposition.phasing
        ],
    }


def export_workflow_configuration(instance: WorkflowInstance) -> dict[str, Any]:
    """
    Serialize a workflow instance to a plain document.

    Returns:
        The document, including its ``workflow_ref``

    Raises:
        ConfigurationError: If the instance holds values that cannot be
            serialized
    """
    document: dict[str, Any] = {
        "version": CONFIG_VERSION,
        "workflow_id": instance.id,
        "template_name": instance.template_name,
        "status": instance.status.value,
        "current_step": instance.current_step,
        "exported_at": utc_now().isoformat(),
        "task_spec": _task_spec_to_dict(instance.task_spec),
        "steps": [_step_to_dict(step) for step in instance.steps],
        "checkpoints": [_checkpoint_to_dict(cp) for cp in instance.checkpoints.values()],
        "decomposition": _decomposition_to_dict(instance.decomposition),
        "options": dict(instance.options),
    }
    try:
        document[REF_KEY] = compute_workflow_ref(document)
        validate_workflow_config(document)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(
            f"Workflow {instance.id} cannot be exported: {exc}"
        ) from exc
    except jsonschema.ValidationError as exc:
        raise ConfigurationError(
            f"Exported configuration is invalid: {exc.message}"
        ) from exc
    logger.info("Exported workflow configuration %s", instance.id)
    return document


# =============================================================================
# IMPORT
# =============================================================================


def _step_from_dict(data: Mapping[str, Any]) -> Step:
    status = StepStatus(data.get("status", StepStatus.PENDING.value))
    if status is StepStatus.RUNNING:
        status = StepStatus.PENDING
    priority = data.get("priority")
    return Step(
        id=data["id"],
        name=data["name"],
        type=StepType(data["type"]),
        description=data.get("description", ""),
        dependencies=list(data.get("dependencies", [])),
        estimated_effort=float(data.get("estimated_effort", 2.0)),
        risk_level=RiskLevel(data.get("risk_level", RiskLevel.MEDIUM.value)),
        required=data.get("required", True),
        user_facing=data.get("user_facing", False),
        status=status,
        retry_count=data.get("retry_count", 0),
        priority=PriorityTier(priority) if priority else None,
        mvp_level=data.get("mvp_level"),
        weight=data.get("weight"),
        skip_reason=data.get("skip_reason", ""),
        executor=data.get("executor"),
        validation=tuple(criterion_from_dict(c) for c in data.get("validation", [])),
    )


def _checkpoint_from_dict(data: Mapping[str, Any]) -> ValidationCheckpoint:
    return ValidationCheckpoint(
        id=data["id"],
        name=data["name"],
        description=data.get("description", ""),
        criteria=tuple(criterion_from_dict(c) for c in data["criteria"]),
        step_index=data.get("step_index"),
        mode=ValidationMode(data.get("mode", ValidationMode.AUTOMATIC.value)),
        timeout=float(data.get("timeout", 30.0)),
        required=data.get("required", True),
        status=CheckpointStatus(data.get("status", CheckpointStatus.PENDING.value)),
    )


def import_workflow_configuration(document: Mapping[str, Any]) -> WorkflowInstance:
    """
    Rehydrate a workflow instance from an exported document.

    A document that was running when exported comes back PAUSED so it can
    be executed again. Documents without a ``workflow_ref`` are accepted
    (hand-written configurations); documents with a wrong one are not.

    Raises:
        ConfigurationError: If the document fails schema validation, its
            ``workflow_ref`` does not match, or a checkpoint is bound to a
            step index outside the step list
    """
    document = dict(document)
    try:
        validate_workflow_config(document)
    except jsonschema.ValidationError as exc:
        raise ConfigurationError(f"Invalid workflow configuration: {exc.message}") from exc

    if REF_KEY in document:
        if not verify_workflow_ref(document):
            raise ConfigurationError(
                f"workflow_ref mismatch for {document['workflow_id']}: "
                "the configuration was modified after export"
            )
    else:
        logger.warning(
            "Configuration %s has no workflow_ref; content not verified",
            document["workflow_id"],
        )

    spec = document["task_spec"]
    task_spec = TaskSpecification(
        title=spec["title"],
        description=spec["description"],
        requirements=tuple(spec["requirements"]),
        constraints=spec.get("constraints", {}),
        acceptance_criteria=tuple(spec.get("acceptance_criteria", [])),
        scope=spec.get("scope", ""),
        priority=spec.get("priority", ""),
        tags=tuple(spec.get("tags", [])),
    )
    steps = [_step_from_dict(s) for s in document["steps"]]
    checkpoints = {}
    for data in document["checkpoints"]:
        checkpoint = _checkpoint_from_dict(data)
        if checkpoint.step_index is not None and checkpoint.step_index >= len(steps):
            raise ConfigurationError(
                f"Checkpoint '{checkpoint.id}' bound to step index "
                f"{checkpoint.step_index} but the workflow has {len(steps)} steps"
            )
        checkpoints[checkpoint.id] = checkpoint

    status = WorkflowStatus(document.get("status", WorkflowStatus.CREATED.value))
    if status is WorkflowStatus.RUNNING:
        status = WorkflowStatus.PAUSED

    instance = WorkflowInstance(
        id=document["workflow_id"],
        task_spec=task_spec,
        steps=steps,
        checkpoints=checkpoints,
        template_name=document.get("template_name"),
        current_step=min(document.get("current_step", 0), len(steps)),
        status=status,
        decomposition=document.get("decomposition"),
        options=dict(document.get("options", {})),
    )
    if status is WorkflowStatus.PAUSED:
        instance.paused_at = utc_now()
    logger.info(
        "Imported workflow configuration %s (%d steps, %d checkpoints)",
        instance.id,
        len(steps),
        len(checkpoints),
    )
    return instance
