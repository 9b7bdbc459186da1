"""
Workflow template models.

A template's structure (step and checkpoint templates) is immutable once
registered. Usage statistics live beside it in the template repository and
are the only mutable part.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from mvpflow.domain.criteria import CriteriaSpec
from mvpflow.domain.models import (
    RiskLevel,
    Step,
    StepExecutor,
    StepType,
    ValidationCheckpoint,
    ValidationMode,
    utc_now,
)


@dataclass(frozen=True)
class StepTemplate:
    """Blueprint for one step of a template."""

    id: str
    name: str
    type: StepType = StepType.CUSTOM
    description: str = ""
    dependencies: tuple[str, ...] = ()
    estimated_effort: float = 2.0
    risk_level: RiskLevel = RiskLevel.MEDIUM
    required: bool = True
    user_facing: bool = False
    implementation: StepExecutor | None = None
    fallback: StepExecutor | None = None
    executor: StepExecutor | str | None = None
    validation: tuple = ()

    def instantiate(self) -> Step:
        """Build a fresh, instance-owned step."""
        return Step(
            id=self.id,
            name=self.name,
            type=self.type,
            description=self.description,
            dependencies=list(self.dependencies),
            estimated_effort=self.estimated_effort,
            risk_level=self.risk_level,
            required=self.required,
            user_facing=self.user_facing,
            implementation=self.implementation,
            fallback=self.fallback,
            executor=self.executor,
            validation=tuple(self.validation),
        )


@dataclass(frozen=True)
class CheckpointTemplate:
    """Blueprint for a checkpoint bound to a step index."""

    id: str
    name: str
    step_index: int
    criteria: CriteriaSpec = ()
    description: str = ""
    mode: ValidationMode = ValidationMode.AUTOMATIC
    timeout: float = 30.0
    required: bool = True

    def instantiate(self) -> ValidationCheckpoint:
        criteria = self.criteria
        if isinstance(criteria, list):
            criteria = tuple(criteria)
        return ValidationCheckpoint(
            id=self.id,
            name=self.name,
            description=self.description,
            criteria=criteria,
            step_index=self.step_index,
            mode=self.mode,
            timeout=self.timeout,
            required=self.required,
        )


@dataclass(frozen=True)
class WorkflowTemplate:
    """A named, reusable step/checkpoint graph."""

    name: str
    type: str
    description: str
    steps: tuple[StepTemplate, ...]
    checkpoints: tuple[CheckpointTemplate, ...] = ()
    estimated_duration: float = 0.0  # hours
    category: str = "general"
    tags: tuple[str, ...] = ()

    def problems(self) -> list[str]:
        """List what prevents this template from being registered."""
        found = []
        if not (self.name or "").strip():
            found.append("Template requires a name")
        if not (self.type or "").strip():
            found.append("Template requires a type")
        if not self.steps:
            found.append("Template requires at least one step")
        for index, step in enumerate(self.steps):
            if not step.id or not step.name:
                found.append(f"Step {index} requires an id and a name")
        return found


@dataclass(frozen=True)
class TemplateMetadata:
    """Registration metadata."""

    version: str = "1.0.0"
    category: str = "general"
    author: str = "system"
    tags: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None


@dataclass
class TemplateStatistics:
    """Running usage statistics for one template."""

    instantiations: int = 0
    successful_completions: int = 0
    failures: int = 0
    average_completion_time: float = 0.0  # seconds
    recent_failures: list[dict[str, Any]] = field(default_factory=list)
    last_used: datetime | None = None

    @property
    def success_rate(self) -> float:
        if self.instantiations == 0:
            return 0.0
        return self.successful_completions / self.instantiations


@dataclass(frozen=True)
class RegisteredTemplate:
    """A template together with its registration metadata."""

    template: WorkflowTemplate
    metadata: TemplateMetadata


@dataclass(frozen=True)
class TemplateSuggestion:
    name: str
    template: WorkflowTemplate
    score: float
    reason: str


@dataclass(frozen=True)
class TemplateFilters:
    """
    Filters for listing templates. ``None`` disables a filter.

    ``min_success_rate`` is a fraction in [0, 1], the same unit as
    ``TemplateStatistics.success_rate``; 0.8 keeps templates that succeed
    at least 80% of the time.
    """

    type: str | None = None
    category: str | None = None
    tags: tuple[str, ...] = ()
    max_duration: float | None = None
    max_steps: int | None = None
    min_success_rate: float | None = None


@dataclass(frozen=True)
class TemplateInfo:
    name: str
    type: str
    description: str
    category: str
    tags: tuple[str, ...]
    step_count: int
    checkpoint_count: int
    estimated_duration: float
    version: str
    success_rate: float
    instantiations: int


@dataclass(frozen=True)
class TemplateCustomizations:
    """
    Changes applied to a template at instantiation time.

    ``step_modifications`` and ``checkpoint_modifications`` map ids to
    field overrides. Skipped steps stay in the instance as SKIPPED.
    """

    step_modifications: dict[str, dict[str, Any]] = field(default_factory=dict)
    checkpoint_modifications: dict[str, dict[str, Any]] = field(default_factory=dict)
    additional_steps: tuple[Step, ...] = ()
    skip_steps: dict[str, str] = field(default_factory=dict)  # step id -> reason
    workflow_id: str | None = None


@dataclass(frozen=True)
class CloneCustomizations:
    type: str | None = None
    description: str | None = None
    additional_steps: tuple[StepTemplate, ...] = ()
    additional_checkpoints: tuple[CheckpointTemplate, ...] = ()
    author: str = "user"
    category: str = "derived"


@dataclass(frozen=True)
class TemplateUsageUpdate:
    """
    Usage-derived adjustments to a template.

    ``step_efforts`` overrides step effort by step id;
    ``checkpoint_overrides`` maps checkpoint ids to ``timeout``/``required``.
    """

    failure_patterns: tuple[str, ...] = ()
    average_duration: float | None = None  # hours
    step_efforts: dict[str, float] = field(default_factory=dict)
    checkpoint_overrides: dict[str, dict[str, Any]] = field(default_factory=dict)
