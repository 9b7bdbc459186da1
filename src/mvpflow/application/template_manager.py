"""
Template Manager service.

Registers reusable workflow templates, instantiates them into workflow
instances, scores them against task specifications and keeps their usage
statistics through the injected template repository.
"""

import dataclasses
import logging
import re
import threading
from collections.abc import Mapping
from typing import Any

from mvpflow.application.builtin_templates import BUILTIN_TEMPLATES, builtin_metadata
from mvpflow.domain.criteria import normalize_criteria
from mvpflow.domain.decomposition import classify_task
from mvpflow.domain.exceptions import ConfigurationError
from mvpflow.domain.interfaces import TemplateRepositoryInterface
from mvpflow.domain.models import (
    RiskLevel,
    Step,
    StepStatus,
    StepType,
    TaskSpecification,
    TaskType,
    ValidationCheckpoint,
    ValidationMode,
    WorkflowInstance,
    new_workflow_id,
    utc_now,
)
from mvpflow.domain.templates import (
    CloneCustomizations,
    RegisteredTemplate,
    TemplateCustomizations,
    TemplateFilters,
    TemplateInfo,
    TemplateMetadata,
    TemplateStatistics,
    TemplateSuggestion,
    TemplateUsageUpdate,
    WorkflowTemplate,
)

logger = logging.getLogger(__name__)

MIN_SUGGESTION_SCORE = 0.3
MAX_SUGGESTIONS = 5
BUG_KEYWORDS = ("fix", "debug", "resolve", "issue", "bug", "error", "problem")
RECENT_FAILURES_LIMIT = 10
RECENT_FAILURES_KEEP = 5
HISTORY_LIMIT = 1000
HISTORY_KEEP = 500

_NAME_SPLIT = re.compile(r"[\s_\-]+")

# Field values that arrive as plain strings in customizations
_ENUM_FIELDS: dict[str, type] = {
    "type": StepType,
    "risk_level": RiskLevel,
    "status": StepStatus,
    "mode": ValidationMode,
}
_STEP_FIELDS = {f.name for f in dataclasses.fields(Step)} - {"id"}
_CHECKPOINT_FIELDS = {f.name for f in dataclasses.fields(ValidationCheckpoint)} - {
    "id",
    "last_result",
    "last_validated_at",
}


def _apply_overrides(target: Any, overrides: Mapping[str, Any], allowed: set[str]) -> None:
    for name, value in overrides.items():
        if name not in allowed:
            raise ConfigurationError(
                f"Cannot customize field '{name}' of {type(target).__name__} '{target.id}'"
            )
        if name in _ENUM_FIELDS and isinstance(value, str):
            value = _ENUM_FIELDS[name](value)
        if name == "criteria":
            value = normalize_criteria(value)
        if name == "dependencies":
            value = list(value)
        setattr(target, name, value)


def _bump_minor(version: str) -> str:
    parts = (version.split(".") + ["0", "0", "0"])[:3]
    try:
        major, minor = int(parts[0]), int(parts[1])
    except ValueError:
        return f"{version}.1"
    return f"{major}.{minor + 1}.0"


class TemplateManager:
    """Template registry, instantiation, suggestion scoring and statistics."""

    def __init__(
        self,
        repository: TemplateRepositoryInterface,
        load_builtins: bool = True,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self._repository = repository
        self._history_limit = history_limit
        self._history: list[dict[str, Any]] = []
        self._lock = threading.Lock()
        if load_builtins:
            for template in BUILTIN_TEMPLATES:
                self.register(template, builtin_metadata(template))

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def register(
        self, template: WorkflowTemplate, metadata: TemplateMetadata | None = None
    ) -> None:
        """
        Register a template.

        Raises:
            ConfigurationError: If the template has no name, type or steps,
                or a step lacks an id or name
        """
        problems = template.problems()
        if problems:
            raise ConfigurationError(
                f"Invalid template '{template.name}': " + "; ".join(problems), problems
            )
        metadata = metadata or TemplateMetadata(
            category=template.category, tags=template.tags
        )
        self._repository.save(RegisteredTemplate(template=template, metadata=metadata))
        logger.info("Registered template '%s' (version %s)", template.name, metadata.version)

    def get(self, name: str) -> RegisteredTemplate:
        """
        Raises:
            ConfigurationError: If the template is unknown
        """
        try:
            return self._repository.get(name)
        except KeyError:
            raise ConfigurationError(f"Template not found: {name}") from None

    def exists(self, name: str) -> bool:
        return self._repository.exists(name)

    # =========================================================================
    # INSTANTIATION
    # =========================================================================

    def instantiate(
        self,
        template_name: str,
        task_spec: TaskSpecification,
        customizations: TemplateCustomizations | None = None,
    ) -> WorkflowInstance:
        """
        Create a workflow instance from a template.

        Steps and checkpoints are fresh objects owned by the instance.
        Customizations are applied in order: step overrides, checkpoint
        overrides, extra steps, skipped steps.

        Raises:
            ConfigurationError: If the template is unknown or a customization
                names an unknown step, checkpoint or field
        """
        template = self.get(template_name).template
        customizations = customizations or TemplateCustomizations()

        steps = [step_template.instantiate() for step_template in template.steps]
        checkpoints = {cp.id: cp.instantiate() for cp in template.checkpoints}
        by_id = {step.id: step for step in steps}

        for step_id, overrides in customizations.step_modifications.items():
            if step_id not in by_id:
                raise ConfigurationError(f"Unknown step in customizations: {step_id}")
            _apply_overrides(by_id[step_id], overrides, _STEP_FIELDS)

        for checkpoint_id, overrides in customizations.checkpoint_modifications.items():
            if checkpoint_id not in checkpoints:
                raise ConfigurationError(
                    f"Unknown checkpoint in customizations: {checkpoint_id}"
                )
            _apply_overrides(checkpoints[checkpoint_id], overrides, _CHECKPOINT_FIELDS)

        for extra in customizations.additional_steps:
            step = dataclasses.replace(extra, dependencies=list(extra.dependencies))
            steps.append(step)
            by_id[step.id] = step

        for step_id, reason in customizations.skip_steps.items():
            if step_id not in by_id:
                raise ConfigurationError(f"Unknown step in customizations: {step_id}")
            by_id[step_id].skip(reason or "Skipped by customization")

        instance = WorkflowInstance(
            id=customizations.workflow_id or new_workflow_id(),
            task_spec=task_spec,
            steps=steps,
            checkpoints=checkpoints,
            template_name=template.name,
        )

        self._repository.update_statistics(template.name, self._count_instantiation)
        self._remember(instance)
        logger.info(
            "Instantiated template '%s' as workflow %s (%d steps)",
            template.name,
            instance.id,
            len(steps),
        )
        return instance

    @staticmethod
    def _count_instantiation(stats: TemplateStatistics) -> None:
        stats.instantiations += 1
        stats.last_used = utc_now()

    def _remember(self, instance: WorkflowInstance) -> None:
        with self._lock:
            self._history.append(
                {
                    "workflow_id": instance.id,
                    "template": instance.template_name,
                    "created_at": instance.created_at,
                }
            )
            if len(self._history) > self._history_limit:
                self._history = self._history[-HISTORY_KEEP:]

    # =========================================================================
    # SUGGESTIONS
    # =========================================================================

    def suggest(self, task_spec: TaskSpecification) -> list[TemplateSuggestion]:
        """
        Rank templates against a task.

        Returns:
            At most five suggestions scoring above 0.3, best first
        """
        task_type = classify_task(task_spec)
        suggestions = []
        for registered in self._repository.list_all():
            template = registered.template
            stats = self._repository.get_statistics(template.name)
            score, reasons = self.score(template, stats, task_spec, task_type)
            if score > MIN_SUGGESTION_SCORE:
                suggestions.append(
                    TemplateSuggestion(
                        name=template.name,
                        template=template,
                        score=score,
                        reason="; ".join(reasons) or "General relevance",
                    )
                )
        suggestions.sort(key=lambda s: s.score, reverse=True)
        return suggestions[:MAX_SUGGESTIONS]

    @staticmethod
    def score(
        template: WorkflowTemplate,
        stats: TemplateStatistics,
        task_spec: TaskSpecification,
        task_type: TaskType,
    ) -> tuple[float, list[str]]:
        """
        Weighted match score in [0, 1] plus human-readable reasons.

        Components: task type match (0.4), title/name word overlap (0.3),
        description substring heuristic (0.2), bug keyword density for bug
        fixes (0.2), historical success rate (0.1).
        """
        score = 0.0
        reasons = []

        if template.type == task_type.value:
            score += 0.4
            reasons.append(f"Task type matches ({task_type.value})")

        title_words = [w for w in (task_spec.title or "").lower().split() if w]
        name_words = set(w for w in _NAME_SPLIT.split(template.name.lower()) if w)
        if title_words:
            common = [w for w in title_words if w in name_words]
            if common:
                score += len(common) / len(title_words) * 0.3
                reasons.append(f"Title shares words with template name: {', '.join(common)}")

        requirements = " ".join(task_spec.requirements).lower()[:50]
        if requirements and requirements in template.description.lower():
            score += 0.2
            reasons.append("Template description covers the requirements")

        if task_type is TaskType.BUG_FIX:
            text = task_spec.text
            matches = sum(1 for keyword in BUG_KEYWORDS if keyword in text)
            if matches:
                score += matches / len(BUG_KEYWORDS) * 0.2
                reasons.append(f"{matches} bug-fix keywords")

        if stats.instantiations > 0:
            score += stats.success_rate * 0.1
            if stats.successful_completions:
                reasons.append(f"{stats.success_rate:.0%} historical success rate")

        return min(score, 1.0), reasons

    # =========================================================================
    # CLONING AND UPDATES
    # =========================================================================

    def clone(
        self,
        source_name: str,
        new_name: str,
        customizations: CloneCustomizations | None = None,
    ) -> WorkflowTemplate:
        """Register a copy of a template under a new name."""
        source = self.get(source_name)
        customizations = customizations or CloneCustomizations()
        template = dataclasses.replace(
            source.template,
            name=new_name,
            type=customizations.type or source.template.type,
            description=customizations.description
            or f"Derived from {source_name}: {source.template.description}",
            steps=source.template.steps + tuple(customizations.additional_steps),
            checkpoints=source.template.checkpoints
            + tuple(customizations.additional_checkpoints),
            category=customizations.category,
        )
        self.register(
            template,
            TemplateMetadata(
                version="1.0.0",
                category=customizations.category,
                author=customizations.author,
                tags=source.metadata.tags + ("derived",),
            ),
        )
        logger.info("Cloned template '%s' as '%s'", source_name, new_name)
        return template

    def update_template_from_usage(
        self, name: str, update: TemplateUsageUpdate
    ) -> WorkflowTemplate:
        """
        Fold usage insights back into a template and bump its minor version.

        Raises:
            ConfigurationError: If the template is unknown
        """
        registered = self.get(name)
        template = registered.template

        if update.step_efforts:
            template = dataclasses.replace(
                template,
                steps=tuple(
                    dataclasses.replace(s, estimated_effort=update.step_efforts[s.id])
                    if s.id in update.step_efforts
                    else s
                    for s in template.steps
                ),
            )
        if update.checkpoint_overrides:
            checkpoints = []
            for cp in template.checkpoints:
                overrides = update.checkpoint_overrides.get(cp.id, {})
                allowed = {k: v for k, v in overrides.items() if k in ("timeout", "required")}
                checkpoints.append(dataclasses.replace(cp, **allowed) if allowed else cp)
            template = dataclasses.replace(template, checkpoints=tuple(checkpoints))
        if update.average_duration is not None:
            template = dataclasses.replace(
                template, estimated_duration=update.average_duration
            )
        if update.failure_patterns:
            patterns = update.failure_patterns

            def add_patterns(stats: TemplateStatistics) -> None:
                for pattern in patterns:
                    stats.recent_failures.append(
                        {"reason": pattern, "timestamp": utc_now().isoformat()}
                    )
                if len(stats.recent_failures) > RECENT_FAILURES_LIMIT:
                    stats.recent_failures[:] = stats.recent_failures[-RECENT_FAILURES_KEEP:]

            self._repository.update_statistics(name, add_patterns)

        metadata = dataclasses.replace(
            registered.metadata,
            version=_bump_minor(registered.metadata.version),
            updated_at=utc_now(),
        )
        self._repository.save(RegisteredTemplate(template=template, metadata=metadata))
        logger.info("Template updated: %s to version %s", name, metadata.version)
        return template

    # =========================================================================
    # USAGE STATISTICS
    # =========================================================================

    def record_completion(self, name: str, duration_seconds: float) -> None:
        def update(stats: TemplateStatistics) -> None:
            stats.successful_completions += 1
            n = stats.successful_completions
            stats.average_completion_time += (
                duration_seconds - stats.average_completion_time
            ) / n

        self._update_if_known(name, update)

    def record_failure(self, name: str, reason: str) -> None:
        def update(stats: TemplateStatistics) -> None:
            stats.failures += 1
            stats.recent_failures.append(
                {"reason": reason, "timestamp": utc_now().isoformat()}
            )
            if len(stats.recent_failures) > RECENT_FAILURES_LIMIT:
                stats.recent_failures[:] = stats.recent_failures[-RECENT_FAILURES_KEEP:]

        self._update_if_known(name, update)

    def _update_if_known(self, name: str, update: Any) -> None:
        try:
            self._repository.update_statistics(name, update)
        except KeyError:
            logger.warning("Usage recorded for unknown template '%s'", name)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_available_templates(
        self, filters: TemplateFilters | None = None
    ) -> list[TemplateInfo]:
        filters = filters or TemplateFilters()
        infos = []
        for registered in self._repository.list_all():
            template, metadata = registered.template, registered.metadata
            stats = self._repository.get_statistics(template.name)
            if filters.type and template.type != filters.type:
                continue
            if filters.category and metadata.category != filters.category:
                continue
            if filters.tags and not set(filters.tags) & set(metadata.tags):
                continue
            if (
                filters.max_duration is not None
                and template.estimated_duration > filters.max_duration
            ):
                continue
            if filters.max_steps is not None and len(template.steps) > filters.max_steps:
                continue
            if (
                filters.min_success_rate is not None
                and stats.success_rate < filters.min_success_rate
            ):
                continue
            infos.append(
                TemplateInfo(
                    name=template.name,
                    type=template.type,
                    description=template.description,
                    category=metadata.category,
                    tags=metadata.tags,
                    step_count=len(template.steps),
                    checkpoint_count=len(template.checkpoints),
                    estimated_duration=template.estimated_duration,
                    version=metadata.version,
                    success_rate=stats.success_rate,
                    instantiations=stats.instantiations,
                )
            )
        return infos

    def get_template_details(self, name: str) -> dict[str, Any] | None:
        if not self._repository.exists(name):
            return None
        registered = self._repository.get(name)
        with self._lock:
            recent = [h for h in self._history if h["template"] == name][-10:]
        return {
            "template": registered.template,
            "metadata": registered.metadata,
            "statistics": self._repository.get_statistics(name),
            "recent_usage": recent,
        }

    def get_statistics(self) -> dict[str, Any]:
        registered = self._repository.list_all()
        stats = {r.template.name: self._repository.get_statistics(r.template.name) for r in registered}
        instantiations = sum(s.instantiations for s in stats.values())
        completions = sum(s.successful_completions for s in stats.values())
        most_used = max(stats, key=lambda n: stats[n].instantiations, default=None)
        categories: dict[str, int] = {}
        for r in registered:
            categories[r.metadata.category] = categories.get(r.metadata.category, 0) + 1
        with self._lock:
            recent_instances = len(self._history)
        return {
            "total_templates": len(registered),
            "total_instantiations": instantiations,
            "successful_completions": completions,
            "success_rate": (completions / instantiations * 100) if instantiations else 0.0,
            "most_used_template": most_used if most_used and stats[most_used].instantiations else None,
            "categories": categories,
            "recent_instances": recent_instances,
        }
