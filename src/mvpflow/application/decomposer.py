"""
Task Decomposer service.

Classifies a task specification and turns the matching rule graph into a
prioritized, phased step list with duration and risk estimates.
"""

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from mvpflow.domain.decomposition import (
    BUILTIN_RULES,
    TASK_PATTERNS,
    Decomposition,
    DecompositionRule,
    StepBlueprint,
    assess_risks,
    build_steps,
    classify_task,
    complexity_for_score,
    complexity_score,
    create_phasing,
    dependency_map,
    estimate_duration,
    identify_mvp_core,
    static_rule,
)
from mvpflow.domain.exceptions import ConfigurationError
from mvpflow.domain.models import PriorityTier, TaskSpecification, TaskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecompositionOptions:
    """
    Options for a single decomposition.

    Attributes:
        prioritize_quick_wins: Boost steps with effort below 4
        time_limit: Hours available; defaults to the task's
            ``time_limit`` constraint
    """

    prioritize_quick_wins: bool = False
    time_limit: float | None = None


def validate_task_spec(task_spec: TaskSpecification) -> None:
    """
    Raises:
        ConfigurationError: If title, description or requirements are missing
    """
    problems = task_spec.problems()
    if problems:
        raise ConfigurationError(
            "Invalid task specification: " + "; ".join(problems), problems
        )


class TaskDecomposer:
    """
    Produces MVP-first step graphs from task specifications.

    Rule graphs are keyed by task type; unknown types fall back to the
    general graph.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._rules: dict[str, DecompositionRule] = {
            name: static_rule(blueprints) for name, blueprints in BUILTIN_RULES.items()
        }

    def decompose(
        self,
        task_spec: TaskSpecification,
        options: DecompositionOptions | None = None,
    ) -> Decomposition:
        """
        Decompose a task into prioritized steps.

        Args:
            task_spec: The task to decompose
            options: Decomposition options

        Returns:
            The decomposition, steps sorted by priority weight

        Raises:
            ConfigurationError: If the task specification is invalid
        """
        validate_task_spec(task_spec)
        options = options or DecompositionOptions()

        task_type = classify_task(task_spec)
        score = complexity_score(task_spec)
        complexity = complexity_for_score(score)

        with self._lock:
            rule = self._rules.get(task_type.value) or self._rules[TaskType.GENERAL.value]
        blueprints = rule(task_spec, complexity)
        steps = build_steps(
            blueprints, task_spec, complexity, options.prioritize_quick_wins
        )
        mvp_core = identify_mvp_core(steps, task_spec)

        decomposition = Decomposition(
            task_type=task_type,
            complexity=complexity,
            complexity_score=score,
            steps=tuple(steps),
            mvp_core=mvp_core,
            dependencies=dependency_map(steps),
            estimated_duration=estimate_duration(steps),
            phasing=create_phasing(steps),
            risk_assessment=assess_risks(steps, self._time_limit(task_spec, options)),
        )
        logger.info(
            "Decomposed '%s' as %s (%s complexity): %d steps, %d in MVP core",
            task_spec.title,
            task_type.value,
            complexity.value,
            len(steps),
            len(mvp_core.step_ids),
        )
        return decomposition

    def register_rule(
        self, task_type: str, rule: DecompositionRule | Sequence[StepBlueprint]
    ) -> None:
        """
        Add or replace the rule graph for a task type.

        Args:
            task_type: Task type name (built-in or custom)
            rule: A rule callable, or a fixed sequence of blueprints
        """
        if not callable(rule):
            rule = static_rule(rule)
        with self._lock:
            self._rules[task_type] = rule
        logger.info("Registered decomposition rule for '%s'", task_type)

    def get_statistics(self) -> dict[str, Any]:
        with self._lock:
            rules = sorted(self._rules)
        return {
            "available_rules": rules,
            "classifier_patterns": [task_type.value for task_type, _ in TASK_PATTERNS],
            "priority_weights": {tier.value: tier.weight for tier in PriorityTier},
        }

    @staticmethod
    def _time_limit(
        task_spec: TaskSpecification, options: DecompositionOptions
    ) -> float | None:
        if options.time_limit is not None:
            return options.time_limit
        raw = task_spec.constraints.get("time_limit")
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric time_limit constraint: %r", raw)
            return None
