"""Tests for TaskDecomposer."""

import pytest

from mvpflow.application.decomposer import (
    DecompositionOptions,
    TaskDecomposer,
    validate_task_spec,
)
from mvpflow.domain.decomposition import StepBlueprint
from mvpflow.domain.exceptions import ConfigurationError
from mvpflow.domain.models import StepType, TaskSpecification, TaskType


class TestDecompose:
    """Tests for decompose()."""

    def test_bug_task(self, bug_task: TaskSpecification) -> None:
        decomposition = TaskDecomposer().decompose(bug_task)

        assert decomposition.task_type is TaskType.BUG_FIX
        assert len(decomposition.steps) == 5
        assert decomposition.mvp_core.step_ids == ("reproduce_issue", "implement_fix")
        assert decomposition.dependencies["implement_fix"] == ("identify_root_cause",)

    def test_invalid_task_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            TaskDecomposer().decompose(
                TaskSpecification(title="", description="", requirements=())
            )

        assert len(exc_info.value.problems) == 3

    def test_unknown_type_uses_general_rule(self) -> None:
        task = TaskSpecification(
            title="Rename things", description="tidy", requirements=("names",)
        )

        decomposition = TaskDecomposer().decompose(task)

        assert decomposition.task_type is TaskType.GENERAL
        assert decomposition.steps

    def test_time_limit_option_wins_over_constraint(
        self, bug_task: TaskSpecification
    ) -> None:
        decomposition = TaskDecomposer().decompose(
            bug_task, DecompositionOptions(time_limit=1)
        )

        assert "schedule" in [risk.type for risk in decomposition.risk_assessment]

    @pytest.mark.parametrize(
        "time_limit,expect_schedule_risk",
        [("1", True), (1000, False), ("soon", False)],
    )
    def test_time_limit_constraint(
        self, time_limit: object, expect_schedule_risk: bool
    ) -> None:
        """Non-numeric limits are ignored."""
        task = TaskSpecification(
            title="Fix login timeout",
            description="users get logged out",
            requirements=("reproduce the timeout",),
            constraints={"time_limit": time_limit},
        )

        decomposition = TaskDecomposer().decompose(task)

        risk_types = [risk.type for risk in decomposition.risk_assessment]
        assert ("schedule" in risk_types) is expect_schedule_risk


class TestRules:
    """Tests for custom rule registration."""

    def test_register_blueprints_for_builtin_type(
        self, bug_task: TaskSpecification
    ) -> None:
        decomposer = TaskDecomposer()
        decomposer.register_rule(
            "bug_fix",
            (
                StepBlueprint("triage", "Triage", StepType.ANALYSIS, blocking=True),
                StepBlueprint(
                    "hotfix", "Hotfix", StepType.IMPLEMENTATION, dependencies=("triage",)
                ),
            ),
        )

        decomposition = decomposer.decompose(bug_task)

        assert {step.id for step in decomposition.steps} == {"triage", "hotfix"}

    def test_register_callable_rule(self, bug_task: TaskSpecification) -> None:
        seen = []

        def rule(task_spec, complexity):
            seen.append(complexity)
            return (StepBlueprint("only", "Only step", StepType.IMPLEMENTATION),)

        decomposer = TaskDecomposer()
        decomposer.register_rule("bug_fix", rule)

        decomposition = decomposer.decompose(bug_task)

        assert [step.id for step in decomposition.steps] == ["only"]
        assert len(seen) == 1

    def test_statistics(self) -> None:
        decomposer = TaskDecomposer()
        decomposer.register_rule(
            "migration", (StepBlueprint("move", "Move data", StepType.IMPLEMENTATION),)
        )

        stats = decomposer.get_statistics()

        assert "migration" in stats["available_rules"]
        assert stats["classifier_patterns"][:2] == ["feature_addition", "bug_fix"]
        assert stats["priority_weights"]["essential"] == 100


def test_validate_task_spec_accepts_complete_task(bug_task: TaskSpecification) -> None:
    validate_task_spec(bug_task)
