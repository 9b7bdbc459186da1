"""
Task decomposition rules and scoring.

Pure functions: task classification, complexity scoring, the per-type step
graphs, step prioritization, MVP core selection, phasing, duration and risk
estimates. The TaskDecomposer service composes them.
"""

import heapq
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from mvpflow.domain.graph import dependency_chains, parallel_groups
from mvpflow.domain.models import (
    Complexity,
    PriorityTier,
    RiskLevel,
    Step,
    StepType,
    TaskSpecification,
    TaskType,
)

# =============================================================================
# CLASSIFICATION AND COMPLEXITY
# =============================================================================

# Ordered: first match wins
TASK_PATTERNS: tuple[tuple[TaskType, re.Pattern[str]], ...] = (
    (TaskType.FEATURE_ADDITION, re.compile(r"\b(add|implement|create|build|develop|new)\b")),
    (TaskType.BUG_FIX, re.compile(r"\b(fix|debug|resolve|correct|patch|repair)\b")),
    (TaskType.REFACTORING, re.compile(r"\b(refactor|restructure|reorganize|improve|optimize)\b")),
    (TaskType.TESTING, re.compile(r"\b(test|validate|verify|check|ensure)\b")),
    (TaskType.DOCUMENTATION, re.compile(r"\b(document|write|explain|describe|guide)\b")),
    (TaskType.MAINTENANCE, re.compile(r"\b(update|upgrade|maintain|clean|remove)\b")),
    (TaskType.INTEGRATION, re.compile(r"\b(integrate|connect|link|merge|combine)\b")),
    (TaskType.INVESTIGATION, re.compile(r"\b(investigate|analyze|explore|research|study)\b")),
)

CRITICAL_CONSTRAINTS = ("performance", "security", "scalability")


def classify_task(task_spec: TaskSpecification) -> TaskType:
    """Classify by the first keyword pattern matching title and description."""
    text = task_spec.text
    for task_type, pattern in TASK_PATTERNS:
        if pattern.search(text):
            return task_type
    return TaskType.GENERAL


def complexity_score(task_spec: TaskSpecification) -> int:
    score = len(task_spec.requirements) * 5

    description_length = len(task_spec.description or "")
    if description_length > 500:
        score += 20
    elif description_length > 200:
        score += 10

    score += len(task_spec.constraints) * 3
    if any(key in task_spec.constraints for key in CRITICAL_CONSTRAINTS):
        score += 15

    if len(task_spec.acceptance_criteria) > 5:
        score += 10
    return score


def complexity_for_score(score: int) -> Complexity:
    if score >= 50:
        return Complexity.HIGH
    if score >= 25:
        return Complexity.MEDIUM
    return Complexity.LOW


# =============================================================================
# STEP GRAPHS
# =============================================================================


@dataclass(frozen=True)
class StepBlueprint:
    """
    One node of a decomposition rule graph.

    ``high_effort`` and ``high_risk`` replace the base values for high
    complexity tasks. ``match_terms`` are extra phrases that, like the step
    name, earn the requirement-match bonus.
    """

    id: str
    name: str
    type: StepType
    dependencies: tuple[str, ...] = ()
    effort: float = 2.0
    high_effort: float | None = None
    risk: RiskLevel = RiskLevel.MEDIUM
    high_risk: RiskLevel | None = None
    blocking: bool = False
    foundation: bool = False
    user_facing: bool = False
    testable: bool = True
    match_terms: tuple[str, ...] = ()

    def effort_for(self, complexity: Complexity) -> float:
        if complexity is Complexity.HIGH and self.high_effort is not None:
            return self.high_effort
        return self.effort

    def risk_for(self, complexity: Complexity) -> RiskLevel:
        if complexity is Complexity.HIGH and self.high_risk is not None:
            return self.high_risk
        return self.risk


DecompositionRule = Callable[[TaskSpecification, Complexity], Sequence[StepBlueprint]]


FEATURE_ADDITION_STEPS = (
    StepBlueprint(
        "analyze_requirements", "Analyze Requirements", StepType.ANALYSIS,
        effort=2, high_effort=4, risk=RiskLevel.LOW, blocking=True, foundation=True,
        match_terms=("requirement",),
    ),
    StepBlueprint(
        "design_solution", "Design Solution", StepType.DESIGN,
        dependencies=("analyze_requirements",), effort=3, high_effort=6,
        blocking=True, match_terms=("design",),
    ),
    StepBlueprint(
        "implement_core", "Implement Core Functionality", StepType.IMPLEMENTATION,
        dependencies=("design_solution",), effort=4, high_effort=8,
        blocking=True, foundation=True, user_facing=True,
    ),
    StepBlueprint(
        "add_validation", "Add Input Validation", StepType.IMPLEMENTATION,
        dependencies=("implement_core",), effort=2, risk=RiskLevel.LOW,
        match_terms=("validation",),
    ),
    StepBlueprint(
        "implement_ui", "Implement User Interface", StepType.IMPLEMENTATION,
        dependencies=("implement_core",), effort=3, high_effort=6, user_facing=True,
        match_terms=("user interface",),
    ),
    StepBlueprint(
        "add_tests", "Add Tests", StepType.TESTING,
        dependencies=("implement_core",), effort=3, risk=RiskLevel.LOW,
        match_terms=("tests",),
    ),
    StepBlueprint(
        "integration_testing", "Integration Testing", StepType.TESTING,
        dependencies=("implement_ui", "add_tests"), effort=2, risk=RiskLevel.LOW,
    ),
)

BUG_FIX_STEPS = (
    StepBlueprint(
        "reproduce_issue", "Reproduce Issue", StepType.INVESTIGATION,
        effort=2, risk=RiskLevel.LOW, blocking=True, foundation=True,
        match_terms=("reproduce",),
    ),
    StepBlueprint(
        "identify_root_cause", "Identify Root Cause", StepType.INVESTIGATION,
        dependencies=("reproduce_issue",), effort=3, high_effort=6,
        high_risk=RiskLevel.HIGH, blocking=True, match_terms=("root cause",),
    ),
    StepBlueprint(
        "implement_fix", "Implement Fix", StepType.IMPLEMENTATION,
        dependencies=("identify_root_cause",), effort=2, high_effort=4,
        blocking=True, user_facing=True, match_terms=("fix", "patch"),
    ),
    StepBlueprint(
        "add_regression_tests", "Add Regression Tests", StepType.TESTING,
        dependencies=("implement_fix",), effort=2, risk=RiskLevel.LOW,
        match_terms=("regression",),
    ),
    StepBlueprint(
        "verify_fix", "Verify Fix", StepType.VERIFICATION,
        dependencies=("add_regression_tests",), effort=1, risk=RiskLevel.LOW,
        match_terms=("verify",),
    ),
)

REFACTORING_STEPS = (
    StepBlueprint(
        "analyze_current_code", "Analyze Current Code", StepType.ANALYSIS,
        effort=3, high_effort=6, risk=RiskLevel.LOW, blocking=True, foundation=True,
    ),
    StepBlueprint(
        "identify_refactoring_targets", "Identify Refactoring Targets", StepType.ANALYSIS,
        dependencies=("analyze_current_code",), effort=2, risk=RiskLevel.LOW,
    ),
    StepBlueprint(
        "create_safety_tests", "Create Safety Tests", StepType.TESTING,
        dependencies=("analyze_current_code",), effort=4, risk=RiskLevel.LOW,
        match_terms=("tests",),
    ),
    StepBlueprint(
        "refactor_incrementally", "Refactor Incrementally", StepType.IMPLEMENTATION,
        dependencies=("create_safety_tests", "identify_refactoring_targets"),
        effort=6, high_effort=10, match_terms=("refactor",),
    ),
    StepBlueprint(
        "validate_refactoring", "Validate Refactoring", StepType.VERIFICATION,
        dependencies=("refactor_incrementally",), effort=2, risk=RiskLevel.LOW,
    ),
)

TESTING_STEPS = (
    StepBlueprint(
        "plan_test_strategy", "Plan Test Strategy", StepType.PLANNING,
        effort=2, risk=RiskLevel.LOW, blocking=True, foundation=True,
        match_terms=("strategy",),
    ),
    StepBlueprint(
        "create_unit_tests", "Create Unit Tests", StepType.TESTING,
        dependencies=("plan_test_strategy",), effort=4, high_effort=6,
        blocking=True, match_terms=("unit test",),
    ),
    StepBlueprint(
        "create_integration_tests", "Create Integration Tests", StepType.TESTING,
        dependencies=("create_unit_tests",), effort=3, high_effort=5,
        match_terms=("integration test",),
    ),
    StepBlueprint(
        "run_test_suite", "Run Complete Test Suite", StepType.VERIFICATION,
        dependencies=("create_integration_tests",), effort=1, risk=RiskLevel.LOW,
    ),
)

DOCUMENTATION_STEPS = (
    StepBlueprint(
        "analyze_documentation_needs", "Analyze Documentation Needs", StepType.ANALYSIS,
        effort=2, risk=RiskLevel.LOW, blocking=True, foundation=True,
    ),
    StepBlueprint(
        "create_structure", "Create Documentation Structure", StepType.PLANNING,
        dependencies=("analyze_documentation_needs",), effort=1, risk=RiskLevel.LOW,
        match_terms=("structure", "outline"),
    ),
    StepBlueprint(
        "write_content", "Write Documentation Content", StepType.IMPLEMENTATION,
        dependencies=("create_structure",), effort=4, high_effort=6,
        blocking=True, user_facing=True,
    ),
    StepBlueprint(
        "review_and_edit", "Review and Edit", StepType.VERIFICATION,
        dependencies=("write_content",), effort=2, risk=RiskLevel.LOW,
        match_terms=("review",),
    ),
)

GENERAL_STEPS = (
    StepBlueprint(
        "understand_requirements", "Understand Requirements", StepType.ANALYSIS,
        effort=2, risk=RiskLevel.LOW, blocking=True, foundation=True,
    ),
    StepBlueprint(
        "plan_approach", "Plan Approach", StepType.PLANNING,
        dependencies=("understand_requirements",), effort=2, risk=RiskLevel.LOW,
    ),
    StepBlueprint(
        "implement_solution", "Implement Solution", StepType.IMPLEMENTATION,
        dependencies=("plan_approach",), effort=4, high_effort=8,
        blocking=True, foundation=True, user_facing=True,
    ),
    StepBlueprint(
        "verify_solution", "Verify Solution", StepType.VERIFICATION,
        dependencies=("implement_solution",), effort=2, risk=RiskLevel.LOW,
    ),
)


def static_rule(blueprints: Sequence[StepBlueprint]) -> DecompositionRule:
    """A rule that always yields the same graph."""
    frozen = tuple(blueprints)

    def rule(task_spec: TaskSpecification, complexity: Complexity) -> Sequence[StepBlueprint]:
        return frozen

    return rule


BUILTIN_RULES: Mapping[str, Sequence[StepBlueprint]] = {
    TaskType.FEATURE_ADDITION.value: FEATURE_ADDITION_STEPS,
    TaskType.BUG_FIX.value: BUG_FIX_STEPS,
    TaskType.REFACTORING.value: REFACTORING_STEPS,
    TaskType.TESTING.value: TESTING_STEPS,
    TaskType.DOCUMENTATION.value: DOCUMENTATION_STEPS,
    TaskType.GENERAL.value: GENERAL_STEPS,
}


# =============================================================================
# PRIORITIZATION
# =============================================================================


def priority_score(
    blueprint: StepBlueprint,
    task_spec: TaskSpecification,
    complexity: Complexity,
    prioritize_quick_wins: bool = False,
) -> int:
    score = 0
    if blueprint.blocking or blueprint.foundation:
        score += 30
    if blueprint.user_facing:
        score += 20

    risk = blueprint.risk_for(complexity)
    if risk is RiskLevel.LOW:
        score += 15
    elif risk is RiskLevel.HIGH:
        score -= 10

    if not blueprint.dependencies:
        score += 10
    if blueprint.testable:
        score += 5

    terms = (blueprint.name.lower(), *(t.lower() for t in blueprint.match_terms))
    if any(term in req.lower() for req in task_spec.requirements for term in terms):
        score += 15

    if prioritize_quick_wins and blueprint.effort_for(complexity) < 4:
        score += 10
    return score


def tier_for_score(score: int) -> PriorityTier:
    if score >= 70:
        return PriorityTier.ESSENTIAL
    if score >= 45:
        return PriorityTier.IMPORTANT
    if score >= 20:
        return PriorityTier.NICE_TO_HAVE
    return PriorityTier.FUTURE


def build_steps(
    blueprints: Sequence[StepBlueprint],
    task_spec: TaskSpecification,
    complexity: Complexity,
    prioritize_quick_wins: bool = False,
) -> list[Step]:
    """
    Materialize blueprints into prioritized steps, sorted by weight.

    The sort is stable, so equal weights keep graph declaration order.
    """
    steps = []
    for blueprint in blueprints:
        tier = tier_for_score(
            priority_score(blueprint, task_spec, complexity, prioritize_quick_wins)
        )
        steps.append(
            Step(
                id=blueprint.id,
                name=blueprint.name,
                type=blueprint.type,
                dependencies=list(blueprint.dependencies),
                estimated_effort=blueprint.effort_for(complexity),
                risk_level=blueprint.risk_for(complexity),
                user_facing=blueprint.user_facing,
                priority=tier,
                mvp_level=tier.mvp_level,
                weight=tier.weight,
            )
        )
    steps.sort(key=lambda s: s.weight or 0, reverse=True)
    return steps


def execution_order(steps: Sequence[Step]) -> list[Step]:
    """
    Topological order that prefers higher-weight steps among the ready ones.

    Steps caught in a cycle cannot become ready; they are appended in their
    given order.
    """
    position = {step.id: index for index, step in enumerate(steps)}
    by_id = {step.id: step for step in steps}
    remaining = {
        step.id: {d for d in step.dependencies if d in by_id} for step in steps
    }
    dependents: dict[str, list[str]] = {step.id: [] for step in steps}
    for step_id, deps in remaining.items():
        for dep in deps:
            dependents[dep].append(step_id)

    def key(step_id: str) -> tuple[int, int]:
        return (-(by_id[step_id].weight or 0), position[step_id])

    ready = [key(step_id) + (step_id,) for step_id, deps in remaining.items() if not deps]
    heapq.heapify(ready)
    ordered: list[Step] = []
    while ready:
        *_, step_id = heapq.heappop(ready)
        ordered.append(by_id[step_id])
        for dependent in dependents[step_id]:
            remaining[dependent].discard(step_id)
            if not remaining[dependent]:
                heapq.heappush(ready, key(dependent) + (dependent,))

    placed = {step.id for step in ordered}
    ordered.extend(step for step in steps if step.id not in placed)
    return ordered


# =============================================================================
# MVP CORE, PHASING, DURATION, RISK
# =============================================================================


@dataclass(frozen=True)
class MVPCore:
    step_ids: tuple[str, ...]
    description: str
    estimated_effort: float
    user_value: int
    risk_level: RiskLevel


@dataclass(frozen=True)
class Phase:
    name: str
    description: str
    mvp_level: int
    step_ids: tuple[str, ...]


@dataclass(frozen=True)
class DurationEstimate:
    total_effort: float
    estimated_hours: float
    parallelization_possible: bool
    potential_savings: float  # percent


@dataclass(frozen=True)
class RiskItem:
    type: str
    level: RiskLevel
    description: str
    mitigation: str


@dataclass(frozen=True)
class Decomposition:
    task_type: TaskType
    complexity: Complexity
    complexity_score: int
    steps: tuple[Step, ...]  # sorted by priority weight
    mvp_core: MVPCore
    dependencies: Mapping[str, tuple[str, ...]]
    estimated_duration: DurationEstimate
    phasing: tuple[Phase, ...]
    risk_assessment: tuple[RiskItem, ...]


PHASES = (
    (1, "MVP Core", "Essential functionality for minimum viable product"),
    (2, "MVP Extended", "Important features that enhance the core"),
    (3, "Enhancement", "Nice-to-have improvements"),
    (4, "Future", "Features deferred to later iterations"),
)


def dependency_map(steps: Sequence[Step]) -> dict[str, tuple[str, ...]]:
    """Step id to the dependency ids that name a step in the same set."""
    known = {step.id for step in steps}
    return {
        step.id: tuple(d for d in step.dependencies if d in known) for step in steps
    }


def identify_mvp_core(steps: Sequence[Step], task_spec: TaskSpecification) -> MVPCore:
    """
    Collect the level-1 steps.

    When nothing scored essential, the highest-weight step is promoted to
    level 1 so the core is never empty.
    """
    core = [step for step in steps if step.mvp_level == 1]
    if not core and steps:
        best = steps[0]
        for step in steps[1:]:
            if (step.weight or 0) > (best.weight or 0):
                best = step
        best.mvp_level = 1
        core = [best]

    levels = [step.risk_level for step in core]
    if RiskLevel.HIGH in levels:
        risk = RiskLevel.HIGH
    elif levels.count(RiskLevel.MEDIUM) > levels.count(RiskLevel.LOW):
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.LOW

    return MVPCore(
        step_ids=tuple(step.id for step in core),
        description=f"Minimum viable implementation of: {task_spec.title}",
        estimated_effort=sum(step.estimated_effort or 2 for step in core),
        user_value=sum(1 for step in core if step.user_facing),
        risk_level=risk,
    )


def create_phasing(steps: Sequence[Step]) -> tuple[Phase, ...]:
    phases = []
    for level, name, description in PHASES:
        ids = tuple(step.id for step in steps if step.mvp_level == level)
        if ids:
            phases.append(Phase(name, description, level, ids))
    return tuple(phases)


def estimate_duration(steps: Sequence[Step]) -> DurationEstimate:
    total = sum(step.estimated_effort or 2 for step in steps)
    groups = parallel_groups(dependency_map(steps))
    factor = min(1.5, 1 + len(groups) * 0.1)
    return DurationEstimate(
        total_effort=total,
        estimated_hours=total * 2,
        parallelization_possible=bool(groups),
        potential_savings=round((factor - 1) * 100),
    )


def assess_risks(
    steps: Sequence[Step], time_limit: float | None = None
) -> tuple[RiskItem, ...]:
    risks = []

    high_risk = [step for step in steps if step.risk_level is RiskLevel.HIGH]
    if high_risk:
        risks.append(
            RiskItem(
                type="execution",
                level=RiskLevel.HIGH,
                description=f"{len(high_risk)} high-risk steps identified",
                mitigation="Prototype or build a proof of concept for high-risk steps",
            )
        )

    if dependency_chains(dependency_map(steps)):
        risks.append(
            RiskItem(
                type="dependency",
                level=RiskLevel.MEDIUM,
                description="Complex dependency chains detected",
                mitigation="Monitor dependency fulfillment closely and keep fallback plans",
            )
        )

    if time_limit is not None and estimate_duration(steps).estimated_hours > time_limit:
        risks.append(
            RiskItem(
                type="schedule",
                level=RiskLevel.HIGH,
                description="Estimated duration exceeds time constraints",
                mitigation="Reduce scope or focus on the MVP core only",
            )
        )
    return tuple(risks)
