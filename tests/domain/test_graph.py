"""Tests for dependency graph construction and graph algorithms."""

from mvpflow.domain.graph import (
    DependencyGraph,
    analyze,
    critical_path,
    detect_cycles,
    has_transitive_dependency,
    parallel_groups,
)
from mvpflow.domain.models import RiskLevel, Step


def make_steps(spec: dict[str, list[str]], effort: float = 2.0) -> list[Step]:
    return [
        Step(id=step_id, name=step_id, dependencies=deps, estimated_effort=effort)
        for step_id, deps in spec.items()
    ]


class TestGraphConstruction:
    """Tests for DependencyGraph.from_steps."""

    def test_builds_reverse_edges(self) -> None:
        """Dependents are derived from dependency lists."""
        graph = DependencyGraph.from_steps("wf", make_steps({"A": [], "B": ["A"], "C": ["A"]}))

        assert graph.nodes["A"].dependents == ["B", "C"]
        assert graph.edges == [("A", "B"), ("A", "C")]

    def test_unresolved_dependencies_are_dropped(self) -> None:
        """Unknown ids are recorded but create no edge."""
        graph = DependencyGraph.from_steps("wf", make_steps({"A": ["ghost"]}))

        assert graph.unresolved == [("A", "ghost")]
        assert graph.edges == []
        assert graph.nodes["A"].dependencies == []


class TestCriticalPath:
    """Tests for the effort-weighted critical path."""

    def test_fork_takes_a_and_one_branch(self) -> None:
        """A -> {B, C}: path has A and exactly one of B, C."""
        deps = {"A": [], "B": ["A"], "C": ["A"]}

        path = critical_path(deps, {"A": 2, "B": 2, "C": 2})

        assert path[0] == "A"
        assert len(path) == 2
        assert len({"B", "C"} & set(path)) == 1

    def test_tie_goes_to_first_declared_sink(self) -> None:
        """Equal-length sinks resolve to declaration order."""
        deps = {"A": [], "B": ["A"], "C": ["A"]}

        assert critical_path(deps, {"A": 1, "B": 1, "C": 1}) == ["A", "B"]

    def test_heavier_branch_wins(self) -> None:
        """The longer weighted branch is chosen."""
        deps = {"A": [], "B": ["A"], "C": ["A"]}

        assert critical_path(deps, {"A": 1, "B": 1, "C": 5}) == ["A", "C"]

    def test_trace_back_follows_longest_predecessor(self) -> None:
        """D joins B (long) and C (short); trace-back follows B."""
        deps = {"A": [], "B": ["A"], "C": [], "D": ["C", "B"]}

        path = critical_path(deps, {"A": 3, "B": 3, "C": 1, "D": 1})

        assert path == ["A", "B", "D"]

    def test_deep_chain_does_not_recurse(self) -> None:
        """A 5000-step chain is handled iteratively."""
        deps = {"s0": []}
        deps.update({f"s{i}": [f"s{i - 1}"] for i in range(1, 5000)})

        path = critical_path(deps, {k: 1.0 for k in deps})

        assert len(path) == 5000
        assert path[0] == "s0"


class TestCycles:
    """Tests for cycle detection."""

    def test_three_node_cycle(self) -> None:
        """A -> B -> C -> A is reported once, closed by the repeated node."""
        deps = {"A": ["B"], "B": ["C"], "C": ["A"]}

        assert detect_cycles(deps) == [["A", "B", "C", "A"]]

    def test_removing_an_edge_breaks_the_cycle(self) -> None:
        """Without C -> A there is no cycle."""
        deps = {"A": ["B"], "B": ["C"], "C": []}

        assert detect_cycles(deps) == []

    def test_cycles_are_analysis_output(self) -> None:
        """analyze() reports cycles instead of raising."""
        graph = DependencyGraph.from_steps(
            "wf", make_steps({"A": ["C"], "B": ["A"], "C": ["B"]})
        )

        analysis = analyze(graph)

        assert analysis.has_cycles
        assert analysis.critical_path == ()


class TestParallelGroups:
    """Tests for parallel group identification."""

    def test_siblings_form_a_group(self) -> None:
        """B and C both depend only on A."""
        assert parallel_groups({"A": [], "B": ["A"], "C": ["A"]}) == [["B", "C"]]

    def test_candidate_must_fit_every_member(self) -> None:
        """C depends on B, so it cannot join a group containing B."""
        deps = {"A": [], "B": [], "C": ["B"]}

        assert parallel_groups(deps) == [["A", "B"]]

    def test_transitive_dependency(self) -> None:
        """Reachability follows dependency chains."""
        deps = {"A": [], "B": ["A"], "C": ["B"]}

        assert has_transitive_dependency(deps, "C", "A")
        assert not has_transitive_dependency(deps, "A", "C")


class TestAnalysisRisks:
    """Tests for structural risk detection."""

    def test_high_risk_bottleneck(self) -> None:
        """A high-risk step with more than two dependents is flagged."""
        steps = make_steps({"hub": [], "x": ["hub"], "y": ["hub"], "z": ["hub"]})
        steps[0].risk_level = RiskLevel.HIGH

        analysis = analyze(DependencyGraph.from_steps("wf", steps))

        assert [r.type for r in analysis.risks] == ["high_risk_bottleneck"]
        assert analysis.risks[0].severity is RiskLevel.HIGH

    def test_totals(self) -> None:
        """Node, edge and effort totals."""
        analysis = analyze(
            DependencyGraph.from_steps("wf", make_steps({"A": [], "B": ["A"]}, effort=3))
        )

        assert (analysis.node_count, analysis.edge_count, analysis.total_effort) == (2, 1, 6)
