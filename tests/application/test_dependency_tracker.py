"""Tests for DependencyTracker: tracking, readiness and resolution."""

import pytest

from mvpflow.application.dependency_tracker import (
    DependencyResult,
    DependencyTracker,
    ResolutionContext,
    ResolutionOutcome,
    ResolutionStrategy,
    select_strategy,
)
from mvpflow.domain.models import Step, StepStatus, TaskSpecification, WorkflowInstance


def make_instance(workflow_id: str = "wf-deps") -> WorkflowInstance:
    """a -> b (optional) -> c, plus a dangling dependency on 'ghost'."""
    return WorkflowInstance(
        id=workflow_id,
        task_spec=TaskSpecification(title="T", description="D", requirements=("R",)),
        steps=[
            Step(id="a", name="A"),
            Step(id="b", name="B", dependencies=["a"], required=False),
            Step(id="c", name="C", dependencies=["b", "ghost"]),
        ],
    )


class TestTracking:
    """Tests for track() and graph lifecycle."""

    def test_track_builds_graph_and_sets_tracking_id(self, tracker: DependencyTracker) -> None:
        instance = make_instance()

        result = tracker.track(instance)

        assert instance.tracking_id == result.tracking_id
        assert tracker.is_tracking("wf-deps")
        assert result.graph.unresolved == [("c", "ghost")]
        assert result.analysis.critical_path == ("a", "b", "c")

    def test_forget(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())

        tracker.forget("wf-deps")

        assert tracker.get_graph("wf-deps") is None

    def test_graphs_are_isolated_per_workflow(self, tracker: DependencyTracker) -> None:
        """Status updates in one workflow do not leak into another."""
        tracker.track(make_instance("wf-1"))
        tracker.track(make_instance("wf-2"))

        tracker.update_step_status("wf-1", "a", StepStatus.COMPLETED)

        assert tracker.get_graph("wf-2").nodes["a"].status is StepStatus.PENDING


class TestReadiness:
    """Tests for dependency checks and status updates."""

    def test_pending_dependency_blocks(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())

        check = tracker.check_step_dependencies("wf-deps", "b")

        assert not check.all_satisfied
        assert [r.dependency_id for r in check.blocking] == ["a"]
        assert check.blocking[0].strategy is ResolutionStrategy.WAIT_FOR_COMPLETION

    def test_optional_dependency_does_not_block(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())

        check = tracker.check_step_dependencies("wf-deps", "c")

        assert check.all_satisfied
        assert [r.dependency_id for r in check.optional] == ["b"]

    def test_completion_unblocks_dependents(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())

        unblocked = tracker.update_step_status("wf-deps", "a", StepStatus.COMPLETED)

        assert unblocked == ["b"]
        assert tracker.check_step_dependencies("wf-deps", "b").all_satisfied

    def test_skipped_counts_as_satisfied(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())

        unblocked = tracker.update_step_status("wf-deps", "b", StepStatus.SKIPPED)

        assert unblocked == ["c"]

    def test_untracked_workflow_reports_error(self, tracker: DependencyTracker) -> None:
        check = tracker.check_step_dependencies("missing", "a")

        assert not check.all_satisfied
        assert "No dependency tracking" in check.error

    def test_blocking_condition_marks_dependency_blocked(
        self, tracker: DependencyTracker
    ) -> None:
        tracker.track(make_instance())
        condition = tracker.add_blocking_condition("wf-deps", "a", "waiting on review")

        check = tracker.check_step_dependencies("wf-deps", "b")
        status = tracker.get_dependency_status("wf-deps")

        assert check.blocking[0].status is StepStatus.BLOCKED
        assert check.blocking[0].strategy is ResolutionStrategy.RESOLVE_BLOCKING
        assert "a" in [b.step_id for b in status.blocked]
        assert tracker.remove_blocking_condition("wf-deps", condition)

    def test_dependency_status(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())
        tracker.update_step_status("wf-deps", "a", StepStatus.COMPLETED)

        status = tracker.get_dependency_status("wf-deps")

        assert status.completed == ("a",)
        assert status.ready == ("b",)
        assert [(b.step_id, b.blocking) for b in status.blocked] == [("c", ("b",))]


class TestStrategySelection:
    """Tests for select_strategy."""

    @pytest.mark.parametrize(
        "status,required,expected",
        [
            (StepStatus.FAILED, True, ResolutionStrategy.RETRY_DEPENDENCY),
            (StepStatus.PENDING, True, ResolutionStrategy.WAIT_FOR_COMPLETION),
            (StepStatus.RUNNING, False, ResolutionStrategy.WAIT_FOR_COMPLETION),
            (StepStatus.BLOCKED, True, ResolutionStrategy.RESOLVE_BLOCKING),
            (StepStatus.COMPLETED, False, ResolutionStrategy.SKIP_OPTIONAL),
            (StepStatus.COMPLETED, True, ResolutionStrategy.MANUAL_INTERVENTION),
        ],
    )
    def test_select_strategy(
        self, status: StepStatus, required: bool, expected: ResolutionStrategy
    ) -> None:
        assert select_strategy(status, required) is expected


class TestResolution:
    """Tests for resolve_blocking_dependencies."""

    @pytest.mark.asyncio
    async def test_wait_times_out_and_stays_blocking(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())
        blocking = tracker.check_step_dependencies("wf-deps", "b").blocking

        report = await tracker.resolve_blocking_dependencies("wf-deps", blocking)

        assert report.resolved == 0
        assert [o.dependency_id for o in report.remaining_blocks] == ["a"]

    @pytest.mark.asyncio
    async def test_retry_hook_resolves_failed_dependency(self) -> None:
        calls = []

        def retry(workflow_id, dependency_id, attempt):
            calls.append(attempt)
            return attempt == 2

        tracker = DependencyTracker(retry_hook=retry)
        tracker.track(make_instance())
        tracker.update_step_status("wf-deps", "a", StepStatus.FAILED)
        blocking = tracker.check_step_dependencies("wf-deps", "b").blocking

        report = await tracker.resolve_blocking_dependencies(
            "wf-deps", blocking, ResolutionContext(backoff=0)
        )

        assert calls == [1, 2]
        assert report.resolved == 1
        assert tracker.get_graph("wf-deps").nodes["a"].status is StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_resolve_blocking_falls_back_to_manual(
        self, tracker: DependencyTracker
    ) -> None:
        tracker.track(make_instance())
        dependency = DependencyResult(
            dependency_id="a",
            satisfied=False,
            required=True,
            status=StepStatus.BLOCKED,
            strategy=ResolutionStrategy.RESOLVE_BLOCKING,
        )

        report = await tracker.resolve_blocking_dependencies("wf-deps", [dependency])

        assert report.results[0].strategy == "manual_intervention"
        assert report.remaining_blocks

    @pytest.mark.asyncio
    async def test_registered_strategy_handler_is_used(
        self, tracker: DependencyTracker
    ) -> None:
        def approve(workflow_id, dependency, context):
            return ResolutionOutcome(
                dependency.dependency_id, "resolve_blocking", resolved=True, blocking=False
            )

        tracker.register_strategy("resolve_blocking", approve)
        dependency = DependencyResult(
            dependency_id="a",
            satisfied=False,
            required=True,
            status=StepStatus.BLOCKED,
            strategy=ResolutionStrategy.RESOLVE_BLOCKING,
        )

        report = await tracker.resolve_blocking_dependencies("wf-deps", [dependency])

        assert report.resolved == 1
        assert tracker.get_statistics()["strategy_usage"] == {"resolve_blocking": 1}


class TestHousekeeping:
    """Tests for statistics and cleanup."""

    def test_cleanup_removes_old_finished_graphs(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())
        tracker.update_step_status("wf-deps", "a", StepStatus.COMPLETED)
        tracker.update_step_status("wf-deps", "b", StepStatus.SKIPPED)
        tracker.update_step_status("wf-deps", "c", StepStatus.FAILED)

        assert tracker.cleanup(max_age=-1) == 1
        assert not tracker.is_tracking("wf-deps")

    def test_cleanup_keeps_graphs_with_pending_steps(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())
        tracker.update_step_status("wf-deps", "a", StepStatus.COMPLETED)

        assert tracker.cleanup(max_age=-1) == 0
        assert tracker.is_tracking("wf-deps")
        assert tracker.get_graph("wf-deps") is not None

    def test_statistics(self, tracker: DependencyTracker) -> None:
        tracker.track(make_instance())

        stats = tracker.get_statistics()

        assert stats["tracked_workflows"] == 1
        assert stats["total_nodes"] == 3
        assert stats["total_dependencies"] == 2
