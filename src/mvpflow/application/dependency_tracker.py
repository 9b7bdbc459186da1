"""
Dependency Tracker service.

Builds one dependency graph per workflow instance, answers readiness
questions for the Execution Engine, and resolves blocking dependencies
through a table of resolution strategies.

Graphs are keyed by workflow id. Each workflow has its own lock, so
concurrent workflows sharing one tracker never observe each other's
half-applied updates.
"""

import asyncio
import inspect
import logging
import threading
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from mvpflow.domain.graph import DependencyGraph, GraphAnalysis, analyze
from mvpflow.domain.models import StepStatus, WorkflowInstance, utc_now

logger = logging.getLogger(__name__)

SATISFIED_STATUSES = frozenset({StepStatus.COMPLETED, StepStatus.SKIPPED})
FINISHED_STATUSES = SATISFIED_STATUSES | {StepStatus.FAILED}
HISTORY_LIMIT = 1000
HISTORY_KEEP = 500

# Retry hook contract: (workflow_id, dependency_id, attempt) -> bool | Awaitable[bool]
RetryHook = Callable[[str, str, int], bool | Awaitable[bool]]


class ResolutionStrategy(str, Enum):
    WAIT_FOR_COMPLETION = "wait_for_completion"
    RETRY_DEPENDENCY = "retry_dependency"
    SKIP_OPTIONAL = "skip_optional"
    RESOLVE_BLOCKING = "resolve_blocking"
    MANUAL_INTERVENTION = "manual_intervention"


@dataclass(frozen=True)
class ResolutionContext:
    """
    Limits for resolving blocking dependencies.

    Attributes:
        max_wait: Seconds ``wait_for_completion`` may wait (0 checks once)
        poll_interval: Seconds between graph polls while waiting
        max_retries: Attempts made by ``retry_dependency``
        backoff: Base delay in seconds, multiplied by the attempt number
    """

    max_wait: float = 0.0
    poll_interval: float = 1.0
    max_retries: int = 3
    backoff: float = 1.0


@dataclass(frozen=True)
class DependencyResult:
    dependency_id: str
    satisfied: bool
    required: bool
    status: StepStatus
    strategy: ResolutionStrategy | None = None


@dataclass(frozen=True)
class DependencyCheck:
    step_id: str
    all_satisfied: bool
    results: tuple[DependencyResult, ...] = ()
    blocking: tuple[DependencyResult, ...] = ()
    optional: tuple[DependencyResult, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class ResolutionOutcome:
    dependency_id: str
    strategy: str
    resolved: bool
    blocking: bool
    message: str = ""


@dataclass(frozen=True)
class ResolutionReport:
    total: int
    resolved: int
    failed: int
    results: tuple[ResolutionOutcome, ...]
    remaining_blocks: tuple[ResolutionOutcome, ...]


@dataclass(frozen=True)
class TrackingResult:
    tracking_id: str
    graph: DependencyGraph
    analysis: GraphAnalysis


@dataclass(frozen=True)
class BlockedStep:
    step_id: str
    blocking: tuple[str, ...]


@dataclass(frozen=True)
class DependencyStatus:
    workflow_id: str
    total_steps: int
    ready: tuple[str, ...]
    blocked: tuple[BlockedStep, ...]
    completed: tuple[str, ...]
    critical_path: tuple[str, ...]


@dataclass(frozen=True)
class BlockingCondition:
    condition_id: str
    step_id: str
    reason: str
    created_at: datetime


@dataclass(frozen=True)
class ResolutionRecord:
    workflow_id: str
    dependency_id: str
    strategy: str
    resolved: bool
    timestamp: datetime


StrategyHandler = Callable[
    [str, DependencyResult, ResolutionContext], Awaitable[ResolutionOutcome] | ResolutionOutcome
]


def select_strategy(status: StepStatus, required: bool) -> ResolutionStrategy:
    """Pick a resolution strategy from a blocking dependency's state."""
    if status is StepStatus.FAILED:
        return ResolutionStrategy.RETRY_DEPENDENCY
    if status in (StepStatus.PENDING, StepStatus.RUNNING):
        return ResolutionStrategy.WAIT_FOR_COMPLETION
    if status is StepStatus.BLOCKED:
        return ResolutionStrategy.RESOLVE_BLOCKING
    if not required:
        return ResolutionStrategy.SKIP_OPTIONAL
    return ResolutionStrategy.MANUAL_INTERVENTION


class DependencyTracker:
    """Per-workflow dependency graphs with readiness checks and resolution."""

    def __init__(
        self,
        retry_hook: RetryHook | None = None,
        history_limit: int = HISTORY_LIMIT,
    ) -> None:
        self._retry_hook = retry_hook
        self._history_limit = history_limit
        self._graphs: dict[str, DependencyGraph] = {}
        self._conditions: dict[str, dict[str, BlockingCondition]] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._history: list[ResolutionRecord] = []
        self._strategies: dict[str, StrategyHandler] = {
            ResolutionStrategy.WAIT_FOR_COMPLETION.value: self._wait_for_completion,
            ResolutionStrategy.RETRY_DEPENDENCY.value: self._retry_dependency,
            ResolutionStrategy.SKIP_OPTIONAL.value: self._skip_optional,
            ResolutionStrategy.MANUAL_INTERVENTION.value: self._manual_intervention,
        }

    # =========================================================================
    # TRACKING
    # =========================================================================

    @contextmanager
    def _locked(self, workflow_id: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(workflow_id, threading.RLock())
        with lock:
            yield

    def track(self, instance: WorkflowInstance) -> TrackingResult:
        """
        Build and analyze the dependency graph of a workflow instance.

        Unresolved dependency ids are logged and dropped. Cycles are
        reported in the analysis, never raised.
        """
        graph = DependencyGraph.from_steps(instance.id, instance.steps)
        for step_id, missing in graph.unresolved:
            logger.warning(
                "Workflow %s: step '%s' depends on unknown step '%s'; edge dropped",
                instance.id,
                step_id,
                missing,
            )
        analysis = analyze(graph)
        for cycle in analysis.cycles:
            logger.warning(
                "Workflow %s: dependency cycle %s", instance.id, " -> ".join(cycle)
            )

        with self._locked(instance.id):
            self._graphs[instance.id] = graph
            self._conditions.setdefault(instance.id, {})

        tracking_id = f"tracking_{uuid.uuid4().hex[:12]}"
        instance.tracking_id = tracking_id
        logger.info(
            "Tracking %d steps for workflow %s (critical path: %s)",
            len(graph.nodes),
            instance.id,
            " -> ".join(graph.critical_path) or "none",
        )
        return TrackingResult(tracking_id=tracking_id, graph=graph, analysis=analysis)

    def is_tracking(self, workflow_id: str) -> bool:
        with self._registry_lock:
            return workflow_id in self._graphs

    def get_graph(self, workflow_id: str) -> DependencyGraph | None:
        with self._registry_lock:
            return self._graphs.get(workflow_id)

    def forget(self, workflow_id: str) -> None:
        with self._registry_lock:
            self._graphs.pop(workflow_id, None)
            self._conditions.pop(workflow_id, None)
            self._locks.pop(workflow_id, None)

    def _effective_status(self, workflow_id: str, step_id: str) -> StepStatus:
        node = self._graphs[workflow_id].nodes[step_id]
        if node.status in SATISFIED_STATUSES:
            return node.status
        conditions = self._conditions.get(workflow_id, {})
        if any(c.step_id == step_id for c in conditions.values()):
            return StepStatus.BLOCKED
        return node.status

    # =========================================================================
    # READINESS
    # =========================================================================

    def check_step_dependencies(self, workflow_id: str, step_id: str) -> DependencyCheck:
        """
        Check whether every dependency of a step is satisfied.

        COMPLETED and SKIPPED dependencies are satisfied. Unsatisfied
        optional dependencies do not block.
        """
        with self._locked(workflow_id):
            graph = self._graphs.get(workflow_id)
            if graph is None:
                message = f"No dependency tracking found for workflow: {workflow_id}"
                logger.error(message)
                return DependencyCheck(step_id=step_id, all_satisfied=False, error=message)
            node = graph.nodes.get(step_id)
            if node is None:
                message = f"Step not found in dependency graph: {step_id}"
                logger.error(message)
                return DependencyCheck(step_id=step_id, all_satisfied=False, error=message)

            results = []
            for dep_id in node.dependencies:
                status = self._effective_status(workflow_id, dep_id)
                required = graph.nodes[dep_id].required
                satisfied = status in SATISFIED_STATUSES
                results.append(
                    DependencyResult(
                        dependency_id=dep_id,
                        satisfied=satisfied,
                        required=required,
                        status=status,
                        strategy=None if satisfied else select_strategy(status, required),
                    )
                )

        blocking = tuple(r for r in results if not r.satisfied and r.required)
        optional = tuple(r for r in results if not r.satisfied and not r.required)
        return DependencyCheck(
            step_id=step_id,
            all_satisfied=not blocking,
            results=tuple(results),
            blocking=blocking,
            optional=optional,
        )

    def update_step_status(
        self, workflow_id: str, step_id: str, status: StepStatus
    ) -> list[str]:
        """
        Record a step status change.

        Returns:
            Ids of pending dependents that became ready because of it
        """
        with self._locked(workflow_id):
            graph = self._graphs.get(workflow_id)
            if graph is None or step_id not in graph.nodes:
                return []
            node = graph.nodes[step_id]
            node.status = status
            node.last_updated = utc_now()
            if status is StepStatus.COMPLETED:
                node.completed_at = node.last_updated
            if status not in SATISFIED_STATUSES:
                return []

            unblocked = [
                dependent_id
                for dependent_id in node.dependents
                if graph.nodes[dependent_id].status is StepStatus.PENDING
                and all(
                    graph.nodes[d].status in SATISFIED_STATUSES
                    for d in graph.nodes[dependent_id].dependencies
                )
            ]
        if unblocked:
            logger.debug(
                "Workflow %s: %s unblocked by '%s'",
                workflow_id,
                ", ".join(unblocked),
                step_id,
            )
        return unblocked

    def get_dependency_status(self, workflow_id: str) -> DependencyStatus | None:
        with self._locked(workflow_id):
            graph = self._graphs.get(workflow_id)
            if graph is None:
                return None
            ready, blocked, completed = [], [], []
            for step_id, node in graph.nodes.items():
                if node.status in SATISFIED_STATUSES:
                    completed.append(step_id)
                    continue
                pending = tuple(
                    d
                    for d in node.dependencies
                    if self._effective_status(workflow_id, d) not in SATISFIED_STATUSES
                )
                if pending or self._effective_status(workflow_id, step_id) is StepStatus.BLOCKED:
                    blocked.append(BlockedStep(step_id=step_id, blocking=pending))
                else:
                    ready.append(step_id)
            return DependencyStatus(
                workflow_id=workflow_id,
                total_steps=len(graph.nodes),
                ready=tuple(ready),
                blocked=tuple(blocked),
                completed=tuple(completed),
                critical_path=tuple(graph.critical_path),
            )

    # =========================================================================
    # BLOCKING CONDITIONS
    # =========================================================================

    def add_blocking_condition(
        self, workflow_id: str, step_id: str, reason: str, condition_id: str | None = None
    ) -> str:
        """Mark a step as externally blocked until the condition is removed."""
        condition_id = condition_id or f"block_{uuid.uuid4().hex[:8]}"
        with self._locked(workflow_id):
            self._conditions.setdefault(workflow_id, {})[condition_id] = BlockingCondition(
                condition_id=condition_id,
                step_id=step_id,
                reason=reason,
                created_at=utc_now(),
            )
        logger.info(
            "Workflow %s: blocking condition %s on '%s': %s",
            workflow_id,
            condition_id,
            step_id,
            reason,
        )
        return condition_id

    def remove_blocking_condition(self, workflow_id: str, condition_id: str) -> bool:
        with self._locked(workflow_id):
            removed = self._conditions.get(workflow_id, {}).pop(condition_id, None)
        if removed:
            logger.info("Workflow %s: blocking condition %s removed", workflow_id, condition_id)
        return removed is not None

    # =========================================================================
    # RESOLUTION
    # =========================================================================

    def register_strategy(self, name: str, handler: StrategyHandler) -> None:
        """Add or replace a resolution strategy handler."""
        self._strategies[name] = handler

    async def resolve_blocking_dependencies(
        self,
        workflow_id: str,
        dependencies: tuple[DependencyResult, ...] | list[DependencyResult],
        context: ResolutionContext | None = None,
    ) -> ResolutionReport:
        """
        Try to resolve each blocking dependency with its selected strategy.

        ``resolve_blocking`` uses a registered handler when there is one and
        otherwise routes to ``manual_intervention``.
        """
        context = context or ResolutionContext()
        logger.info(
            "Resolving %d blocking dependencies for workflow %s",
            len(dependencies),
            workflow_id,
        )
        outcomes = []
        for dependency in dependencies:
            outcome = await self._resolve_one(workflow_id, dependency, context)
            outcomes.append(outcome)
            self._record(workflow_id, outcome)

        resolved = sum(1 for o in outcomes if o.resolved)
        logger.info(
            "Dependency resolution complete: %d resolved, %d failed",
            resolved,
            len(outcomes) - resolved,
        )
        return ResolutionReport(
            total=len(outcomes),
            resolved=resolved,
            failed=len(outcomes) - resolved,
            results=tuple(outcomes),
            remaining_blocks=tuple(o for o in outcomes if not o.resolved and o.blocking),
        )

    async def _resolve_one(
        self, workflow_id: str, dependency: DependencyResult, context: ResolutionContext
    ) -> ResolutionOutcome:
        strategy = (
            dependency.strategy or select_strategy(dependency.status, dependency.required)
        ).value
        handler = self._strategies.get(strategy)
        if handler is None:
            handler = self._strategies[ResolutionStrategy.MANUAL_INTERVENTION.value]
        logger.debug(
            "Workflow %s: resolving '%s' with %s",
            workflow_id,
            dependency.dependency_id,
            strategy,
        )
        outcome = handler(workflow_id, dependency, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    def _node_status(self, workflow_id: str, step_id: str) -> StepStatus | None:
        with self._locked(workflow_id):
            graph = self._graphs.get(workflow_id)
            if graph is None or step_id not in graph.nodes:
                return None
            return self._effective_status(workflow_id, step_id)

    async def _wait_for_completion(
        self, workflow_id: str, dependency: DependencyResult, context: ResolutionContext
    ) -> ResolutionOutcome:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + context.max_wait
        while True:
            if self._node_status(workflow_id, dependency.dependency_id) is StepStatus.COMPLETED:
                return ResolutionOutcome(
                    dependency.dependency_id,
                    ResolutionStrategy.WAIT_FOR_COMPLETION.value,
                    resolved=True,
                    blocking=False,
                    message="Dependency completed",
                )
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(context.poll_interval, remaining))
        return ResolutionOutcome(
            dependency.dependency_id,
            ResolutionStrategy.WAIT_FOR_COMPLETION.value,
            resolved=False,
            blocking=True,
            message=f"Dependency not completed within {context.max_wait}s",
        )

    async def _retry_dependency(
        self, workflow_id: str, dependency: DependencyResult, context: ResolutionContext
    ) -> ResolutionOutcome:
        strategy = ResolutionStrategy.RETRY_DEPENDENCY.value
        if self._retry_hook is None:
            return ResolutionOutcome(
                dependency.dependency_id,
                strategy,
                resolved=False,
                blocking=True,
                message="No retry hook configured",
            )
        for attempt in range(1, context.max_retries + 1):
            succeeded = self._retry_hook(workflow_id, dependency.dependency_id, attempt)
            if inspect.isawaitable(succeeded):
                succeeded = await succeeded
            if succeeded:
                self.update_step_status(
                    workflow_id, dependency.dependency_id, StepStatus.COMPLETED
                )
                return ResolutionOutcome(
                    dependency.dependency_id,
                    strategy,
                    resolved=True,
                    blocking=False,
                    message=f"Dependency succeeded on retry {attempt}",
                )
            if attempt < context.max_retries:
                await asyncio.sleep(context.backoff * attempt)
        return ResolutionOutcome(
            dependency.dependency_id,
            strategy,
            resolved=False,
            blocking=True,
            message=f"Dependency still failing after {context.max_retries} retries",
        )

    async def _skip_optional(
        self, workflow_id: str, dependency: DependencyResult, context: ResolutionContext
    ) -> ResolutionOutcome:
        strategy = ResolutionStrategy.SKIP_OPTIONAL.value
        if dependency.required:
            return ResolutionOutcome(
                dependency.dependency_id,
                strategy,
                resolved=False,
                blocking=True,
                message="Cannot skip a required dependency",
            )
        return ResolutionOutcome(
            dependency.dependency_id,
            strategy,
            resolved=True,
            blocking=False,
            message="Optional dependency skipped",
        )

    async def _manual_intervention(
        self, workflow_id: str, dependency: DependencyResult, context: ResolutionContext
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            dependency.dependency_id,
            ResolutionStrategy.MANUAL_INTERVENTION.value,
            resolved=False,
            blocking=True,
            message="Manual intervention required",
        )

    def _record(self, workflow_id: str, outcome: ResolutionOutcome) -> None:
        with self._registry_lock:
            self._history.append(
                ResolutionRecord(
                    workflow_id=workflow_id,
                    dependency_id=outcome.dependency_id,
                    strategy=outcome.strategy,
                    resolved=outcome.resolved,
                    timestamp=utc_now(),
                )
            )
            if len(self._history) > self._history_limit:
                self._history = self._history[-HISTORY_KEEP:]

    # =========================================================================
    # STATISTICS AND HOUSEKEEPING
    # =========================================================================

    def get_statistics(self) -> dict[str, Any]:
        with self._registry_lock:
            graphs = list(self._graphs.values())
            history = list(self._history)
            conditions = sum(len(c) for c in self._conditions.values())
            strategies = list(self._strategies)
        successes = sum(1 for r in history if r.resolved)
        return {
            "tracked_workflows": len(graphs),
            "total_nodes": sum(len(g.nodes) for g in graphs),
            "total_dependencies": sum(len(g.edges) for g in graphs),
            "total_resolutions": len(history),
            "successful_resolutions": successes,
            "resolution_success_rate": (successes / len(history) * 100) if history else 0.0,
            "strategy_usage": dict(Counter(r.strategy for r in history)),
            "available_strategies": strategies,
            "active_blocking_conditions": conditions,
        }

    def cleanup(self, max_age: float = 24 * 60 * 60) -> int:
        """
        Drop graphs older than ``max_age`` seconds whose steps are all finished.

        Returns:
            Number of graphs removed
        """
        cutoff = utc_now() - timedelta(seconds=max_age)
        with self._registry_lock:
            stale = [
                workflow_id
                for workflow_id, graph in self._graphs.items()
                if graph.created_at < cutoff
                and all(n.status in FINISHED_STATUSES for n in graph.nodes.values())
            ]
        for workflow_id in stale:
            self.forget(workflow_id)
        if stale:
            logger.info("Cleaned up %d old dependency graphs", len(stale))
        return len(stale)
