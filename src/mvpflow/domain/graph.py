"""
Dependency graph model and graph algorithms.

All traversals are iterative with explicit stacks and visited sets, so
large or deep step graphs cannot exhaust the interpreter's recursion limit.
The algorithms take a plain ``step id -> dependency ids`` mapping; ids that
are not keys of the mapping are ignored.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from mvpflow.domain.models import RiskLevel, Step, StepStatus, StepType, utc_now

Adjacency = Mapping[str, Sequence[str]]

LONG_CHAIN_LENGTH = 5
HIGH_FAN_OUT = 2


# =============================================================================
# GRAPH MODEL
# =============================================================================


@dataclass
class GraphNode:
    """A step wrapped with reverse edges and tracking state."""

    step_id: str
    name: str
    type: StepType
    dependencies: list[str]
    dependents: list[str] = field(default_factory=list)
    status: StepStatus = StepStatus.PENDING
    required: bool = True
    estimated_effort: float = 2.0
    risk_level: RiskLevel = RiskLevel.MEDIUM
    last_updated: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None


@dataclass
class DependencyGraph:
    """Per-workflow dependency graph, built once at tracking setup."""

    workflow_id: str
    nodes: dict[str, GraphNode]
    edges: list[tuple[str, str]]  # (dependency, dependent)
    unresolved: list[tuple[str, str]]  # (step, missing dependency)
    critical_path: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_steps(cls, workflow_id: str, steps: Iterable[Step]) -> "DependencyGraph":
        """
        Index steps into a graph.

        Dependency ids that name no step are recorded in ``unresolved`` and
        no edge is created for them.
        """
        steps = list(steps)
        nodes: dict[str, GraphNode] = {}
        for step in steps:
            nodes[step.id] = GraphNode(
                step_id=step.id,
                name=step.name,
                type=step.type,
                dependencies=[],
                status=step.status,
                required=step.required,
                estimated_effort=step.estimated_effort,
                risk_level=step.risk_level,
            )

        edges: list[tuple[str, str]] = []
        unresolved: list[tuple[str, str]] = []
        for step in steps:
            node = nodes[step.id]
            for dep_id in step.dependencies:
                if dep_id not in nodes:
                    unresolved.append((step.id, dep_id))
                    continue
                if dep_id in node.dependencies:
                    continue
                node.dependencies.append(dep_id)
                nodes[dep_id].dependents.append(step.id)
                edges.append((dep_id, step.id))

        graph = cls(
            workflow_id=workflow_id, nodes=nodes, edges=edges, unresolved=unresolved
        )
        graph.critical_path = critical_path(graph.adjacency(), graph.efforts())
        return graph

    def adjacency(self) -> dict[str, list[str]]:
        return {node_id: node.dependencies for node_id, node in self.nodes.items()}

    def efforts(self) -> dict[str, float]:
        return {
            node_id: node.estimated_effort for node_id, node in self.nodes.items()
        }


@dataclass(frozen=True)
class GraphRisk:
    type: str
    severity: RiskLevel
    description: str
    nodes: tuple[str, ...] = ()


@dataclass(frozen=True)
class GraphAnalysis:
    critical_path: tuple[str, ...]
    cycles: tuple[tuple[str, ...], ...]
    parallel_groups: tuple[tuple[str, ...], ...]
    risks: tuple[GraphRisk, ...]
    total_effort: float
    node_count: int
    edge_count: int

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)


# =============================================================================
# ALGORITHMS
# =============================================================================


def _reverse(deps: Adjacency) -> dict[str, list[str]]:
    dependents: dict[str, list[str]] = {node: [] for node in deps}
    for node, node_deps in deps.items():
        for dep in node_deps:
            if dep in dependents:
                dependents[dep].append(node)
    return dependents


def _fill_path_lengths(
    root: str, deps: Adjacency, efforts: Mapping[str, float], lengths: dict[str, float]
) -> None:
    # Post-order walk. A dependency still in progress is part of a cycle and
    # contributes 0, the same as an unvisited node in a recursive search.
    in_progress: set[str] = set()
    stack: list[tuple[str, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if node in lengths:
            continue
        if expanded:
            in_progress.discard(node)
            lengths[node] = efforts.get(node, 0.0) + max(
                (lengths.get(d, 0.0) for d in deps[node] if d in deps), default=0.0
            )
            continue
        if node in in_progress:
            continue
        in_progress.add(node)
        stack.append((node, True))
        for dep in deps[node]:
            if dep in deps and dep not in lengths and dep not in in_progress:
                stack.append((dep, False))


def path_lengths(deps: Adjacency, efforts: Mapping[str, float]) -> dict[str, float]:
    """Longest effort-weighted path ending at each node (own effort included)."""
    lengths: dict[str, float] = {}
    for node in deps:
        _fill_path_lengths(node, deps, efforts, lengths)
    return lengths


def critical_path(deps: Adjacency, efforts: Mapping[str, float]) -> list[str]:
    """
    Longest effort-weighted chain of dependent steps.

    Ties between sinks go to the first sink in declaration order; during
    trace-back ties go to the first predecessor in the dependency list.

    Returns:
        Step ids from the chain's root to its sink, or [] if the graph has
        no sink (every node sits on a cycle).
    """
    dependents = _reverse(deps)
    lengths = path_lengths(deps, efforts)

    best_sink: str | None = None
    best_length = -1.0
    for node in deps:
        if dependents[node]:
            continue
        if lengths[node] > best_length:
            best_sink, best_length = node, lengths[node]
    if best_sink is None:
        return []

    path = [best_sink]
    seen = {best_sink}
    current = best_sink
    while True:
        predecessor: str | None = None
        predecessor_length = -1.0
        for dep in deps[current]:
            if dep in deps and lengths.get(dep, 0.0) > predecessor_length:
                predecessor, predecessor_length = dep, lengths.get(dep, 0.0)
        if predecessor is None or predecessor in seen:
            break
        path.append(predecessor)
        seen.add(predecessor)
        current = predecessor
    path.reverse()
    return path


def detect_cycles(deps: Adjacency) -> list[list[str]]:
    """
    Find cycles with a depth-first search over dependency edges.

    Each cycle is the slice of the current path from the first occurrence
    of the revisited node, followed by that node again.
    """
    cycles: list[list[str]] = []
    visited: set[str] = set()
    for root in deps:
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_path = {root}
        stack = [(root, iter(deps[root]))]
        while stack:
            node, pending = stack[-1]
            dep = next(pending, None)
            if dep is None:
                stack.pop()
                path.pop()
                on_path.discard(node)
                continue
            if dep not in deps:
                continue
            if dep in on_path:
                cycles.append(path[path.index(dep) :] + [dep])
                continue
            if dep in visited:
                continue
            visited.add(dep)
            path.append(dep)
            on_path.add(dep)
            stack.append((dep, iter(deps[dep])))
    return cycles


def has_transitive_dependency(deps: Adjacency, source: str, target: str) -> bool:
    """True if ``target`` is reachable from ``source`` through dependencies."""
    if source not in deps:
        return False
    visited = {source}
    stack = list(deps[source])
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in visited or node not in deps:
            continue
        visited.add(node)
        stack.extend(deps[node])
    return False


def _compatible(deps: Adjacency, a: str, b: str) -> bool:
    return not (
        has_transitive_dependency(deps, a, b) or has_transitive_dependency(deps, b, a)
    )


def parallel_groups(deps: Adjacency) -> list[list[str]]:
    """
    Group steps with no direct or transitive dependency between them.

    A candidate joins a group only if it is compatible with every member.
    Singleton groups are discarded.
    """
    processed: set[str] = set()
    groups: list[list[str]] = []
    for node in deps:
        if node in processed:
            continue
        processed.add(node)
        group = [node]
        for other in deps:
            if other in processed:
                continue
            if all(_compatible(deps, member, other) for member in group):
                group.append(other)
                processed.add(other)
        if len(group) > 1:
            groups.append(group)
    return groups


def dependency_chains(
    deps: Adjacency, min_length: int = LONG_CHAIN_LENGTH
) -> list[list[str]]:
    """
    Enumerate dependency chains of at least ``min_length`` nodes.

    Chains are followed from each node through its dependencies without
    revisiting a node; identical chains are reported once.
    """
    found: list[list[str]] = []
    seen: set[tuple[str, ...]] = set()
    for root in deps:
        stack = [[root]]
        while stack:
            chain = stack.pop()
            if len(chain) >= min_length:
                key = tuple(chain)
                if key not in seen:
                    seen.add(key)
                    found.append(chain)
            for dep in deps[chain[-1]]:
                if dep in deps and dep not in chain:
                    stack.append(chain + [dep])
    return found


def analyze(graph: DependencyGraph) -> GraphAnalysis:
    """Critical path, cycles, parallel groups and structural risks of a graph."""
    deps = graph.adjacency()
    risks: list[GraphRisk] = []

    for chain in dependency_chains(deps):
        risks.append(
            GraphRisk(
                type="long_dependency_chain",
                severity=RiskLevel.MEDIUM,
                description=f"Dependency chain of {len(chain)} steps",
                nodes=tuple(chain),
            )
        )
    for node in graph.nodes.values():
        if node.risk_level is RiskLevel.HIGH and len(node.dependents) > HIGH_FAN_OUT:
            risks.append(
                GraphRisk(
                    type="high_risk_bottleneck",
                    severity=RiskLevel.HIGH,
                    description=(
                        f"High-risk step '{node.step_id}' blocks "
                        f"{len(node.dependents)} dependents"
                    ),
                    nodes=(node.step_id, *node.dependents),
                )
            )

    return GraphAnalysis(
        critical_path=tuple(graph.critical_path),
        cycles=tuple(tuple(c) for c in detect_cycles(deps)),
        parallel_groups=tuple(tuple(g) for g in parallel_groups(deps)),
        risks=tuple(risks),
        total_effort=sum(graph.efforts().values()),
        node_count=len(graph.nodes),
        edge_count=len(graph.edges),
    )
