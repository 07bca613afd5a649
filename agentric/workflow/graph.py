"""Dependency graph construction and topological ordering of workflow steps."""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, List, Protocol, Set, Tuple

from ..errors import CircularDependencyError, UnknownDependencyError

DependencyGraph = Dict[str, FrozenSet[str]]


class _HasDependencies(Protocol):
    id: str
    dependencies: Tuple[str, ...]


def build_dependency_graph(steps: Iterable[_HasDependencies]) -> DependencyGraph:
    """Map each step id to the ids it depends on.

    Keys keep the order in which the steps were declared. Every dependency
    must name a sibling step.
    """
    steps = list(steps)
    known = {step.id for step in steps}
    graph: DependencyGraph = {}
    for step in steps:
        for dependency in step.dependencies:
            if dependency not in known:
                raise UnknownDependencyError(step.id, dependency)
        graph[step.id] = frozenset(step.dependencies)
    return graph


def execution_order(graph: DependencyGraph) -> List[str]:
    """Return step ids ordered so that dependencies precede dependents.

    Depth-first, post-order. Roots are taken in the graph's key order and the
    dependencies of a step in sorted order, so the result is deterministic.

    Raises:
        CircularDependencyError: when a back edge is found; names the step
            that was re-entered.
    """
    visited: Set[str] = set()
    visiting: Set[str] = set()
    order: List[str] = []

    def visit(step_id: str) -> None:
        if step_id in visiting:
            raise CircularDependencyError(step_id)
        if step_id in visited:
            return

        visiting.add(step_id)
        for dependency in sorted(graph.get(step_id, ())):
            visit(dependency)
        visiting.discard(step_id)

        visited.add(step_id)
        order.append(step_id)

    for step_id in graph:
        if step_id not in visited:
            visit(step_id)

    return order
