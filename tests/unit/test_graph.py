"""Dependency graph and execution order tests."""

import pytest

from agentric.errors import CircularDependencyError, UnknownDependencyError
from agentric.workflow import WorkflowStep, build_dependency_graph, execution_order


def _step(step_id, *deps):
    return WorkflowStep(
        id=step_id,
        action=f"do {step_id}",
        required_capability="cap",
        dependencies=tuple(deps),
    )


def test_diamond_orders_dependencies_first():
    steps = [_step("A"), _step("B", "A"), _step("C", "A"), _step("D", "B", "C")]
    order = execution_order(build_dependency_graph(steps))

    assert order == ["A", "B", "C", "D"]


def test_order_is_deterministic_and_follows_declaration():
    steps = [_step("z"), _step("y"), _step("x", "z", "y")]
    graph = build_dependency_graph(steps)

    assert execution_order(graph) == ["z", "y", "x"]
    assert execution_order(graph) == execution_order(build_dependency_graph(steps))


def test_dependencies_visited_in_sorted_order():
    steps = [_step("final", "b", "a"), _step("b"), _step("a")]

    assert execution_order(build_dependency_graph(steps)) == ["a", "b", "final"]


def test_order_is_a_permutation_respecting_edges():
    steps = [
        _step("fetch"),
        _step("parse", "fetch"),
        _step("index", "parse"),
        _step("report", "index", "parse"),
        _step("notify", "report"),
    ]
    order = execution_order(build_dependency_graph(steps))

    assert sorted(order) == sorted(s.id for s in steps)
    for step in steps:
        for dep in step.dependencies:
            assert order.index(dep) < order.index(step.id)


def test_cycle_is_rejected():
    steps = [_step("A", "B"), _step("B", "A")]

    with pytest.raises(CircularDependencyError) as exc:
        execution_order(build_dependency_graph(steps))
    assert exc.value.step_id == "A"


def test_self_dependency_is_a_cycle():
    with pytest.raises(CircularDependencyError):
        execution_order(build_dependency_graph([_step("A", "A")]))


def test_unknown_dependency_rejected_at_build():
    with pytest.raises(UnknownDependencyError) as exc:
        build_dependency_graph([_step("A"), _step("B", "missing")])
    assert exc.value.step_id == "B"
    assert exc.value.dependency_id == "missing"


def test_empty_graph():
    assert execution_order(build_dependency_graph([])) == []
