"""Unit tests for planning.ordering."""

from __future__ import annotations

import random

import pytest

from deploy_sequencer.planning.ordering import CycleError, DependencyGraph


@pytest.mark.unit
def test_diamond_graph_sorts_dependencies_first() -> None:
    graph = DependencyGraph(
        edges=(
            ("A", "B"),
            ("A", "C"),
            ("B", "D"),
            ("C", "D"),
        )
    )

    assert graph.topological_sort() == ("A", "B", "C", "D")
    assert graph.detect_cycles() == ()


@pytest.mark.unit
def test_ties_break_alphabetically() -> None:
    graph = DependencyGraph(nodes=("zeta", "alpha", "mid"))
    assert graph.topological_sort() == ("alpha", "mid", "zeta")


@pytest.mark.unit
def test_cycle_detection_returns_cycle() -> None:
    graph = DependencyGraph(
        edges=(
            ("A", "B"),
            ("B", "C"),
            ("C", "A"),
            ("C", "D"),
        )
    )

    assert graph.detect_cycles() == (("A", "B", "C", "A"),)

    with pytest.raises(CycleError) as error:
        graph.topological_sort()
    assert error.value.cycles == (("A", "B", "C", "A"),)
    assert "A -> B -> C -> A" in str(error.value)


@pytest.mark.unit
def test_self_loop_is_a_cycle() -> None:
    graph = DependencyGraph(edges=(("A", "A"),))
    assert graph.detect_cycles() == (("A", "A"),)


@pytest.mark.unit
def test_disjoint_cycles_are_each_reported_once() -> None:
    graph = DependencyGraph(
        edges=(
            ("b", "a"),
            ("a", "b"),
            ("y", "z"),
            ("z", "x"),
            ("x", "y"),
            ("b", "y"),
        )
    )

    assert graph.detect_cycles() == (("a", "b", "a"), ("x", "y", "z", "x"))


@pytest.mark.unit
def test_empty_node_name_is_rejected() -> None:
    graph = DependencyGraph()
    with pytest.raises(ValueError, match="non-empty"):
        graph.add_node("")
    with pytest.raises(ValueError, match="non-empty"):
        graph.add_edge("A", "")


@pytest.mark.unit
def test_seeded_random_dag_with_1000_nodes_topological_sort_stress() -> None:
    rng = random.Random(2_026_101_9)
    node_count = 1_000
    node_ids = [f"asset-{index:04d}" for index in range(node_count)]
    edges: list[tuple[str, str]] = []
    for child_index in range(1, node_count):
        for parent_index in rng.sample(range(child_index), k=min(3, child_index)):
            edges.append((node_ids[parent_index], node_ids[child_index]))

    graph = DependencyGraph(nodes=node_ids, edges=edges)
    order = graph.topological_sort()

    position = {node: index for index, node in enumerate(order)}
    assert len(order) == node_count
    assert all(position[parent] < position[child] for parent, child in edges)
    assert graph.topological_sort() == order
