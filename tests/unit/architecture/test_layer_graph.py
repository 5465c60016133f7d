"""Unit tests for the deterministic layer dependency graph."""

from __future__ import annotations

import pytest

from compliance_workflow.architecture.layer_graph import LayerGraph
from compliance_workflow.domain.errors import LayerCycleError


def test_dependency_order_places_dependencies_first_with_alphabetical_ties() -> None:
    graph = LayerGraph.from_mapping(
        {
            "presentation": ["application"],
            "application": ["domain"],
            "infrastructure": ["domain"],
            "domain": [],
        }
    )
    assert graph.dependency_order() == ("domain", "application", "infrastructure", "presentation")
    assert graph.dependencies_of("application") == ("domain",)
    assert graph.dependents_of("domain") == ("application", "infrastructure")


def test_edges_and_serialize_are_sorted() -> None:
    graph = LayerGraph(edges=[("b", "a"), ("a", "c")])
    assert graph.nodes == ("a", "b", "c")
    assert graph.edges == (("a", "c"), ("b", "a"))
    assert graph.serialize() == {"nodes": ["a", "b", "c"], "edges": [["a", "c"], ["b", "a"]]}


def test_detect_cycles_returns_canonical_rotations() -> None:
    graph = LayerGraph(edges=[("ui", "core"), ("core", "data"), ("data", "ui"), ("x", "x")])
    assert graph.detect_cycles() == (("core", "data", "ui", "core"), ("x", "x"))


def test_dependency_order_raises_on_cycle() -> None:
    graph = LayerGraph(edges=[("a", "b"), ("b", "a")])
    with pytest.raises(LayerCycleError) as error:
        graph.dependency_order()
    assert error.value.cycles == (("a", "b", "a"),)
    assert "a -> b -> a" in str(error.value)


def test_unknown_layer_lookup_and_invalid_names() -> None:
    graph = LayerGraph(nodes=["domain"])
    with pytest.raises(KeyError):
        graph.dependencies_of("missing")
    with pytest.raises(ValueError):
        graph.add_layer("")
