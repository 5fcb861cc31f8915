"""Tests for RelationshipGraph — typed nodes, typed edges, traversal."""

import pytest

from legacy_bridge.errors import EndpointNotFoundError
from legacy_bridge.memory.graph import RelationshipGraph


@pytest.fixture
def graph() -> RelationshipGraph:
    return RelationshipGraph()


@pytest.fixture
def chain(graph: RelationshipGraph) -> RelationshipGraph:
    """A -calls-> B -calls-> C."""
    for node_id in ("A", "B", "C"):
        graph.add_node(node_id, "program")
    graph.add_edge("A", "B", "calls")
    graph.add_edge("B", "C", "calls")
    return graph


class TestEdges:
    def test_missing_endpoint_rejected(self, graph: RelationshipGraph):
        graph.add_node("A", "program")
        with pytest.raises(EndpointNotFoundError, match="A -> B"):
            graph.add_edge("A", "B", "calls")
        with pytest.raises(EndpointNotFoundError):
            graph.add_edge("B", "A", "calls")
        assert graph.stats().edge_count == 0

    def test_edge_after_both_nodes(self, graph: RelationshipGraph):
        graph.add_node("A", "program")
        graph.add_node("B", "program")
        edge = graph.add_edge("A", "B", "calls", {"location": "line 10"})

        assert edge.id == "A-calls->B"
        assert [n.node.id for n in graph.neighbors("A", "out")] == ["B"]
        assert [n.node.id for n in graph.neighbors("B", "in")] == ["A"]
        assert graph.neighbors("A", "in") == []

    def test_same_relation_overwrites(self, graph: RelationshipGraph):
        graph.add_node("A", "program")
        graph.add_node("B", "program")
        graph.add_edge("A", "B", "calls", {"n": 1})
        graph.add_edge("A", "B", "calls", {"n": 2})

        assert graph.stats().edge_count == 1
        assert graph.get_edge("A-calls->B").properties == {"n": 2}

    def test_relation_type_filter(self, graph: RelationshipGraph):
        for node_id in ("A", "B", "REC"):
            graph.add_node(node_id, "program")
        graph.add_edge("A", "B", "calls")
        graph.add_edge("A", "REC", "copies")

        assert [e.to_id for e in graph.outgoing_edges("A", "copies")] == ["REC"]
        assert [n.id for n in graph.dependencies("A")] == ["B"]
        assert [n.id for n in graph.dependents("B")] == ["A"]

    def test_delete_edge(self, chain: RelationshipGraph):
        assert chain.delete_edge("A-calls->B") is True
        assert chain.delete_edge("A-calls->B") is False
        assert chain.get_node("A").out_edges == set()
        assert chain.get_node("B").in_edges == set()


class TestNodes:
    def test_readd_keeps_edges_and_created_at(self, chain: RelationshipGraph):
        created = chain.get_node("B").created_at
        chain.add_node("B", "program", {"language": "cobol"})

        node = chain.get_node("B")
        assert node.created_at == created
        assert node.properties == {"language": "cobol"}
        assert node.degree == 2

    def test_delete_cascades_to_edges(self, chain: RelationshipGraph):
        assert chain.delete_node("B") is True

        assert chain.get_node("B") is None
        assert chain.stats().edge_count == 0
        assert chain.get_node("A").out_edges == set()
        assert chain.get_node("C").in_edges == set()
        assert chain.delete_node("B") is False

    def test_query_nodes(self, graph: RelationshipGraph):
        graph.add_node("A", "program", {"language": "cobol"})
        graph.add_node("B", "program", {"language": "rpg"})
        graph.add_node("REC", "data_structure", {"language": "cobol"})

        assert [n.id for n in graph.query_nodes(type="program", language="cobol")] == ["A"]
        assert {n.id for n in graph.query_nodes(language="cobol")} == {"A", "REC"}
        assert [n.id for n in graph.nodes_by_type("data_structure")] == ["REC"]


class TestTraversal:
    def test_bad_direction(self, chain: RelationshipGraph):
        with pytest.raises(ValueError, match="direction"):
            chain.neighbors("A", "sideways")

    def test_shortest_path_ignores_direction(self, chain: RelationshipGraph):
        assert chain.shortest_path("C", "A") == ["C", "B", "A"]

    def test_shortest_path_same_node(self, chain: RelationshipGraph):
        assert chain.shortest_path("A", "A") == ["A"]

    def test_shortest_path_depth_limit(self, chain: RelationshipGraph):
        assert chain.shortest_path("A", "C", max_depth=1) is None
        assert chain.shortest_path("A", "C", max_depth=2) == ["A", "B", "C"]

    def test_shortest_path_unreachable(self, chain: RelationshipGraph):
        chain.add_node("Z", "program")
        assert chain.shortest_path("A", "Z") is None

    def test_three_node_ring_is_one_cycle(self, chain: RelationshipGraph):
        chain.add_edge("C", "A", "calls")

        cycles = chain.find_cycles("program")
        assert len(cycles) == 1
        assert set(cycles[0]) == {"A", "B", "C"}
        assert cycles[0][0] == cycles[0][-1]

    def test_acyclic_has_no_cycles(self, chain: RelationshipGraph):
        assert chain.find_cycles("program") == []

    def test_cycles_only_follow_calls(self, chain: RelationshipGraph):
        chain.add_edge("C", "A", "copies")
        assert chain.find_cycles("program") == []


def test_stats_and_export(chain: RelationshipGraph):
    stats = chain.stats()
    assert stats.node_count == 3
    assert stats.edge_count == 2
    assert stats.node_types == ["program"]
    assert stats.relation_types == ["calls"]
    assert stats.average_degree == pytest.approx(4 / 3)

    exported = chain.export()
    assert {n["id"] for n in exported["nodes"]} == {"A", "B", "C"}
    assert {(e["from"], e["to"]) for e in exported["edges"]} == {("A", "B"), ("B", "C")}


def test_clear(chain: RelationshipGraph):
    assert chain.clear() == 3
    stats = chain.stats()
    assert stats.node_count == 0
    assert stats.relation_types == []
