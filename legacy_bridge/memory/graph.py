"""In-memory typed relationship graph."""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Any

from legacy_bridge.errors import EndpointNotFoundError
from legacy_bridge.memory.models import GraphEdge, GraphNode, GraphStats, Neighbor, edge_id, utcnow
from legacy_bridge.memory.repository import InMemoryRepository

if TYPE_CHECKING:
    from legacy_bridge.memory.repository import Repository

logger = logging.getLogger(__name__)

CALLS = "calls"
DIRECTIONS = ("in", "out", "both")


class RelationshipGraph:
    """Directed multigraph of typed nodes and typed, attributed edges.

    Invariant: every stored edge references two existing nodes. ``add_edge``
    refuses dangling endpoints and ``delete_node`` removes touching edges
    first.
    """

    def __init__(
        self,
        nodes: Repository[GraphNode] | None = None,
        edges: Repository[GraphEdge] | None = None,
    ) -> None:
        self._nodes: Repository[GraphNode] = InMemoryRepository() if nodes is None else nodes
        self._edges: Repository[GraphEdge] = InMemoryRepository() if edges is None else edges
        self._node_types: set[str] = set()
        self._relation_types: set[str] = set()

    # -- Nodes -------------------------------------------------------------------

    def add_node(self, id: str, type: str, properties: dict[str, Any] | None = None) -> GraphNode:
        """Add or overwrite a node. Existing edge links are kept."""
        existing = self._nodes.get(id)
        node = GraphNode(id=id, type=type, properties=dict(properties or {}))
        if existing is not None:
            node.created_at = existing.created_at
            node.in_edges = existing.in_edges
            node.out_edges = existing.out_edges
            if existing.type != type:
                logger.warning(
                    "Node %s re-registered with a different type (%s -> %s)",
                    id,
                    existing.type,
                    type,
                )
        self._nodes.put(id, node)
        self._node_types.add(type)
        logger.debug("Node added: %s (%s)", id, type)
        return node

    def get_node(self, id: str) -> GraphNode | None:
        return self._nodes.get(id)

    def has_node(self, id: str) -> bool:
        return id in self._nodes

    def nodes_by_type(self, type: str) -> list[GraphNode]:
        return [node for node in self._nodes.values() if node.type == type]

    def query_nodes(self, **filters: Any) -> list[GraphNode]:
        """Return nodes matching ``type`` and/or exact property values."""
        results = []
        for node in self._nodes.values():
            matched = True
            for key, value in filters.items():
                actual = node.type if key == "type" else node.properties.get(key)
                if actual != value:
                    matched = False
                    break
            if matched:
                results.append(node)
        return results

    def delete_node(self, id: str) -> bool:
        """Delete a node and every edge touching it."""
        node = self._nodes.get(id)
        if node is None:
            return False
        for eid in list(node.in_edges | node.out_edges):
            self.delete_edge(eid)
        self._nodes.delete(id)
        logger.info("Node deleted: %s", id)
        return True

    # -- Edges -------------------------------------------------------------------

    def add_edge(
        self,
        from_id: str,
        to_id: str,
        type: str,
        properties: dict[str, Any] | None = None,
    ) -> GraphEdge:
        """Link two existing nodes. Re-asserting the same relation overwrites it."""
        from_node = self._nodes.get(from_id)
        to_node = self._nodes.get(to_id)
        if from_node is None or to_node is None:
            raise EndpointNotFoundError(from_id, to_id)

        edge = GraphEdge(
            id=edge_id(from_id, type, to_id),
            from_id=from_id,
            to_id=to_id,
            type=type,
            properties=dict(properties or {}),
        )
        self._edges.put(edge.id, edge)
        from_node.out_edges.add(edge.id)
        to_node.in_edges.add(edge.id)
        from_node.updated_at = to_node.updated_at = utcnow()
        self._relation_types.add(type)
        logger.debug("Edge added: %s", edge.id)
        return edge

    def get_edge(self, id: str) -> GraphEdge | None:
        return self._edges.get(id)

    def delete_edge(self, id: str) -> bool:
        edge = self._edges.get(id)
        if edge is None:
            return False
        from_node = self._nodes.get(edge.from_id)
        to_node = self._nodes.get(edge.to_id)
        if from_node is not None:
            from_node.out_edges.discard(id)
        if to_node is not None:
            to_node.in_edges.discard(id)
        self._edges.delete(id)
        logger.debug("Edge deleted: %s", id)
        return True

    def outgoing_edges(self, node_id: str, relation_type: str | None = None) -> list[GraphEdge]:
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return self._collect(node.out_edges, relation_type)

    def incoming_edges(self, node_id: str, relation_type: str | None = None) -> list[GraphEdge]:
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return self._collect(node.in_edges, relation_type)

    def _collect(self, edge_ids: set[str], relation_type: str | None) -> list[GraphEdge]:
        edges = []
        for eid in sorted(edge_ids):
            edge = self._edges.get(eid)
            if edge is not None and (relation_type is None or edge.type == relation_type):
                edges.append(edge)
        return edges

    # -- Traversal ---------------------------------------------------------------

    def neighbors(
        self,
        id: str,
        direction: str = "both",
        relation_type: str | None = None,
    ) -> list[Neighbor]:
        """Nodes adjacent to ``id`` over edges in ``direction``."""
        if direction not in DIRECTIONS:
            msg = f"direction must be one of {DIRECTIONS}, got {direction!r}"
            raise ValueError(msg)

        result: list[Neighbor] = []
        if direction in ("out", "both"):
            for edge in self.outgoing_edges(id, relation_type):
                node = self._nodes.get(edge.to_id)
                if node is not None:
                    result.append(Neighbor(node=node, edge=edge, direction="out"))
        if direction in ("in", "both"):
            for edge in self.incoming_edges(id, relation_type):
                node = self._nodes.get(edge.from_id)
                if node is not None:
                    result.append(Neighbor(node=node, edge=edge, direction="in"))
        return result

    def dependencies(self, id: str) -> list[GraphNode]:
        """Nodes ``id`` calls."""
        return [n.node for n in self.neighbors(id, "out", CALLS)]

    def dependents(self, id: str) -> list[GraphNode]:
        """Nodes that call ``id``."""
        return [n.node for n in self.neighbors(id, "in", CALLS)]

    def shortest_path(self, start_id: str, end_id: str, max_depth: int = 5) -> list[str] | None:
        """Breadth-first path from ``start_id`` to ``end_id`` ignoring direction.

        Returns the list of node ids, or None if no path within ``max_depth``
        hops exists. Among equal-length paths, which one is returned is
        unspecified.
        """
        if start_id == end_id:
            return [start_id]

        visited: set[str] = set()
        queue: deque[list[str]] = deque([[start_id]])
        while queue:
            path = queue.popleft()
            node_id = path[-1]
            if len(path) > max_depth or node_id in visited:
                continue
            visited.add(node_id)

            for neighbor in self.neighbors(node_id):
                next_id = neighbor.node.id
                if next_id == end_id:
                    return [*path, next_id]
                if next_id not in visited:
                    queue.append([*path, next_id])
        return None

    def find_cycles(self, root_type: str) -> list[list[str]]:
        """Find ``calls`` cycles reachable from nodes of ``root_type``.

        Each cycle runs from the repeated node back to itself, e.g.
        ``["A", "B", "C", "A"]`` for A→B→C→A. Fully explored nodes are never
        re-entered.
        """
        cycles: list[list[str]] = []
        visited: set[str] = set()
        on_stack: set[str] = set()

        def dfs(node_id: str, path: list[str]) -> None:
            if node_id in on_stack:
                cycles.append(path[path.index(node_id) :])
                return
            if node_id in visited:
                return
            visited.add(node_id)
            on_stack.add(node_id)
            for edge in self.outgoing_edges(node_id, CALLS):
                dfs(edge.to_id, [*path, edge.to_id])
            on_stack.discard(node_id)

        for node in self.nodes_by_type(root_type):
            if node.id not in visited:
                dfs(node.id, [node.id])
        return cycles

    # -- Bulk --------------------------------------------------------------------

    def stats(self) -> GraphStats:
        node_count = len(self._nodes)
        total_degree = sum(node.degree for node in self._nodes.values())
        return GraphStats(
            node_count=node_count,
            edge_count=len(self._edges),
            node_types=sorted(self._node_types),
            relation_types=sorted(self._relation_types),
            average_degree=total_degree / node_count if node_count else 0.0,
        )

    def export(self) -> dict[str, list[dict[str, Any]]]:
        """Plain-dict snapshot for visualization."""
        return {
            "nodes": [node.to_dict() for node in self._nodes.values()],
            "edges": [edge.to_dict() for edge in self._edges.values()],
        }

    def clear(self) -> int:
        """Remove every node and edge. Returns the number of nodes removed."""
        self._edges.clear()
        count = self._nodes.clear()
        self._node_types.clear()
        self._relation_types.clear()
        logger.info("Relationship graph cleared (%d nodes)", count)
        return count
