"""Hybrid memory store: vector index + relationship graph + conversation history.

Entity ids live in one namespace shared by both halves: an id names the
vector record and the graph node for the same entity. Callers must keep ids
unique across entity types (for example by prefixing data structures with
their parent program, as the analyze stage does).

Writes that touch both halves are not transactional. If the graph write
fails after the vector write succeeded, the vector record stays and the
caller gets a ``PartialWriteError``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from legacy_bridge.config import settings
from legacy_bridge.errors import PartialWriteError
from legacy_bridge.memory.conversation import ConversationHistory
from legacy_bridge.memory.graph import RelationshipGraph
from legacy_bridge.memory.models import ConversationEntry, GraphEdge, GraphNode
from legacy_bridge.memory.vector_index import VectorIndex

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

PROGRAM_TYPE = "program"


def _node_summary(node: GraphNode) -> dict[str, Any]:
    return {"id": node.id, "type": node.type, "properties": dict(node.properties)}


class MemoryStore:
    """Singleton facade over the vector index and relationship graph.

    Get the shared instance via ``MemoryStore.get()``; construct directly
    for an isolated store.
    """

    _instance: MemoryStore | None = None

    def __init__(
        self,
        vector_index: VectorIndex | None = None,
        graph: RelationshipGraph | None = None,
        history_limit: int | None = None,
    ) -> None:
        self.vectors = VectorIndex() if vector_index is None else vector_index
        self.graph = RelationshipGraph() if graph is None else graph
        self.history = ConversationHistory(limit=history_limit)

    @classmethod
    def get(cls) -> MemoryStore:
        """Return the shared MemoryStore instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def _reset(cls) -> None:
        """Reset the singleton (for testing)."""
        cls._instance = None

    # -- Entities ----------------------------------------------------------------

    async def store_entity(
        self,
        entity_id: str,
        entity_type: str,
        content: str,
        embedding: Sequence[float],
        properties: dict[str, Any] | None = None,
    ) -> GraphNode:
        """Register an entity in both the vector index and the graph.

        Raises:
            DimensionMismatchError: The embedding has the wrong length.
                Nothing was written.
            PartialWriteError: The vector was stored but the graph write
                failed. The vector is not rolled back.
        """
        props = dict(properties or {})
        self.vectors.store(
            entity_id,
            embedding,
            {"entity_type": entity_type, "content": content[:1000], **props},
        )
        try:
            node = self.graph.add_node(
                entity_id,
                entity_type,
                {"content": content[:500], **props},
            )
        except Exception as exc:
            logger.exception("Graph write failed for %s after vector write", entity_id)
            raise PartialWriteError(entity_id, "vector", exc) from exc

        logger.info("Entity stored: %s (%s, %d chars)", entity_id, entity_type, len(content))
        return node

    async def store_relationship(
        self,
        from_id: str,
        to_id: str,
        relation_type: str,
        properties: dict[str, Any] | None = None,
    ) -> GraphEdge:
        """Link two registered entities. Raises EndpointNotFoundError otherwise."""
        edge = self.graph.add_edge(from_id, to_id, relation_type, properties)
        logger.info("Relationship stored: %s", edge.id)
        return edge

    async def find_similar(
        self,
        query: Sequence[float],
        *,
        entity_type: str | None = None,
        limit: int = 10,
        threshold: float | None = None,
    ) -> list[dict[str, Any]]:
        """Semantic search over entities, enriched with call relationships.

        Only records written by ``store_entity`` are considered; conversation
        turns and code patterns share the index but are not entities.
        ``relationships`` is None for ids that exist only in the vector index.
        """
        filters: dict[str, Any] = {}
        if entity_type:
            filters["entity_type"] = entity_type

        candidates = self.vectors.search(
            query, limit=len(self.vectors), threshold=threshold, filter=filters
        )
        hits = [hit for hit in candidates if "entity_type" in hit.metadata][: max(limit, 0)]
        enriched = []
        for hit in hits:
            relationships = None
            if self.graph.has_node(hit.id):
                relationships = {
                    "dependencies": [_node_summary(n) for n in self.graph.dependencies(hit.id)],
                    "dependents": [_node_summary(n) for n in self.graph.dependents(hit.id)],
                }
            enriched.append(
                {
                    "id": hit.id,
                    "metadata": hit.metadata,
                    "similarity": hit.similarity,
                    "relationships": relationships,
                }
            )
        return enriched

    async def get_entity_context(self, entity_id: str) -> dict[str, Any] | None:
        """Everything known about an entity, or None if neither half has it."""
        record = self.vectors.retrieve(entity_id)
        node = self.graph.get_node(entity_id)
        if record is None and node is None:
            return None

        return {
            "id": entity_id,
            "vector": record.vector if record else None,
            "metadata": record.metadata if record else None,
            "node": node,
            "relationships": {
                "incoming": self.graph.incoming_edges(entity_id),
                "outgoing": self.graph.outgoing_edges(entity_id),
                "neighbors": self.graph.neighbors(entity_id),
            },
        }

    # -- Conversations -----------------------------------------------------------

    async def store_conversation_turn(
        self,
        conversation_id: str,
        message_id: str,
        content: str,
        embedding: Sequence[float],
        role: str = "user",
    ) -> bool:
        """Index a turn for semantic recall and append it to the history ring."""
        self.vectors.store_context(conversation_id, message_id, content, embedding, role)
        self.history.append(
            conversation_id,
            ConversationEntry(message_id=message_id, content=content, role=role),
        )
        logger.debug(
            "Conversation turn stored: %s/%s (%s, %d chars)",
            conversation_id,
            message_id,
            role,
            len(content),
        )
        return True

    def get_history(self, conversation_id: str) -> list[ConversationEntry]:
        return self.history.get(conversation_id)

    async def get_relevant_context(
        self,
        conversation_id: str,
        query: Sequence[float],
        *,
        include_conversation: bool = True,
        include_code_patterns: bool = True,
        language: str | None = None,
        limit: int = 10,
    ) -> dict[str, list[dict[str, Any]]]:
        """Gather conversation turns, code patterns, and entities similar to ``query``.

        Each bucket gets ``limit // 3`` slots.
        """
        per_bucket = limit // 3
        context: dict[str, list[dict[str, Any]]] = {
            "conversation": [],
            "code_patterns": [],
            "entities": [],
        }
        if include_conversation:
            context["conversation"] = self.vectors.get_relevant_context(
                conversation_id, query, per_bucket
            )
        if include_code_patterns:
            context["code_patterns"] = self.vectors.find_similar_patterns(
                query, language, per_bucket
            )
        context["entities"] = await self.find_similar(query, limit=per_bucket)

        logger.info(
            "Relevant context for %s: %d turns, %d patterns, %d entities",
            conversation_id,
            len(context["conversation"]),
            len(context["code_patterns"]),
            len(context["entities"]),
        )
        return context

    # -- Reports -----------------------------------------------------------------

    async def analyze_architecture(
        self,
        root_type: str = PROGRAM_TYPE,
        fan_out_threshold: int | None = None,
    ) -> dict[str, Any]:
        """Read-only report of cycles, isolated nodes, and high fan-out nodes."""
        threshold = fan_out_threshold or settings.high_fan_out_threshold
        stats = self.graph.stats()
        roots = self.graph.nodes_by_type(root_type)
        cycles = self.graph.find_cycles(root_type)

        connections = {node.id: len(self.graph.neighbors(node.id)) for node in roots}
        isolated = [node_id for node_id, count in connections.items() if count == 0]
        highly_connected = sorted(
            (
                {"id": node_id, "connection_count": count}
                for node_id, count in connections.items()
                if count > threshold
            ),
            key=lambda item: item["connection_count"],
            reverse=True,
        )

        analysis = {
            "overview": {
                "total_programs": len(roots),
                "total_data_structures": len(self.graph.nodes_by_type("data_structure")),
                "total_relationships": stats.edge_count,
                "average_connections": stats.average_degree,
            },
            "issues": {
                "circular_dependencies": len(cycles),
                "isolated_components": len(isolated),
                "highly_connected": len(highly_connected),
            },
            "details": {
                "circular_dependencies": cycles,
                "isolated_components": isolated,
                "highly_connected": highly_connected[:10],
            },
        }
        logger.info("Architecture analysis: %s", analysis["overview"])
        return analysis

    def stats(self) -> dict[str, Any]:
        graph_stats = self.graph.stats()
        return {
            "vector_index": self.vectors.stats(),
            "graph": {
                "node_count": graph_stats.node_count,
                "edge_count": graph_stats.edge_count,
                "node_types": graph_stats.node_types,
                "relation_types": graph_stats.relation_types,
                "average_degree": graph_stats.average_degree,
            },
            "conversations": {
                "active_conversations": self.history.conversation_count(),
                "total_messages": self.history.message_count(),
            },
        }

    async def clear_all(self) -> None:
        self.vectors.clear()
        self.graph.clear()
        self.history.clear()
        logger.info("All memory cleared")
