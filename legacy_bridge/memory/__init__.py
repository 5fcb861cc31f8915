"""Hybrid memory — vector index, relationship graph, and the facade over both."""

from legacy_bridge.memory.conversation import ConversationHistory
from legacy_bridge.memory.graph import RelationshipGraph
from legacy_bridge.memory.repository import InMemoryRepository, Repository
from legacy_bridge.memory.store import MemoryStore
from legacy_bridge.memory.vector_index import VectorIndex

__all__ = [
    "ConversationHistory",
    "InMemoryRepository",
    "MemoryStore",
    "RelationshipGraph",
    "Repository",
    "VectorIndex",
]
