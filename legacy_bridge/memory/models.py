"""Data models for the vector index, relationship graph, and conversation history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


def utcnow() -> str:
    return datetime.now(UTC).isoformat()


def edge_id(from_id: str, relation_type: str, to_id: str) -> str:
    """Deterministic edge id; re-asserting the same relation reuses it."""
    return f"{from_id}-{relation_type}->{to_id}"


class ConversationEntry(BaseModel):
    """A single turn in a conversation's bounded history."""

    message_id: str
    content: str
    role: str
    timestamp: str = Field(default_factory=utcnow)


@dataclass
class EmbeddingRecord:
    """A stored vector and its metadata."""

    id: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()


@dataclass
class SearchResult:
    """A vector index hit. ``similarity`` is 1.0 for direct retrieval."""

    id: str
    vector: list[float]
    metadata: dict[str, Any]
    similarity: float


@dataclass
class GraphNode:
    """A typed node plus the ids of the edges that touch it.

    Attributes:
        id: Globally unique id, shared with the vector index.
        type: Entity type, e.g. ``"program"`` or ``"data_structure"``.
        properties: Arbitrary caller-supplied properties.
        in_edges: Ids of edges pointing at this node.
        out_edges: Ids of edges leaving this node.
    """

    id: str
    type: str
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""
    in_edges: set[str] = field(default_factory=set)
    out_edges: set[str] = field(default_factory=set)

    def __post_init__(self) -> None:
        now = utcnow()
        if not self.created_at:
            self.created_at = now
        if not self.updated_at:
            self.updated_at = now

    @property
    def degree(self) -> int:
        return len(self.in_edges) + len(self.out_edges)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "properties": dict(self.properties),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class GraphEdge:
    """A directed, typed relation between two nodes."""

    id: str
    from_id: str
    to_id: str
    type: str
    properties: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def __post_init__(self) -> None:
        if not self.created_at:
            self.created_at = utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_id,
            "to": self.to_id,
            "type": self.type,
            "properties": dict(self.properties),
        }


@dataclass
class Neighbor:
    """A node reached over ``edge``; ``direction`` is ``"in"`` or ``"out"``."""

    node: GraphNode
    edge: GraphEdge
    direction: str


@dataclass
class GraphStats:
    node_count: int
    edge_count: int
    node_types: list[str]
    relation_types: list[str]
    average_degree: float
