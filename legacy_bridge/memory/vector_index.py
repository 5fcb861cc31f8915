"""In-memory vector index with exhaustive cosine-similarity search."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import numpy as np

from legacy_bridge.config import settings
from legacy_bridge.errors import DimensionMismatchError
from legacy_bridge.memory.models import EmbeddingRecord, SearchResult
from legacy_bridge.memory.repository import InMemoryRepository

if TYPE_CHECKING:
    from collections.abc import Sequence

    from legacy_bridge.memory.repository import Repository

logger = logging.getLogger(__name__)

CONTEXT_TYPE = "context"
CODE_PATTERN_TYPE = "code_pattern"


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 if either is all zeros."""
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


def matches_filter(metadata: dict[str, Any], filters: dict[str, Any]) -> bool:
    """Exact equality on every filter key. Missing keys never match."""
    for key, value in filters.items():
        if key not in metadata or metadata[key] != value:
            return False
    return True


class VectorIndex:
    """Fixed-dimension embedding store.

    Search is a linear O(N·D) scan over every stored vector; there is no
    approximate index.

    Args:
        dimension: Required vector length (default from settings).
        similarity_threshold: Default search threshold (default from settings).
        repository: Backing record store (default: in-memory).
    """

    def __init__(
        self,
        dimension: int | None = None,
        similarity_threshold: float | None = None,
        repository: Repository[EmbeddingRecord] | None = None,
    ) -> None:
        self.dimension = dimension or settings.vector_dimension
        self.similarity_threshold = (
            settings.similarity_threshold if similarity_threshold is None else similarity_threshold
        )
        self._records: Repository[EmbeddingRecord] = (
            InMemoryRepository() if repository is None else repository
        )

    def __len__(self) -> int:
        return len(self._records)

    def _check_dimension(self, vector: Sequence[float]) -> None:
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

    # -- Write -------------------------------------------------------------------

    def store(
        self, id: str, vector: Sequence[float], metadata: dict[str, Any] | None = None
    ) -> bool:
        """Store ``vector`` under ``id``, replacing any previous record."""
        try:
            self._check_dimension(vector)
        except DimensionMismatchError:
            logger.error("Vector storage failed for %s: wrong dimension %d", id, len(vector))
            raise

        record = EmbeddingRecord(id=id, vector=[float(v) for v in vector])
        record.metadata = {**(metadata or {}), "timestamp": record.created_at, "id": id}
        self._records.put(id, record)
        logger.debug("Vector stored: %s (metadata keys: %s)", id, sorted(metadata or {}))
        return True

    def delete(self, id: str) -> bool:
        existed = self._records.delete(id)
        if existed:
            logger.info("Vector deleted: %s", id)
        return existed

    def clear(self) -> int:
        count = self._records.clear()
        logger.info("Vector index cleared (%d records)", count)
        return count

    # -- Read --------------------------------------------------------------------

    def retrieve(self, id: str) -> SearchResult | None:
        record = self._records.get(id)
        if record is None:
            return None
        return SearchResult(
            id=record.id,
            vector=record.vector,
            metadata=record.metadata,
            similarity=1.0,
        )

    def search(
        self,
        query: Sequence[float],
        *,
        limit: int = 10,
        threshold: float | None = None,
        filter: dict[str, Any] | None = None,
    ) -> list[SearchResult]:
        """Rank stored vectors by cosine similarity to ``query``.

        Only records whose metadata matches every ``filter`` pair are
        considered. Results have ``similarity >= threshold``, are sorted
        best-first, and are truncated to ``limit``.
        """
        self._check_dimension(query)
        if threshold is None:
            threshold = self.similarity_threshold
        filters = filter or {}
        q = np.asarray(query, dtype=np.float64)

        results: list[SearchResult] = []
        for record in self._records.values():
            if not matches_filter(record.metadata, filters):
                continue
            similarity = cosine_similarity(q, np.asarray(record.vector, dtype=np.float64))
            if similarity >= threshold:
                results.append(
                    SearchResult(
                        id=record.id,
                        vector=record.vector,
                        metadata=record.metadata,
                        similarity=similarity,
                    )
                )

        results.sort(key=lambda r: r.similarity, reverse=True)
        limited = results[: max(limit, 0)]
        logger.debug(
            "Vector search: %d/%d records matched (threshold=%.2f, filter=%s)",
            len(limited),
            len(self._records),
            threshold,
            filters,
        )
        return limited

    # -- Conversation context ----------------------------------------------------

    def store_context(
        self,
        conversation_id: str,
        message_id: str,
        content: str,
        embedding: Sequence[float],
        role: str = "user",
    ) -> bool:
        """Store a conversation turn as ``{conversation_id}:{message_id}``."""
        metadata = {
            "conversation_id": conversation_id,
            "message_id": message_id,
            "content": content[:500],
            "role": role,
            "type": CONTEXT_TYPE,
        }
        return self.store(f"{conversation_id}:{message_id}", embedding, metadata)

    def get_relevant_context(
        self,
        conversation_id: str,
        query: Sequence[float],
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        hits = self.search(
            query,
            limit=limit,
            filter={"conversation_id": conversation_id, "type": CONTEXT_TYPE},
        )
        return [
            {
                "message_id": hit.metadata.get("message_id"),
                "content": hit.metadata.get("content", ""),
                "role": hit.metadata.get("role"),
                "similarity": hit.similarity,
            }
            for hit in hits
        ]

    # -- Code patterns -----------------------------------------------------------

    def store_code_pattern(
        self,
        pattern_id: str,
        code: str,
        embedding: Sequence[float],
        language: str,
        pattern: str,
        description: str = "",
    ) -> bool:
        metadata = {
            "code": code[:1000],
            "language": language,
            "pattern": pattern,
            "description": description,
            "type": CODE_PATTERN_TYPE,
        }
        return self.store(pattern_id, embedding, metadata)

    def find_similar_patterns(
        self,
        query: Sequence[float],
        language: str | None = None,
        limit: int = 5,
    ) -> list[dict[str, Any]]:
        filters: dict[str, Any] = {"type": CODE_PATTERN_TYPE}
        if language:
            filters["language"] = language
        hits = self.search(query, limit=limit, filter=filters)
        return [
            {
                "pattern_id": hit.id,
                "code": hit.metadata.get("code", ""),
                "language": hit.metadata.get("language"),
                "pattern": hit.metadata.get("pattern"),
                "description": hit.metadata.get("description", ""),
                "similarity": hit.similarity,
            }
            for hit in hits
        ]

    # -- Stats -------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        return {
            "total_vectors": len(self._records),
            "dimension": self.dimension,
            "similarity_threshold": self.similarity_threshold,
            "memory_usage": self._estimate_memory_usage(),
        }

    def _estimate_memory_usage(self) -> int:
        """Rough byte estimate: 8 bytes per float plus serialized metadata."""
        vector_bytes = len(self._records) * self.dimension * 8
        metadata_bytes = len(
            json.dumps([r.metadata for r in self._records.values()], default=str)
        )
        return vector_bytes + metadata_bytes
