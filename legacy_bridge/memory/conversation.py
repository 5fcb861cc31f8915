"""Bounded per-conversation message history."""

from __future__ import annotations

from collections import deque

from legacy_bridge.config import settings
from legacy_bridge.memory.models import ConversationEntry


class ConversationHistory:
    """FIFO ring of the most recent entries per conversation id.

    Once a conversation holds ``limit`` entries, each new entry evicts the
    oldest one.
    """

    def __init__(self, limit: int | None = None) -> None:
        self.limit = limit or settings.conversation_history_limit
        self._conversations: dict[str, deque[ConversationEntry]] = {}

    def append(self, conversation_id: str, entry: ConversationEntry) -> None:
        ring = self._conversations.get(conversation_id)
        if ring is None:
            ring = deque(maxlen=self.limit)
            self._conversations[conversation_id] = ring
        ring.append(entry)

    def get(self, conversation_id: str) -> list[ConversationEntry]:
        return list(self._conversations.get(conversation_id, ()))

    def conversation_count(self) -> int:
        return len(self._conversations)

    def message_count(self) -> int:
        return sum(len(ring) for ring in self._conversations.values())

    def clear(self) -> None:
        self._conversations.clear()
