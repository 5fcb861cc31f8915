"""Split large source text into overlapping, line-aligned chunks."""

from __future__ import annotations

from dataclasses import dataclass

from legacy_bridge.config import settings


@dataclass
class Chunk:
    index: int
    content: str
    offset: int

    @property
    def length(self) -> int:
        return len(self.content)


def split_into_chunks(
    text: str,
    max_chars: int | None = None,
    overlap: int | None = None,
) -> list[Chunk]:
    """Split ``text`` into chunks of at most ``max_chars``, never breaking a line.

    Consecutive chunks share up to ``overlap`` trailing characters' worth of
    whole lines (capped at half of ``max_chars``). A single line longer than
    ``max_chars`` becomes its own chunk.
    """
    max_chars = max_chars or settings.chunk_max_chars
    overlap = settings.chunk_overlap_chars if overlap is None else overlap
    # Overlap may never consume more than half a chunk.
    overlap = min(overlap, max_chars // 2)
    if len(text) <= max_chars:
        return [Chunk(index=0, content=text, offset=0)]

    lines = text.splitlines(keepends=True)
    chunks: list[Chunk] = []
    current: list[str] = []
    current_len = 0
    offset = 0

    for line in lines:
        if current and current_len + len(line) > max_chars:
            content = "".join(current)
            chunks.append(Chunk(index=len(chunks), content=content, offset=offset))

            # Carry whole trailing lines forward as overlap.
            carried: list[str] = []
            carried_len = 0
            for prev in reversed(current):
                if carried_len + len(prev) > overlap:
                    break
                carried.insert(0, prev)
                carried_len += len(prev)
            offset += current_len - carried_len
            current = carried
            current_len = carried_len

        current.append(line)
        current_len += len(line)

    if current:
        chunks.append(Chunk(index=len(chunks), content="".join(current), offset=offset))
    return chunks
