"""Tests for split_into_chunks()."""

from legacy_bridge.pipeline.chunker import split_into_chunks

LINES = [f"LINE {i:03d}\n" for i in range(50)]
TEXT = "".join(LINES)


def test_small_text_is_one_chunk():
    chunks = split_into_chunks("short text", max_chars=100)
    assert len(chunks) == 1
    assert chunks[0].content == "short text"
    assert chunks[0].offset == 0


def test_chunks_respect_size_and_offsets():
    chunks = split_into_chunks(TEXT, max_chars=100, overlap=20)

    assert len(chunks) > 1
    assert [c.index for c in chunks] == list(range(len(chunks)))
    for chunk in chunks:
        assert chunk.length <= 100
        assert TEXT[chunk.offset : chunk.offset + chunk.length] == chunk.content


def test_lines_are_never_split():
    chunks = split_into_chunks(TEXT, max_chars=100, overlap=20)
    for chunk in chunks:
        assert all(line + "\n" in LINES for line in chunk.content.splitlines())
    assert chunks[-1].content.endswith(LINES[-1])


def test_overlap_carries_whole_lines():
    chunks = split_into_chunks(TEXT, max_chars=100, overlap=20)
    # 9-char lines: two fit in a 20-char overlap.
    assert chunks[1].content.startswith(chunks[0].content[-18:])


def test_zero_overlap():
    chunks = split_into_chunks(TEXT, max_chars=100, overlap=0)
    assert "".join(c.content for c in chunks) == TEXT


def test_oversized_line_gets_own_chunk():
    text = "X" * 250 + "\nshort\n"
    chunks = split_into_chunks(text, max_chars=100, overlap=20)
    assert [c.length for c in chunks] == [251, 6]
    assert chunks[1].offset == 251
