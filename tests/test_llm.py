"""Tests for the Claude generator and the OpenAI embedder."""

from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from legacy_bridge.errors import ErrorKind, GenerationError
from legacy_bridge.llm.client import AnthropicGenerator, complete_text
from legacy_bridge.llm.embeddings import MAX_INPUT_CHARS, OpenAIEmbedder

REQUEST = httpx.Request("POST", "https://api.example.test/v1")


def _anthropic_client(*texts: str) -> MagicMock:
    response = MagicMock()
    response.content = [MagicMock(type="text", text=t) for t in texts]
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response)
    return client


def _openai_client(vector: list[float]) -> MagicMock:
    response = MagicMock()
    response.data = [MagicMock(embedding=vector)]
    client = MagicMock()
    client.embeddings.create = AsyncMock(return_value=response)
    return client


# -- complete_text -------------------------------------------------------------------


async def test_complete_text_basic() -> None:
    client = _anthropic_client("hello ", "world")

    with patch("legacy_bridge.llm.client._get_client", return_value=client):
        result = await complete_text([{"role": "user", "content": "hi"}], model="claude-test")

    assert result == "hello world"
    kwargs = client.messages.create.call_args.kwargs
    assert kwargs["model"] == "claude-test"
    assert kwargs["max_tokens"] == 4000
    assert "system" not in kwargs


async def test_complete_text_skips_non_text_blocks() -> None:
    client = _anthropic_client("kept")
    client.messages.create.return_value.content.append(MagicMock(type="tool_use", text="dropped"))

    with patch("legacy_bridge.llm.client._get_client", return_value=client):
        assert await complete_text([{"role": "user", "content": "hi"}]) == "kept"


# -- AnthropicGenerator ----------------------------------------------------------------


class TestAnthropicGenerator:
    async def test_generate(self) -> None:
        client = _anthropic_client('{"ok": true}')

        with patch("legacy_bridge.llm.client._get_client", return_value=client):
            text = await AnthropicGenerator(model="claude-test").generate(
                "Analyze this", system_prompt="You are an analyst.", temperature=0.3
            )

        assert text == '{"ok": true}'
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["messages"] == [{"role": "user", "content": "Analyze this"}]
        assert kwargs["system"] == "You are an analyst."
        assert kwargs["temperature"] == 0.3

    async def test_empty_response_is_format_error(self) -> None:
        client = _anthropic_client("   ")

        with (
            patch("legacy_bridge.llm.client._get_client", return_value=client),
            pytest.raises(GenerationError) as exc_info,
        ):
            await AnthropicGenerator().generate("x")

        assert exc_info.value.kind is ErrorKind.FORMAT

    async def test_timeout_is_transient(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=anthropic.APITimeoutError(request=REQUEST))

        with (
            patch("legacy_bridge.llm.client._get_client", return_value=client),
            pytest.raises(GenerationError) as exc_info,
        ):
            await AnthropicGenerator().generate("x")

        assert exc_info.value.kind is ErrorKind.TRANSIENT
        assert isinstance(exc_info.value.__cause__, anthropic.APITimeoutError)

    async def test_connection_error_is_transient(self) -> None:
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.APIConnectionError(request=REQUEST)
        )

        with (
            patch("legacy_bridge.llm.client._get_client", return_value=client),
            pytest.raises(GenerationError) as exc_info,
        ):
            await AnthropicGenerator().generate("x")

        assert exc_info.value.kind is ErrorKind.TRANSIENT


# -- OpenAIEmbedder --------------------------------------------------------------------


class TestOpenAIEmbedder:
    async def test_embed(self) -> None:
        client = _openai_client([0.1, 0.2, 0.3])

        with patch("legacy_bridge.llm.embeddings._get_client", return_value=client):
            vector = await OpenAIEmbedder(model="embed-test", dimension=3).embed("PROGRAM-ID. X.")

        assert vector == [0.1, 0.2, 0.3]
        kwargs = client.embeddings.create.call_args.kwargs
        assert kwargs == {"model": "embed-test", "input": "PROGRAM-ID. X.", "dimensions": 3}

    async def test_long_and_empty_inputs(self) -> None:
        client = _openai_client([0.0, 1.0])
        embedder = OpenAIEmbedder(dimension=2)

        with patch("legacy_bridge.llm.embeddings._get_client", return_value=client):
            await embedder.embed("x" * (MAX_INPUT_CHARS + 10))
            assert len(client.embeddings.create.call_args.kwargs["input"]) == MAX_INPUT_CHARS
            await embedder.embed("")
            assert client.embeddings.create.call_args.kwargs["input"] == " "

    async def test_dimension_mismatch_is_format_error(self) -> None:
        client = _openai_client([0.1, 0.2])

        with (
            patch("legacy_bridge.llm.embeddings._get_client", return_value=client),
            pytest.raises(GenerationError) as exc_info,
        ):
            await OpenAIEmbedder(dimension=3).embed("x")

        assert exc_info.value.kind is ErrorKind.FORMAT

    async def test_timeout_is_transient(self) -> None:
        client = MagicMock()
        client.embeddings.create = AsyncMock(side_effect=openai.APITimeoutError(request=REQUEST))

        with (
            patch("legacy_bridge.llm.embeddings._get_client", return_value=client),
            pytest.raises(GenerationError) as exc_info,
        ):
            await OpenAIEmbedder(dimension=3).embed("x")

        assert exc_info.value.kind is ErrorKind.TRANSIENT
