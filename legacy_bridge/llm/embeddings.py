"""OpenAI embeddings used to key the vector index."""

from __future__ import annotations

import logging
from typing import Protocol

import openai

from legacy_bridge.config import settings
from legacy_bridge.errors import ErrorKind, GenerationError

logger = logging.getLogger(__name__)

_client: openai.AsyncOpenAI | None = None

# text-embedding-3-* accepts up to 8191 tokens; stay well under in characters.
MAX_INPUT_CHARS = 16000


class Embedder(Protocol):
    """Turns text into a fixed-length vector."""

    async def embed(self, text: str) -> list[float]: ...


def _get_client() -> openai.AsyncOpenAI:
    """Lazily initialize the OpenAI client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = openai.AsyncOpenAI(api_key=settings.openai_api_key)
    return _client


class OpenAIEmbedder:
    """``Embedder`` backed by the OpenAI embeddings endpoint.

    Args:
        model: Embedding model name (default from settings).
        dimension: Expected vector length; must match the vector index.
    """

    def __init__(self, model: str | None = None, dimension: int | None = None) -> None:
        self.model = model or settings.embedding_model
        self.dimension = dimension or settings.vector_dimension

    async def embed(self, text: str) -> list[float]:
        client = _get_client()
        try:
            response = await client.embeddings.create(
                model=self.model,
                input=text[:MAX_INPUT_CHARS] or " ",
                dimensions=self.dimension,
            )
        except (openai.RateLimitError, openai.APITimeoutError) as exc:
            msg = f"Embedding timeout or rate limit: {exc}"
            raise GenerationError(msg, ErrorKind.TRANSIENT) from exc
        except openai.APIError as exc:
            raise GenerationError(f"Embedding request failed: {exc}") from exc

        vector = response.data[0].embedding
        if len(vector) != self.dimension:
            msg = f"Embedding has {len(vector)} dimensions, expected {self.dimension} (format)"
            raise GenerationError(msg, ErrorKind.FORMAT)
        logger.debug("Embedded %d chars with %s", len(text), self.model)
        return vector
