"""External collaborators — content generation and embeddings."""

from legacy_bridge.llm.client import AnthropicGenerator, Generator, complete_text
from legacy_bridge.llm.embeddings import Embedder, OpenAIEmbedder

__all__ = [
    "AnthropicGenerator",
    "Embedder",
    "Generator",
    "OpenAIEmbedder",
    "complete_text",
]
