"""Shared test fixtures."""

import hashlib

import pytest

from legacy_bridge.memory.store import MemoryStore
from legacy_bridge.memory.vector_index import VectorIndex
from legacy_bridge.pipeline.models import StageContext

DIMENSION = 8


class FakeGenerator:
    """Returns scripted responses in order; the last one repeats.

    Exceptions in the script are raised instead of returned.
    """

    def __init__(self, *responses):
        self.responses = list(responses) or ["{}"]
        self.calls: list[dict] = []

    async def generate(self, prompt, *, system_prompt="", temperature=0.7, max_tokens=None):
        self.calls.append(
            {"prompt": prompt, "system_prompt": system_prompt, "temperature": temperature}
        )
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, BaseException):
            raise item
        return item


class FakeEmbedder:
    """Deterministic embeddings derived from a hash of the text."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        digest = hashlib.sha256(text.encode()).digest()
        return [digest[i] / 255 + 0.01 for i in range(self.dimension)]


@pytest.fixture(autouse=True)
def _reset_memory_singleton():
    MemoryStore._reset()
    yield
    MemoryStore._reset()


@pytest.fixture
def memory() -> MemoryStore:
    """An isolated store with a small vector dimension and no default threshold."""
    return MemoryStore(vector_index=VectorIndex(dimension=DIMENSION, similarity_threshold=0.0))


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def make_generator():
    return FakeGenerator


@pytest.fixture
def context() -> StageContext:
    return StageContext(
        workflow_id="workflow_test",
        conversation_id="conv_test",
        max_retries=3,
        retry_base_delay=0,
    )
