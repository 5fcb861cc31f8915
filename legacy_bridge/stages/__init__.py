"""Pipeline stages and the default stage set."""

from __future__ import annotations

from typing import TYPE_CHECKING

from legacy_bridge.stages.analyze import AnalyzeStage
from legacy_bridge.stages.base import BaseStage, Stage
from legacy_bridge.stages.explain import ExplainStage
from legacy_bridge.stages.transform import TransformStage
from legacy_bridge.stages.validate import ValidateStage

if TYPE_CHECKING:
    from legacy_bridge.llm.client import Generator
    from legacy_bridge.llm.embeddings import Embedder
    from legacy_bridge.memory.store import MemoryStore


def build_default_stages(
    generator: Generator,
    memory: MemoryStore | None = None,
    embedder: Embedder | None = None,
) -> dict[str, Stage]:
    """The four built-in stages keyed by stage name."""
    stages = (
        AnalyzeStage(generator, memory, embedder),
        TransformStage(generator, memory, embedder),
        ValidateStage(generator, memory, embedder),
        ExplainStage(generator, memory, embedder),
    )
    return {stage.name: stage for stage in stages}


__all__ = [
    "AnalyzeStage",
    "BaseStage",
    "ExplainStage",
    "Stage",
    "TransformStage",
    "ValidateStage",
    "build_default_stages",
]
