"""Base types for pipeline stages.

The orchestrator only ever sees the ``Stage`` contract:
``await stage.execute(input, context) -> StageResult``. ``BaseStage`` is the
shared implementation behind the four built-in stages.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from legacy_bridge.errors import ErrorKind, GenerationError, InputError, StageError, classify_error
from legacy_bridge.pipeline.models import StageResult

if TYPE_CHECKING:
    from legacy_bridge.llm.client import Generator
    from legacy_bridge.llm.embeddings import Embedder
    from legacy_bridge.memory.store import MemoryStore
    from legacy_bridge.pipeline.models import StageContext

logger = logging.getLogger(__name__)


class Stage(ABC):
    """Abstract pipeline stage.

    Implementations never raise out of ``execute``; failures are reported
    as ``StageResult(success=False, ...)``.
    """

    name: str = ""

    @abstractmethod
    async def execute(self, stage_input: dict[str, Any], context: StageContext) -> StageResult:
        """Run the stage once over ``stage_input``."""
        ...


class BaseStage(Stage):
    """Prompt → generate → coerce → score, with retries.

    Subclasses set ``name``, ``system_prompt`` and ``required_fields`` and
    implement ``process`` (build the prompt, call the generator, coerce the
    text into a dict) and ``score``.

    Provider and stage errors are retried up to ``context.max_retries`` with
    a linear backoff of ``context.retry_base_delay * attempt`` seconds.
    Missing input fields fail immediately.

    Args:
        generator: Content-generation collaborator.
        memory: Memory store to read context from and write results to.
        embedder: Embedding collaborator; memory writes are skipped without it.
    """

    system_prompt: str = ""
    required_fields: tuple[str, ...] = ()
    temperature: float = 0.3
    max_tokens: int | None = None

    def __init__(
        self,
        generator: Generator,
        memory: MemoryStore | None = None,
        embedder: Embedder | None = None,
    ) -> None:
        self.generator = generator
        self.memory = memory
        self.embedder = embedder

    async def execute(self, stage_input: dict[str, Any], context: StageContext) -> StageResult:
        attempt = context.attempt
        try:
            self.validate_input(stage_input)
        except InputError as exc:
            logger.warning("%s rejected input: %s", self.name, exc)
            return StageResult.failed(str(exc), exc.kind, input=stage_input, attempt=attempt)

        while True:
            logger.info(
                "%s starting (workflow %s, attempt %d)", self.name, context.workflow_id, attempt
            )
            t0 = time.monotonic()
            try:
                data = await self.process(stage_input, context)
                confidence = max(0.0, min(1.0, self.score(data, stage_input)))
                logger.info(
                    "%s completed in %.2fs (confidence %.2f)",
                    self.name,
                    time.monotonic() - t0,
                    confidence,
                )
                return StageResult.ok(data, confidence, input=stage_input, attempt=attempt)
            except InputError as exc:
                return StageResult.failed(str(exc), exc.kind, input=stage_input, attempt=attempt)
            except (GenerationError, StageError) as exc:
                error, kind = str(exc), exc.kind
                logger.warning("%s failed on attempt %d: %s", self.name, attempt, error)
            except Exception as exc:
                error, kind = str(exc) or type(exc).__name__, classify_error(str(exc))
                logger.exception("%s raised on attempt %d", self.name, attempt)

            if attempt >= context.max_retries:
                return StageResult.failed(error, kind, input=stage_input, attempt=attempt)
            logger.info("Retrying %s (attempt %d/%d)", self.name, attempt + 1, context.max_retries)
            await asyncio.sleep(context.retry_base_delay * attempt)
            attempt += 1

    def validate_input(self, stage_input: dict[str, Any]) -> None:
        if not stage_input:
            msg = "Input is required"
            raise InputError(msg)
        for field_name in self.required_fields:
            if not stage_input.get(field_name):
                msg = f"Required field '{field_name}' is missing"
                raise InputError(msg)

    @abstractmethod
    async def process(self, stage_input: dict[str, Any], context: StageContext) -> dict[str, Any]:
        """Produce the stage's structured output."""
        ...

    def score(self, data: dict[str, Any], stage_input: dict[str, Any]) -> float:
        """Estimate output reliability in [0, 1]."""
        return 0.7

    # -- Helpers -----------------------------------------------------------------

    async def generate(self, user_prompt: str, context: StageContext) -> str:
        """Call the generator with memory context appended to the prompt."""
        prompt = self.build_prompt(user_prompt, context.memory_context)
        return await self.generator.generate(
            prompt,
            system_prompt=self.system_prompt,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    @staticmethod
    def build_prompt(user_prompt: str, memory_context: dict[str, Any] | None) -> str:
        if not memory_context:
            return user_prompt

        parts = [user_prompt]
        conversation = memory_context.get("conversation") or []
        if conversation:
            parts.append("\n\nRelevant conversation history:")
            for turn in conversation:
                parts.append(f"{turn.get('role')}: {str(turn.get('content', ''))[:200]}...")

        patterns = memory_context.get("code_patterns") or []
        if patterns:
            parts.append("\n\nRelevant code patterns:")
            for pattern in patterns:
                parts.append(
                    f"Pattern: {pattern.get('pattern')}\n"
                    f"Code: {str(pattern.get('code', ''))[:300]}...\n"
                )
        return "\n".join(parts)

    @staticmethod
    def to_json(data: Any, limit: int | None = None) -> str:
        text = json.dumps(data, indent=2, default=str)
        return text[:limit] if limit else text

    async def embed(self, text: str) -> list[float] | None:
        if self.embedder is None:
            return None
        return await self.embedder.embed(text)


def require_object(parsed: dict[str, Any] | None, stage_name: str) -> dict[str, Any]:
    """Raise a FORMAT StageError when no JSON object could be coerced."""
    if parsed is None:
        msg = f"{stage_name}: could not parse a JSON object from model output (format)"
        raise StageError(msg, ErrorKind.FORMAT)
    return parsed
