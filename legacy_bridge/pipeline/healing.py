"""Self-healing — one recovery attempt for a failed mandatory stage."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from legacy_bridge.errors import ErrorKind, classify_error
from legacy_bridge.pipeline.chunker import split_into_chunks

if TYPE_CHECKING:
    from legacy_bridge.pipeline.models import StageContext, StageResult
    from legacy_bridge.stages.base import Stage

logger = logging.getLogger(__name__)

# Input fields that may hold the bulk source text, in lookup order.
_SOURCE_FIELDS = ("code", "original_code")


def failure_kind(result: StageResult) -> ErrorKind:
    """The result's explicit kind, else one inferred from its message."""
    if result.error_kind is not None:
        return result.error_kind
    return classify_error(result.error)


def simplify_input(stage_input: dict[str, Any]) -> dict[str, Any]:
    """Drop optional hints and fall back to the most conservative settings."""
    simplified = dict(stage_input)
    if "target_framework" in simplified:
        simplified["target_framework"] = None
    if "modernization_style" in simplified:
        simplified["modernization_style"] = "conservative"
    if "analysis_type" in simplified:
        simplified["analysis_type"] = "quick"
    simplified["simplified"] = True
    return simplified


def partial_input(
    stage_input: dict[str, Any], max_chars: int | None = None
) -> dict[str, Any] | None:
    """Narrow the input to its first chunk, or None if it cannot be split."""
    for field_name in _SOURCE_FIELDS:
        source = stage_input.get(field_name)
        if not isinstance(source, str):
            continue
        chunks = split_into_chunks(source, max_chars=max_chars)
        if len(chunks) < 2:
            return None
        return {
            **stage_input,
            field_name: chunks[0].content,
            "chunks": [{"index": c.index, "content": c.content} for c in chunks],
            "partial": True,
        }
    return None


class SelfHealer:
    """Chooses and runs a recovery strategy for a failed stage result.

    Dispatch is a total match over ``ErrorKind``:

    - TRANSIENT / UNKNOWN: retry the same input after a linear backoff.
    - TOO_COMPLEX: retry over the first chunk of the source text, with the
      full chunk list attached.
    - FORMAT: retry with simplified parameters.
    - INPUT: no retry; missing input cannot be healed.

    Args:
        chunk_max_chars: Chunk size for partial processing (default from
            settings).
    """

    def __init__(self, chunk_max_chars: int | None = None) -> None:
        self._chunk_max_chars = chunk_max_chars

    async def heal(
        self,
        stage_name: str,
        stage: Stage,
        stage_input: dict[str, Any],
        failed: StageResult,
        context: StageContext,
    ) -> StageResult:
        """Attempt one recovery. Returns the new result, or ``failed`` unchanged."""
        kind = failure_kind(failed)
        logger.info(
            "Self-healing %s for workflow %s (kind=%s, error=%s)",
            stage_name,
            context.workflow_id,
            kind.value,
            failed.error,
        )
        healed_context = dataclasses.replace(context, attempt=context.attempt + 1, healing=True)

        try:
            match kind:
                case ErrorKind.TRANSIENT | ErrorKind.UNKNOWN:
                    await asyncio.sleep(context.retry_base_delay * context.attempt)
                    result = await stage.execute(stage_input, healed_context)
                case ErrorKind.TOO_COMPLEX:
                    narrowed = partial_input(stage_input, self._chunk_max_chars)
                    if narrowed is None:
                        logger.info("Partial processing not possible for %s", stage_name)
                        return failed
                    result = await stage.execute(narrowed, healed_context)
                case ErrorKind.FORMAT:
                    result = await stage.execute(simplify_input(stage_input), healed_context)
                case ErrorKind.INPUT:
                    return failed
        except Exception:
            logger.exception("Self-healing raised for %s (%s)", stage_name, context.workflow_id)
            return failed

        if result.success:
            result.healed = True
            logger.info("Self-healing recovered %s (%s)", stage_name, context.workflow_id)
        else:
            logger.warning(
                "Self-healing failed for %s (%s): %s", stage_name, context.workflow_id, result.error
            )
        return result
