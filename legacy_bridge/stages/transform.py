"""Transform stage — generate modernized code from an analysis."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from legacy_bridge.errors import ErrorKind, StageError
from legacy_bridge.pipeline.models import TRANSFORM
from legacy_bridge.stages.base import BaseStage
from legacy_bridge.stages.parsing import extract_code_blocks, try_parse_object

if TYPE_CHECKING:
    from legacy_bridge.pipeline.models import StageContext

logger = logging.getLogger(__name__)

DEFAULT_TARGET_LANGUAGE = "Java"
MAX_ORIGINAL_CHARS = 4000

SYSTEM_PROMPT = """You are an expert modernization specialist for legacy COBOL/AS400 systems. Your role is to:

1. Convert legacy COBOL code to modern equivalents (Java, C#, Python, or Node.js)
2. Preserve business logic while modernizing architecture patterns
3. Suggest appropriate modern frameworks and design patterns
4. Identify API-first opportunities and service boundaries

Respond with JSON only, using this structure:
{
  "modernization": {"target_language": "...", "target_framework": "...",
                    "architecture": "monolith|microservices|serverless",
                    "database_strategy": "..."},
  "converted_code": {"main_class": "...", "data_models": [], "business_logic": [], "tests": []},
  "endpoints": [{"path": "...", "method": "...", "description": "..."}],
  "models": [{"name": "...", "fields": [{"name": "...", "type": "...", "required": true}]}],
  "migration_plan": {"phases": [{"phase": 1, "description": "...", "tasks": []}]}
}"""

STYLE_GUIDANCE = {
    "aggressive": (
        "Use aggressive modernization: microservices, cloud-native patterns, and current "
        "frameworks. Prioritize scalability."
    ),
    "conservative": (
        "Use conservative modernization: keep a similar structure in the modern language. "
        "Minimize changes and risk."
    ),
    "api-first": (
        "Focus on API-first modernization: expose business logic as REST APIs with clear "
        "service boundaries."
    ),
    "gradual": (
        "Use a gradual approach: balance modern patterns with practical migration steps. "
        "Keep the result maintainable and testable."
    ),
}


class TransformStage(BaseStage):
    """Produces modernized code for an analysis result.

    Output always contains ``modernization``, ``converted_code``
    (with ``main_class``), ``endpoints`` and ``models``. A response with
    neither a JSON object nor a fenced code block is a FORMAT failure.
    """

    name = TRANSFORM
    system_prompt = SYSTEM_PROMPT
    required_fields = ("analysis_result",)
    temperature = 0.4

    async def process(self, stage_input: dict[str, Any], context: StageContext) -> dict[str, Any]:
        target_language = stage_input.get("target_language") or DEFAULT_TARGET_LANGUAGE
        target_framework = stage_input.get("target_framework")
        style = stage_input.get("modernization_style") or "gradual"

        text = await self.generate(self._build_user_prompt(stage_input, style), context)
        parsed = try_parse_object(text)
        if parsed is None:
            result = self._from_code_blocks(text, target_language, target_framework)
        else:
            result = self._normalize(parsed, target_language, target_framework)

        await self._remember_pattern(result, stage_input)
        return result

    def _build_user_prompt(self, stage_input: dict[str, Any], style: str) -> str:
        target_language = stage_input.get("target_language") or DEFAULT_TARGET_LANGUAGE
        target_framework = stage_input.get("target_framework")
        original_code = stage_input.get("original_code")

        header = f"Modernize the following COBOL program analysis to {target_language}"
        if target_framework:
            header += f" using {target_framework}"
        lines = [
            header + ":",
            "",
            "Original analysis:",
            "```json",
            self.to_json(stage_input["analysis_result"]),
            "```",
            "",
        ]
        if original_code:
            lines.extend(
                ["Original COBOL code:", "```cobol", original_code[:MAX_ORIGINAL_CHARS], "```", ""]
            )
        lines.append(STYLE_GUIDANCE.get(style, STYLE_GUIDANCE["gradual"]))
        if stage_input.get("partial"):
            lines.append("Only the first part of the program is shown; convert what is present.")
        return "\n".join(lines)

    @staticmethod
    def _normalize(
        parsed: dict[str, Any], target_language: str, target_framework: str | None
    ) -> dict[str, Any]:
        modernization = dict(parsed.get("modernization") or {})
        modernization.setdefault("target_language", target_language)
        modernization.setdefault("target_framework", target_framework)
        modernization.setdefault("architecture", "monolith")

        converted = parsed.get("converted_code")
        if isinstance(converted, str):
            converted = {"main_class": converted}
        converted = dict(converted or {})
        if not converted.get("main_class"):
            msg = "transform: model output has no converted code (format)"
            raise StageError(msg, ErrorKind.FORMAT)

        return {
            "modernization": modernization,
            "converted_code": converted,
            "endpoints": list(parsed.get("endpoints") or converted.get("api_endpoints") or []),
            "models": list(parsed.get("models") or converted.get("data_models") or []),
            "migration_plan": dict(parsed.get("migration_plan") or {}),
            "extracted_from_text": False,
        }

    @staticmethod
    def _from_code_blocks(
        text: str, target_language: str, target_framework: str | None
    ) -> dict[str, Any]:
        blocks = [body for lang, body in extract_code_blocks(text) if lang != "json"]
        if not blocks:
            msg = "transform: model output has neither JSON nor code blocks (format)"
            raise StageError(msg, ErrorKind.FORMAT)
        logger.info("Transform output was not JSON; using %d fenced code block(s)", len(blocks))
        return {
            "modernization": {
                "target_language": target_language,
                "target_framework": target_framework,
                "architecture": "monolith",
            },
            "converted_code": {"main_class": blocks[0], "additional": blocks[1:]},
            "endpoints": [],
            "models": [],
            "migration_plan": {},
            "extracted_from_text": True,
        }

    def score(self, data: dict[str, Any], stage_input: dict[str, Any]) -> float:
        confidence = 0.7
        if data.get("endpoints"):
            confidence += 0.1
        if data.get("models"):
            confidence += 0.1
        if data.get("migration_plan", {}).get("phases"):
            confidence += 0.1
        if data.get("extracted_from_text"):
            confidence -= 0.2
        if stage_input.get("partial"):
            confidence -= 0.1
        return max(0.3, min(confidence, 0.95))

    async def _remember_pattern(self, result: dict[str, Any], stage_input: dict[str, Any]) -> None:
        if self.memory is None or self.embedder is None:
            return
        analysis = stage_input.get("analysis_result") or {}
        program = (analysis.get("program_info") or {}).get("name", "unknown")
        language = result["modernization"]["target_language"]
        code = result["converted_code"]["main_class"]
        try:
            embedding = await self.embed(code)
            self.memory.vectors.store_code_pattern(
                f"{program}:{str(language).lower()}",
                code,
                embedding,
                str(language).lower(),
                f"cobol_to_{str(language).lower()}",
                f"Modernization of {program}",
            )
        except Exception:
            logger.exception("Failed to store code pattern for %s", program)
