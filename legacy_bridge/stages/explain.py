"""Explain stage — human-readable summary and migration plan."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from legacy_bridge.pipeline.models import EXPLAIN
from legacy_bridge.stages.base import BaseStage
from legacy_bridge.stages.parsing import strip_markdown_code_block, try_parse_object

if TYPE_CHECKING:
    from legacy_bridge.pipeline.models import StageContext

SYSTEM_PROMPT = """You are a technical documentation specialist for legacy modernization projects.
Explain the transformation from legacy to modern code for the given audience.

Respond with JSON only, using this structure:
{
  "summary": "...",
  "migration_plan": {"phases": [{"phase": 1, "description": "...", "tasks": [], "estimated_effort": "..."}]},
  "risks": [{"risk": "...", "impact": "high|medium|low", "mitigation": "..."}],
  "insights": [{"category": "...", "insight": "..."}]
}"""


class ExplainStage(BaseStage):
    """Summarizes analysis, transformation and validation for an audience.

    Plain prose responses are accepted as the summary.
    """

    name = EXPLAIN
    system_prompt = SYSTEM_PROMPT
    required_fields = ("data",)
    temperature = 0.5

    async def process(self, stage_input: dict[str, Any], context: StageContext) -> dict[str, Any]:
        explanation_type = stage_input.get("explanation_type") or "technical"
        audience = stage_input.get("target_audience") or "developers"
        data = stage_input["data"]
        if not stage_input.get("include_code", True):
            data = {k: v for k, v in data.items() if k != "transformation"}

        lines = [
            f"Generate a {explanation_type} explanation for {audience}"
            " based on the following data:",
            "",
            "```json",
            self.to_json(data, limit=12000),
            "```",
        ]
        if stage_input.get("include_metrics", True):
            lines.append("Include quality metrics and validation scores where available.")

        text = await self.generate("\n".join(lines), context)
        parsed = try_parse_object(text)
        if parsed is None:
            return {
                "summary": strip_markdown_code_block(text).strip(),
                "migration_plan": {"phases": []},
                "risks": [],
                "insights": [],
                "extracted_from_text": True,
            }

        plan = parsed.get("migration_plan") or {}
        return {
            "summary": str(parsed.get("summary") or ""),
            "migration_plan": {"phases": list(plan.get("phases") or [])},
            "risks": list(parsed.get("risks") or []),
            "insights": list(parsed.get("insights") or []),
            "extracted_from_text": False,
        }

    def score(self, data: dict[str, Any], stage_input: dict[str, Any]) -> float:
        confidence = 0.7
        if data["migration_plan"]["phases"]:
            confidence += 0.1
        if data["risks"]:
            confidence += 0.1
        if data.get("extracted_from_text"):
            confidence -= 0.3
        if not data["summary"]:
            confidence -= 0.2
        return max(0.3, min(confidence, 0.95))
