"""Validate stage — review modernized code against the original analysis."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from legacy_bridge.pipeline.models import VALIDATE
from legacy_bridge.stages.base import BaseStage, require_object
from legacy_bridge.stages.parsing import try_parse_object

if TYPE_CHECKING:
    from legacy_bridge.pipeline.models import StageContext

logger = logging.getLogger(__name__)

PASSING_SCORE = 70

SYSTEM_PROMPT = """You are a code validation and quality assurance specialist. Your role is to:

1. Validate modernized code for correctness and quality
2. Compare modernized code against the original business logic for equivalence
3. Identify bugs, security issues, and performance problems
4. Suggest concrete improvements

Respond with JSON only, using this structure:
{
  "validation": {"overall_score": 0-100, "status": "passed|failed|warning",
                 "business_logic_equivalence": "high|medium|low"},
  "security_issues": [{"severity": "critical|high|medium|low", "description": "...", "location": "..."}],
  "logic_gaps": [{"description": "...", "original_behavior": "...", "suggestion": "..."}],
  "recommendation": "..."
}"""

SECURITY_FOCUS = {
    "standard": (
        "Check for common vulnerabilities: injection, plaintext secrets,"
        " missing input validation."
    ),
    "strict": (
        "Apply a strict security review: injection, secrets handling, authorization, "
        "input validation, and error disclosure."
    ),
}

_SQL_CONCAT = re.compile(r"""(SELECT|INSERT|UPDATE|DELETE)\b[^;]*["']\s*\+""", re.IGNORECASE)


def code_text(modernized_code: Any) -> str:
    if isinstance(modernized_code, str):
        return modernized_code
    if isinstance(modernized_code, dict) and isinstance(modernized_code.get("main_class"), str):
        return modernized_code["main_class"]
    return BaseStage.to_json(modernized_code)


def automated_checks(code: str) -> dict[str, Any]:
    """Cheap static checks run alongside the model review."""
    syntax: list[str] = []
    if code.count("{") != code.count("}"):
        syntax.append("Mismatched braces")
    if code.count("(") != code.count(")"):
        syntax.append("Mismatched parentheses")

    security: list[dict[str, str]] = []
    if "eval(" in code or "exec(" in code:
        security.append(
            {"severity": "critical", "description": "Potential code injection via eval/exec"}
        )
    lowered = code.lower()
    if "password" in lowered and "hash" not in lowered:
        security.append(
            {"severity": "high", "description": "Potential plaintext password handling"}
        )
    if _SQL_CONCAT.search(code):
        security.append({"severity": "high", "description": "SQL built by string concatenation"})

    return {
        "syntax": {"status": "failed" if syntax else "passed", "issues": syntax},
        "security": {"status": "failed" if security else "passed", "issues": security},
    }


class ValidateStage(BaseStage):
    """Scores modernized code 0-100; confidence is ``overall_score / 100``.

    A low score is a finding, not a stage failure.
    """

    name = VALIDATE
    system_prompt = SYSTEM_PROMPT
    required_fields = ("modernized_code",)
    temperature = 0.2

    async def process(self, stage_input: dict[str, Any], context: StageContext) -> dict[str, Any]:
        code = code_text(stage_input["modernized_code"])
        target_language = stage_input.get("target_language") or "Java"
        security_level = stage_input.get("security_level") or "standard"

        lines = [
            f"Validate the following modernized {target_language} code"
            " against the original COBOL analysis:",
            "",
        ]
        if stage_input.get("original_analysis"):
            analysis_json = self.to_json(stage_input["original_analysis"])
            lines.extend(["Original analysis:", "```json", analysis_json, "```", ""])
        lines.extend([f"```{target_language.lower()}", code, "```", ""])
        lines.append(SECURITY_FOCUS.get(security_level, SECURITY_FOCUS["standard"]))

        text = await self.generate("\n".join(lines), context)
        parsed = require_object(try_parse_object(text), self.name)

        validation = dict(parsed.get("validation") or {})
        validation["overall_score"] = _clamp_score(validation.get("overall_score"))
        validation.setdefault(
            "status", "passed" if validation["overall_score"] >= PASSING_SCORE else "warning"
        )

        checks = automated_checks(code)
        security_issues = list(parsed.get("security_issues") or [])
        security_issues.extend(checks["security"]["issues"])

        return {
            "validation": validation,
            "security_issues": security_issues,
            "logic_gaps": list(parsed.get("logic_gaps") or []),
            "recommendation": parsed.get("recommendation") or "",
            "automated_checks": checks,
        }

    def score(self, data: dict[str, Any], stage_input: dict[str, Any]) -> float:
        return data["validation"]["overall_score"] / 100


def _clamp_score(value: Any) -> int:
    try:
        score = int(float(value))
    except (TypeError, ValueError):
        logger.warning("Validation response had no usable overall_score: %r", value)
        return 0
    return max(0, min(100, score))
