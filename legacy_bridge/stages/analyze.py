"""Analyze stage — structural analysis of a legacy COBOL/AS400 program."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from legacy_bridge.pipeline.models import ANALYZE
from legacy_bridge.stages.base import BaseStage
from legacy_bridge.stages.parsing import (
    extract_data_structures,
    extract_dependencies,
    try_parse_object,
)

if TYPE_CHECKING:
    from legacy_bridge.pipeline.models import StageContext

logger = logging.getLogger(__name__)

FALLBACK_PROGRAM_NAME = "LEGACY_PROG"
MAX_SOURCE_CHARS = 8000

# Dependency statement → graph relation type.
RELATION_TYPES = {
    "CALL": "calls",
    "COPY": "copies",
    "INCLUDE": "includes",
}

SYSTEM_PROMPT = """You are a specialized COBOL/AS400 code parser. Your role is to:

1. Analyze legacy COBOL code structure and identify key components
2. Extract program dependencies, data structures, and business logic
3. Identify file I/O operations, database interactions, and external calls
4. Detect outdated patterns and modernization opportunities

Respond with JSON only, using this structure:
{
  "program_info": {"name": "...", "type": "...", "language": "COBOL", "line_count": 0},
  "dependencies": [{"name": "...", "type": "CALL|COPY|INCLUDE", "location": "..."}],
  "data_structures": [{"name": "...", "type": "01-level|77-level|file", "fields": [], "usage": "..."}],
  "business_logic": [{"section": "...", "purpose": "...", "complexity": "low|medium|high"}],
  "io_operations": [{"type": "file|database|screen", "operation": "...", "target": "..."}],
  "quality_metrics": {"complexity": "...", "maintainability": "...", "testability": "...",
                      "modernization_priority": "..."}
}"""

ANALYSIS_FOCUS = {
    "quick": "Provide a quick analysis focusing on program structure and main dependencies.",
    "dependencies": "Focus on dependencies, calls, and relationships with other programs.",
    "data": "Focus on data structures, file layouts, and data flow.",
    "full": (
        "Provide a comprehensive analysis: structure, dependencies, data, business logic, "
        "and modernization opportunities."
    ),
}


def normalize_analysis(raw: dict[str, Any] | None, code: str) -> dict[str, Any]:
    """Fill in every expected section so downstream stages can rely on them."""
    raw = raw or {}
    info = dict(raw.get("program_info") or {})
    info.setdefault("name", FALLBACK_PROGRAM_NAME)
    info.setdefault("type", "BATCH")
    info.setdefault("language", "COBOL")
    info.setdefault("line_count", len(code.splitlines()))
    return {
        "program_info": info,
        "dependencies": list(raw.get("dependencies") or []),
        "data_structures": list(raw.get("data_structures") or []),
        "business_logic": list(raw.get("business_logic") or []),
        "io_operations": list(raw.get("io_operations") or []),
        "quality_metrics": dict(raw.get("quality_metrics") or {}),
        "parsed": bool(raw),
    }


class AnalyzeStage(BaseStage):
    """Turns source code into a structured analysis and registers it in memory.

    Input fields: ``code`` (required), ``file_name``, ``analysis_type``
    (quick | dependencies | data | full), ``chunks``.
    """

    name = ANALYZE
    system_prompt = SYSTEM_PROMPT
    required_fields = ("code",)
    temperature = 0.3

    async def process(self, stage_input: dict[str, Any], context: StageContext) -> dict[str, Any]:
        code: str = stage_input["code"]
        file_name = stage_input.get("file_name", "unknown")
        analysis_type = stage_input.get("analysis_type", "full")
        chunks = stage_input.get("chunks") or []

        text = await self.generate(
            self._build_user_prompt(code, file_name, analysis_type, len(chunks)), context
        )
        analysis = normalize_analysis(try_parse_object(text), code)

        if not analysis["dependencies"]:
            sources = [c.get("content", "") for c in chunks] or [code]
            deps: dict[str, dict[str, str]] = {}
            structs: dict[str, dict[str, Any]] = {}
            for source in sources:
                for dep in extract_dependencies(source):
                    deps.setdefault(dep["name"], dep)
                for struct in extract_data_structures(source):
                    structs.setdefault(struct["name"], struct)
            if deps:
                logger.info("Recovered %d dependencies by source scan", len(deps))
                analysis["dependencies"] = list(deps.values())
            if structs and not analysis["data_structures"]:
                analysis["data_structures"] = list(structs.values())

        await self._register(analysis, code)
        return analysis

    @staticmethod
    def _build_user_prompt(code: str, file_name: str, analysis_type: str, chunk_count: int) -> str:
        lines = [f'Analyze the following COBOL code from file "{file_name}":', ""]
        if chunk_count > 1:
            lines.append(
                f"Note: the file is large and has been split into {chunk_count} chunks. "
                "This is the first chunk."
            )
        lines.extend(["```cobol", code[:MAX_SOURCE_CHARS], "```", ""])
        lines.append(ANALYSIS_FOCUS.get(analysis_type, ANALYSIS_FOCUS["full"]))
        return "\n".join(lines)

    def score(self, data: dict[str, Any], stage_input: dict[str, Any]) -> float:
        if not data.get("parsed"):
            return 0.4
        confidence = 0.5
        if data["program_info"].get("name") != FALLBACK_PROGRAM_NAME:
            confidence += 0.1
        for section in ("dependencies", "data_structures", "business_logic", "quality_metrics"):
            if data.get(section):
                confidence += 0.1
        return confidence

    async def _register(self, analysis: dict[str, Any], code: str) -> None:
        """Store the program, its dependencies and data structures in memory.

        Memory is an enrichment; failures here are logged, not raised.
        """
        if self.memory is None or self.embedder is None:
            return

        program = analysis["program_info"]["name"]
        try:
            embedding = await self.embed(self.to_json(analysis))
            await self.memory.store_entity(
                program,
                "program",
                code,
                embedding,
                {
                    "language": "cobol",
                    "quality_metrics": analysis["quality_metrics"],
                    "last_analyzed": datetime.now(UTC).isoformat(),
                },
            )

            for dep in analysis["dependencies"]:
                name = dep.get("name")
                if not name or name == program:
                    continue
                if not self.memory.graph.has_node(name):
                    self.memory.graph.add_node(name, "program", {"placeholder": True})
                relation = RELATION_TYPES.get(str(dep.get("type", "")).upper(), "depends_on")
                await self.memory.store_relationship(
                    program, name, relation, {"location": dep.get("location")}
                )

            for struct in analysis["data_structures"]:
                struct_name = struct.get("name")
                if not struct_name:
                    continue
                struct_id = f"{program}_{struct_name}"
                struct_embedding = await self.embed(self.to_json(struct))
                await self.memory.store_entity(
                    struct_id,
                    "data_structure",
                    self.to_json(struct),
                    struct_embedding,
                    {"parent_program": program, "usage": struct.get("usage")},
                )
                await self.memory.store_relationship(
                    program, struct_id, "defines_data", {"usage": struct.get("usage")}
                )
        except Exception:
            logger.exception("Failed to register analysis of %s in memory", program)
