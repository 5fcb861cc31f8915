"""Coerce free-form model output into structured data.

Models often wrap JSON in markdown code blocks like ```json ... ```, add
commentary around it, or emit invalid escape sequences.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED = re.compile(r"```(\w+)?[ \t]*\n(.*?)\n?```", re.DOTALL)
_CALL = re.compile(r"CALL\s+['\"]([^'\"]+)['\"]", re.IGNORECASE)
_COPY = re.compile(r"COPY\s+([\w-]+)", re.IGNORECASE)
_LEVEL_01 = re.compile(r"^\s*01\s+([\w-]+)", re.IGNORECASE | re.MULTILINE)

_WRAPPED = re.compile(r"\A```[\w-]*[ \t]*\n?(.*?)\n?[ \t]*```\Z", re.DOTALL)
_ESCAPE = re.compile(r"\\(.)", re.DOTALL)
_VALID_ESCAPES = frozenset("ntrbf\\\"/u")


def strip_markdown_code_block(content: str) -> str:
    """Unwrap a response that is entirely one fenced block.

    Examples:
        >>> strip_markdown_code_block('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
    """
    content = content.strip()
    match = _WRAPPED.match(content)
    return match.group(1) if match else content


def _repair_escape(match: re.Match[str]) -> str:
    char = match.group(1)
    if char == "'":
        return "'"
    if char not in _VALID_ESCAPES and char.isalpha():
        return "\\\\" + char
    return match.group(0)


def fix_json_escapes(text: str) -> str:
    r"""Drop ``\'`` and double the backslash of unknown letter escapes like ``\d``."""
    return _ESCAPE.sub(_repair_escape, text)


def parse_llm_json(response: str) -> Any:
    """Parse JSON from a model response.

    Tries, in order: the stripped response, the same with escapes repaired,
    the first ```json block, and the outermost ``{...}`` / ``[...]`` span.

    Raises:
        json.JSONDecodeError: Nothing parseable was found.
    """
    if not response or not response.strip():
        raise json.JSONDecodeError("Empty response", response or "", 0)

    clean = strip_markdown_code_block(response)
    candidates = [clean, fix_json_escapes(clean)]

    for lang, body in _FENCED.findall(response):
        if lang.lower() in ("", "json"):
            candidates.extend([body, fix_json_escapes(body)])

    span = re.search(r"(\{.*\}|\[.*\])", clean, re.DOTALL)
    if span:
        candidates.extend([span.group(1), fix_json_escapes(span.group(1))])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    return json.loads(clean)


def try_parse_object(response: str) -> dict[str, Any] | None:
    """``parse_llm_json`` restricted to objects; None when nothing parses."""
    try:
        parsed = parse_llm_json(response)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def extract_code_blocks(response: str) -> list[tuple[str, str]]:
    """All fenced blocks as ``(language, body)``; language may be empty."""
    return [(lang.lower(), body) for lang, body in _FENCED.findall(response)]


def extract_dependencies(source: str) -> list[dict[str, str]]:
    """Regex scan for ``CALL 'X'`` and ``COPY X`` statements."""
    deps: dict[str, dict[str, str]] = {}
    for name in _CALL.findall(source):
        deps.setdefault(name, {"name": name, "type": "CALL", "location": "extracted"})
    for name in _COPY.findall(source):
        deps.setdefault(name, {"name": name, "type": "COPY", "location": "extracted"})
    return list(deps.values())


def extract_data_structures(source: str) -> list[dict[str, Any]]:
    """Regex scan for 01-level record definitions."""
    seen: dict[str, dict[str, Any]] = {}
    for name in _LEVEL_01.findall(source):
        seen.setdefault(name, {"name": name, "type": "01-level", "fields": [], "usage": "unknown"})
    return list(seen.values())
