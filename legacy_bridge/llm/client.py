"""Async Claude client used as the content-generation collaborator."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import anthropic

from legacy_bridge.config import settings
from legacy_bridge.errors import ErrorKind, GenerationError

logger = logging.getLogger(__name__)

_client: anthropic.AsyncAnthropic | None = None


class Generator(Protocol):
    """Turns a prompt into free text."""

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str: ...


def _get_client() -> anthropic.AsyncAnthropic:
    """Lazily initialize the Anthropic client."""
    global _client  # noqa: PLW0603
    if _client is None:
        _client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key)
    return _client


async def complete_text(
    messages: list[dict[str, Any]],
    *,
    system: str | None = None,
    model: str | None = None,
    temperature: float = 0.7,
    max_tokens: int | None = None,
) -> str:
    """Single-shot Claude call — no tools, no streaming."""
    client = _get_client()
    kwargs: dict[str, Any] = {
        "model": model or settings.claude_model,
        "max_tokens": max_tokens or settings.generation_max_tokens,
        "temperature": temperature,
        "messages": messages,
    }
    if system:
        kwargs["system"] = system
    response = await client.messages.create(**kwargs)
    return "".join(block.text for block in response.content if block.type == "text")


class AnthropicGenerator:
    """``Generator`` backed by ``complete_text``.

    Provider failures are raised as ``GenerationError`` tagged with an
    ``ErrorKind`` so the orchestrator can pick a healing strategy.
    """

    def __init__(self, model: str | None = None) -> None:
        self.model = model or settings.claude_model

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str = "",
        temperature: float = 0.7,
        max_tokens: int | None = None,
    ) -> str:
        logger.info(
            "Generating content (prompt: %d chars, temperature=%.2f)", len(prompt), temperature
        )
        try:
            text = await complete_text(
                [{"role": "user", "content": prompt}],
                system=system_prompt or None,
                model=self.model,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except (anthropic.RateLimitError, anthropic.APITimeoutError) as exc:
            msg = f"Provider timeout or rate limit: {exc}"
            raise GenerationError(msg, ErrorKind.TRANSIENT) from exc
        except anthropic.APIConnectionError as exc:
            msg = f"Provider connection failed: {exc}"
            raise GenerationError(msg, ErrorKind.TRANSIENT) from exc
        except anthropic.APIError as exc:
            raise GenerationError(f"Provider error: {exc}") from exc

        if not text.strip():
            msg = "Empty response from provider (format)"
            raise GenerationError(msg, ErrorKind.FORMAT)
        logger.info("Generated %d chars", len(text))
        return text
