"""Text completion through the Claude Messages API."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import requests

from domain.entities import ContextMode
from domain.errors import UpstreamFailure
from domain.interfaces import TextCompleter

logger = logging.getLogger(__name__)

_SYSTEM_PROMPTS: dict[str, str] = {
    "augment": (
        "You are a helpful browsing assistant. The user's knowledge base may contain "
        "relevant notes; use them alongside your general knowledge."
    ),
    "priority": (
        "You are a helpful browsing assistant. Prefer the user's knowledge base excerpts "
        "over general knowledge and cite the document titles you rely on."
    ),
    "only": (
        "You are a helpful browsing assistant. Answer strictly from the supplied knowledge "
        "base excerpts. If they do not contain the answer, say that you do not know."
    ),
}


@dataclass(slots=True)
class ClaudeCompleterConfig:
    model: str = "claude-3-5-sonnet-latest"
    max_tokens: int = 1024
    temperature: float = 0.7
    api_key: str | None = None
    api_url: str = "https://api.anthropic.com/v1/messages"
    api_version: str = "2023-06-01"
    timeout: float = 60.0


class ClaudeCompleter(TextCompleter):
    """Send the prompt and its knowledge base context to Claude."""

    def __init__(self, config: ClaudeCompleterConfig | None = None, session: requests.Session | None = None) -> None:
        self._config = config or ClaudeCompleterConfig()
        self._session = session or requests.Session()

    def complete(self, prompt: str, context: str, mode: ContextMode) -> str:
        api_key = self._config.api_key or os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise UpstreamFailure("Missing Anthropic API key.")
        content = f"{context}\n\n{prompt}" if context else prompt
        try:
            response = self._session.post(
                self._config.api_url,
                headers={
                    "x-api-key": api_key,
                    "anthropic-version": self._config.api_version,
                    "content-type": "application/json",
                },
                json={
                    "model": self._config.model,
                    "max_tokens": self._config.max_tokens,
                    "temperature": self._config.temperature,
                    "system": _SYSTEM_PROMPTS.get(mode, _SYSTEM_PROMPTS["augment"]),
                    "messages": [{"role": "user", "content": content}],
                },
                timeout=self._config.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.error("Claude completion failed: %s", exc)
            raise UpstreamFailure(f"Claude completion failed: {exc}") from exc

        parts = [block.get("text", "") for block in payload.get("content", []) if block.get("type") == "text"]
        return "".join(parts)


__all__ = ["ClaudeCompleter", "ClaudeCompleterConfig"]
