"""Format search results into a context block for a text-completion call."""
from __future__ import annotations

from typing import Sequence

from domain.entities import ContextMode, SearchResult
from domain.errors import ValidationError

CONTEXT_MODES: tuple[str, ...] = ("augment", "priority", "only")

_HEADERS: dict[str, str] = {
    "augment": "Supplementary notes from the user's knowledge base. Use them where they are relevant.",
    "priority": (
        "Primary source material from the user's knowledge base. "
        "Prefer it over general knowledge and say which documents you used."
    ),
    "only": (
        "Answer using ONLY the knowledge base excerpts below. Do not use outside knowledge. "
        "If the excerpts do not contain the answer, say so."
    ),
}


def check_mode(mode: str) -> ContextMode:
    if mode not in CONTEXT_MODES:
        raise ValidationError(f"Unknown context mode '{mode}', expected one of {', '.join(CONTEXT_MODES)}")
    return mode  # type: ignore[return-value]


def build_context(results: Sequence[SearchResult], mode: str = "augment") -> str:
    """Return the text block injected ahead of the user's prompt.

    ``only`` still produces its instruction when nothing was retrieved, so the
    downstream model knows it has no material to answer from.
    """
    checked = check_mode(mode)
    if not results:
        if checked == "only":
            return _HEADERS["only"] + "\n\n(no matching excerpts)"
        return ""

    sections = [_HEADERS[checked]]
    for position, result in enumerate(results, start=1):
        excerpts = "\n...\n".join(chunk.content for chunk in result.chunks)
        sections.append(
            f"[{position}] {result.title or 'Untitled Document'} "
            f"(source: {result.source or 'unknown'}, relevance: {result.max_score:.2f})\n{excerpts}"
        )
    return "\n\n".join(sections)


__all__ = ["CONTEXT_MODES", "build_context", "check_mode"]
