"""Chunk splitter that slides a window and prefers sentence or word boundaries."""
from __future__ import annotations

from domain.entities import TextSpan
from domain.errors import ValidationError
from domain.interfaces import ChunkSplitter

# Boundaries are only searched for in the tail of each window.
BOUNDARY_WINDOW_FRACTION = 0.8


class BoundaryWindowSplitter(ChunkSplitter):
    """Split text into overlapping windows of at most ``chunk_size`` characters.

    Each window is cut at the last ``.`` found in its final 20%, otherwise at the
    last space in that range, otherwise at the raw window edge. The next window
    starts ``overlap`` characters before the cut.
    """

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValidationError("chunk_size must be positive.")
        if overlap < 0 or overlap >= chunk_size:
            raise ValidationError("overlap must be in [0, chunk_size).")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> list[TextSpan]:
        length = len(text)
        if length <= self.chunk_size:
            span = _trimmed_span(text, 0, length)
            return [span] if span else []

        spans: list[TextSpan] = []
        start = 0
        while start < length:
            end = start + self.chunk_size
            cut = length if end >= length else self._find_cut(text, start, end)
            span = _trimmed_span(text, start, cut)
            if span:
                spans.append(span)
            if cut >= length:
                break
            start = max(cut - self.overlap, start + 1)
        return spans

    def _find_cut(self, text: str, start: int, end: int) -> int:
        floor = start + int(self.chunk_size * BOUNDARY_WINDOW_FRACTION)
        sentence_end = text.rfind(".", floor + 1, end)
        if sentence_end != -1:
            return sentence_end + 1
        word_end = text.rfind(" ", floor + 1, end)
        if word_end != -1:
            return word_end
        return end


def _trimmed_span(text: str, start: int, end: int) -> TextSpan | None:
    raw = text[start:end]
    stripped = raw.strip()
    if not stripped:
        return None
    offset = start + len(raw) - len(raw.lstrip())
    return TextSpan(text=stripped, start=offset, end=offset + len(stripped))


__all__ = ["BoundaryWindowSplitter"]
