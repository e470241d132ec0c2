"""Text extractor that treats the payload as plain UTF-8 text."""
from __future__ import annotations

from domain.entities import ParsedDocument, count_words
from domain.interfaces import TextExtractor


def decode_source(source: bytes | str) -> str:
    if isinstance(source, bytes):
        return source.decode("utf-8", errors="ignore")
    return source


class PlainTextExtractor(TextExtractor):
    """Simple extractor for already-clean text blobs."""

    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        content = decode_source(source)
        return ParsedDocument(
            title=file_name,
            content=content,
            metadata={"encoding": "utf-8", "size": len(source)},
            word_count=count_words(content),
        )


__all__ = ["PlainTextExtractor", "decode_source"]
