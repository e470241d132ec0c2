"""Markdown extractor that keeps the source text and records its headings."""
from __future__ import annotations

import re

from domain.entities import ParsedDocument, count_words
from domain.interfaces import TextExtractor
from infrastructure.text_extraction.plain_text_extractor import decode_source

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)


class MarkdownExtractor(TextExtractor):
    """Title comes from the first level-one heading when there is one."""

    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        content = decode_source(source)
        headings = [
            {"level": len(match.group(1)), "text": match.group(2).strip()}
            for match in _HEADING_RE.finditer(content)
        ]
        title = next((heading["text"] for heading in headings if heading["level"] == 1), file_name)
        return ParsedDocument(
            title=title,
            content=content,
            metadata={
                "format": "markdown",
                "hasCode": "```" in content,
                "headings": headings,
            },
            word_count=count_words(content),
        )


__all__ = ["MarkdownExtractor"]
