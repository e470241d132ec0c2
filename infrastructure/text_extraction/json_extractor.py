"""JSON extractor that pretty-prints the payload for indexing."""
from __future__ import annotations

import json

from domain.entities import ParsedDocument, count_words
from domain.interfaces import TextExtractor
from infrastructure.text_extraction.plain_text_extractor import decode_source


class JsonExtractor(TextExtractor):
    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        data = json.loads(decode_source(source))
        formatted = json.dumps(data, indent=2, ensure_ascii=False)
        return ParsedDocument(
            title=file_name,
            content=formatted,
            metadata={
                "format": "json",
                "jsonType": "array" if isinstance(data, list) else type(data).__name__,
                "keys": sorted(data.keys()) if isinstance(data, dict) else [],
            },
            word_count=count_words(formatted),
        )


__all__ = ["JsonExtractor"]
