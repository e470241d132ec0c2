"""PDF extractor on top of PyMuPDF."""
from __future__ import annotations

from pathlib import Path

import fitz  # pymupdf

from domain.entities import ParsedDocument, count_words
from domain.interfaces import TextExtractor


class PdfExtractor(TextExtractor):
    """Extracts page text and document info from PDF bytes or a path."""

    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        if isinstance(source, bytes):
            doc = fitz.open(stream=source, filetype="pdf")
        else:
            doc = fitz.open(Path(source))
        try:
            text = "\n".join(page.get_text() for page in doc).strip()
            info = {key: value for key, value in (doc.metadata or {}).items() if value}
            pages = doc.page_count
        finally:
            doc.close()
        return ParsedDocument(
            title=info.get("title") or file_name,
            content=text,
            metadata={"format": "pdf", "pages": pages, "info": info},
            word_count=count_words(text),
        )


__all__ = ["PdfExtractor"]
