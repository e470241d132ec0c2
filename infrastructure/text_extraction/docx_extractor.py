"""DOCX extractor on top of python-docx."""
from __future__ import annotations

from io import BytesIO
from pathlib import Path

from docx import Document as DocxDocument

from domain.entities import ParsedDocument, count_words
from domain.interfaces import TextExtractor


class DocxExtractor(TextExtractor):
    """Extracts paragraph and table text from DOCX sources."""

    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        if isinstance(source, bytes):
            doc = DocxDocument(BytesIO(source))
        else:
            doc = DocxDocument(Path(source))
        content = _collect_docx_text(doc)
        title = doc.core_properties.title or file_name
        return ParsedDocument(
            title=title,
            content=content,
            metadata={
                "format": "docx",
                "paragraphs": len(doc.paragraphs),
                "tables": len(doc.tables),
            },
            word_count=count_words(content),
        )


def _collect_docx_text(doc: DocxDocument) -> str:
    parts: list[str] = []
    parts.extend(paragraph.text for paragraph in doc.paragraphs if paragraph.text)
    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                if cell.text:
                    parts.append(cell.text)
    return "\n".join(parts).strip()


__all__ = ["DocxExtractor"]
