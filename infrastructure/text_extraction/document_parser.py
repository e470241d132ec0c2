"""Dispatch raw uploads to the extractor registered for their file type."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from domain.entities import ParsedDocument
from domain.errors import UnsupportedFormatError, UpstreamFailure
from domain.interfaces import TextExtractor
from infrastructure.text_extraction.docx_extractor import DocxExtractor
from infrastructure.text_extraction.html_extractor import HtmlExtractor
from infrastructure.text_extraction.json_extractor import JsonExtractor
from infrastructure.text_extraction.markdown_extractor import MarkdownExtractor
from infrastructure.text_extraction.pdf_extractor import PdfExtractor
from infrastructure.text_extraction.plain_text_extractor import PlainTextExtractor

logger = logging.getLogger(__name__)


class FileType(str, Enum):
    PDF = "pdf"
    TXT = "txt"
    MD = "md"
    HTML = "html"
    HTM = "htm"
    DOCX = "docx"
    JSON = "json"

    @classmethod
    def parse(cls, value: "str | FileType") -> "FileType":
        if isinstance(value, FileType):
            return value
        normalized = value.strip().lower().lstrip(".")
        try:
            return cls(normalized)
        except ValueError as exc:
            raise UnsupportedFormatError(f"Unsupported file type: {value}") from exc


_EXTRACTOR_FACTORIES: dict[FileType, Callable[[], TextExtractor]] = {
    FileType.PDF: PdfExtractor,
    FileType.TXT: PlainTextExtractor,
    FileType.MD: MarkdownExtractor,
    FileType.HTML: HtmlExtractor,
    FileType.HTM: HtmlExtractor,
    FileType.DOCX: DocxExtractor,
    FileType.JSON: JsonExtractor,
}


class DocumentParser:
    """Parses buffers by file type and web pages by URL + HTML."""

    def __init__(self) -> None:
        self._extractors = {file_type: factory() for file_type, factory in _EXTRACTOR_FACTORIES.items()}
        self._html = HtmlExtractor()

    def supported_types(self) -> list[str]:
        return [file_type.value for file_type in self._extractors]

    def is_supported(self, file_type: str) -> bool:
        try:
            FileType.parse(file_type)
        except UnsupportedFormatError:
            return False
        return True

    def parse(self, buffer: bytes | str, file_type: str | FileType, file_name: str = "unknown") -> ParsedDocument:
        kind = FileType.parse(file_type)
        extractor = self._extractors[kind]
        try:
            parsed = extractor.extract(buffer, file_name)
        except Exception as exc:
            logger.error("Failed to parse %s document %s: %s", kind.value, file_name, exc)
            raise UpstreamFailure(f"Failed to parse {kind.value.upper()}: {exc}") from exc
        parsed.metadata.setdefault("fileType", kind.value)
        parsed.metadata.setdefault("fileName", file_name)
        return parsed

    def parse_web_page(self, url: str, html: bytes | str) -> ParsedDocument:
        try:
            return self._html.extract_web_page(url, html)
        except Exception as exc:
            logger.error("Failed to parse web page %s: %s", url, exc)
            raise UpstreamFailure(f"Failed to parse web page: {exc}") from exc


__all__ = ["DocumentParser", "FileType"]
