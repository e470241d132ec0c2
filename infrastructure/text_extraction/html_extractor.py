"""HTML extractor that strips markup and keeps the main readable text."""
from __future__ import annotations

from html.parser import HTMLParser

from domain.entities import ParsedDocument, count_words
from domain.interfaces import TextExtractor
from infrastructure.text_extraction.plain_text_extractor import decode_source

_SKIPPED_TAGS = {"script", "style", "noscript", "template"}
_MAIN_TAGS = {"main", "article"}
_BLOCK_TAGS = {
    "address", "article", "blockquote", "br", "dd", "div", "dl", "dt", "footer",
    "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main", "nav", "ol",
    "p", "pre", "section", "table", "td", "th", "tr", "ul",
}


class _CollectingParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._skip_depth = 0
        self._main_depth = 0
        self._in_title = False
        self._in_h1 = False
        self._link_href: str | None = None
        self._link_text: list[str] = []
        self.title_parts: list[str] = []
        self.h1_parts: list[str] = []
        self.body_parts: list[str] = []
        self.main_parts: list[str] = []
        self.meta: dict[str, str] = {}
        self.links: list[dict[str, str]] = []
        self.image_count = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in _SKIPPED_TAGS:
            self._skip_depth += 1
            return
        attributes = {key: value or "" for key, value in attrs}
        if tag == "title":
            self._in_title = True
        elif tag == "h1" and not self.h1_parts:
            self._in_h1 = True
        elif tag == "meta":
            name = attributes.get("name", "").lower()
            if name in {"description", "author"}:
                self.meta[name] = attributes.get("content", "")
        elif tag == "img":
            self.image_count += 1
        elif tag == "a":
            href = attributes.get("href", "")
            if href and not href.startswith("#"):
                self._link_href = href
                self._link_text = []
        if tag in _MAIN_TAGS:
            self._main_depth += 1
        if tag in _BLOCK_TAGS:
            self._append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIPPED_TAGS:
            self._skip_depth = max(self._skip_depth - 1, 0)
            return
        if tag == "title":
            self._in_title = False
        elif tag == "h1":
            self._in_h1 = False
        elif tag == "a" and self._link_href is not None:
            self.links.append({"text": " ".join("".join(self._link_text).split()), "href": self._link_href})
            self._link_href = None
        if tag in _BLOCK_TAGS:
            self._append("\n")
        if tag in _MAIN_TAGS:
            self._main_depth = max(self._main_depth - 1, 0)

    def handle_data(self, data: str) -> None:
        if self._skip_depth:
            return
        if self._in_title:
            self.title_parts.append(data)
            return
        if self._in_h1:
            self.h1_parts.append(data)
        if self._link_href is not None:
            self._link_text.append(data)
        self._append(data)

    def _append(self, text: str) -> None:
        self.body_parts.append(text)
        if self._main_depth:
            self.main_parts.append(text)


def _normalise(parts: list[str]) -> str:
    lines = (" ".join(line.split()) for line in "".join(parts).splitlines())
    return "\n".join(line for line in lines if line)


def _parse(source: bytes | str) -> _CollectingParser:
    parser = _CollectingParser()
    parser.feed(decode_source(source))
    parser.close()
    return parser


class HtmlExtractor(TextExtractor):
    """HTML extractor built on Python's HTMLParser.

    Prefers the text inside ``<main>``/``<article>`` over the whole body and
    drops scripts and styles.
    """

    def extract(self, source: bytes | str, file_name: str = "unknown") -> ParsedDocument:
        parser = _parse(source)
        title = _normalise(parser.title_parts) or _normalise(parser.h1_parts) or file_name
        content = _normalise(parser.main_parts) or _normalise(parser.body_parts)
        return ParsedDocument(
            title=title,
            content=content,
            metadata={
                "format": "html",
                "hasImages": parser.image_count > 0,
                "links": parser.links,
            },
            word_count=count_words(content),
        )

    def extract_web_page(self, url: str, html: bytes | str) -> ParsedDocument:
        parser = _parse(html)
        title = _normalise(parser.title_parts) or _normalise(parser.h1_parts) or "Untitled Page"
        content = _normalise(parser.main_parts) or _normalise(parser.body_parts)
        return ParsedDocument(
            title=title,
            content=content,
            metadata={
                "format": "webpage",
                "url": url,
                "description": parser.meta.get("description", ""),
                "author": parser.meta.get("author", ""),
                "hasImages": parser.image_count > 0,
                "links": parser.links,
            },
            word_count=count_words(content),
        )


__all__ = ["HtmlExtractor"]
