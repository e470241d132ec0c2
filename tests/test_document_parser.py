import io
import json
import unittest

import fitz
from docx import Document as DocxDocument

from domain.errors import UnsupportedFormatError, UpstreamFailure, ValidationError
from infrastructure.text_extraction.document_parser import DocumentParser, FileType

_HTML = """
<html>
  <head>
    <title>Fox Weekly</title>
    <meta name="description" content="News about foxes">
    <meta name="author" content="R. Fox">
    <script>var tracking = "ignore me";</script>
    <style>body { color: red; }</style>
  </head>
  <body>
    <nav><a href="/home">Home</a></nav>
    <main>
      <h1>The quick brown fox</h1>
      <p>Foxes can jump over lazy dogs.</p>
      <a href="https://example.com/more">Read more</a>
      <a href="#top">Top</a>
      <img src="fox.png">
    </main>
  </body>
</html>
"""


class TestDocumentParser(unittest.TestCase):
    def setUp(self) -> None:
        self.parser = DocumentParser()

    def test_supported_types(self) -> None:
        self.assertEqual(
            sorted(self.parser.supported_types()),
            ["docx", "htm", "html", "json", "md", "pdf", "txt"],
        )
        self.assertTrue(self.parser.is_supported("PDF"))
        self.assertTrue(self.parser.is_supported(".md"))
        self.assertFalse(self.parser.is_supported("exe"))

    def test_unsupported_type_raises(self) -> None:
        with self.assertRaises(UnsupportedFormatError):
            self.parser.parse(b"MZ", "exe")
        with self.assertRaises(ValidationError):
            FileType.parse("pptx")

    def test_plain_text(self) -> None:
        parsed = self.parser.parse("Hello plain world".encode("utf-8"), "txt", "notes.txt")

        self.assertEqual(parsed.title, "notes.txt")
        self.assertEqual(parsed.content, "Hello plain world")
        self.assertEqual(parsed.word_count, 3)
        self.assertEqual(parsed.metadata["fileType"], "txt")
        self.assertEqual(parsed.metadata["fileName"], "notes.txt")

    def test_markdown_title_and_headings(self) -> None:
        source = "Intro line\n\n# Field Guide\n\n## Foxes\n\n```python\nprint('x')\n```\n"

        parsed = self.parser.parse(source, FileType.MD, "guide.md")

        self.assertEqual(parsed.title, "Field Guide")
        self.assertTrue(parsed.metadata["hasCode"])
        self.assertEqual(parsed.metadata["headings"][1], {"level": 2, "text": "Foxes"})

    def test_json_is_pretty_printed(self) -> None:
        parsed = self.parser.parse(json.dumps({"b": 1, "a": [1, 2]}), "json", "data.json")

        self.assertIn('"a": [\n', parsed.content)
        self.assertEqual(parsed.metadata["keys"], ["a", "b"])
        self.assertEqual(parsed.metadata["jsonType"], "dict")

    def test_extractor_failure_is_upstream_failure(self) -> None:
        with self.assertRaises(UpstreamFailure):
            self.parser.parse(b"{not json", "json", "broken.json")

    def test_html_prefers_main_content_and_drops_scripts(self) -> None:
        parsed = self.parser.parse(_HTML, "html", "page.html")

        self.assertEqual(parsed.title, "Fox Weekly")
        self.assertIn("Foxes can jump over lazy dogs.", parsed.content)
        self.assertNotIn("tracking", parsed.content)
        self.assertNotIn("Home", parsed.content)
        self.assertTrue(parsed.metadata["hasImages"])
        self.assertEqual(parsed.metadata["links"], [{"text": "Home", "href": "/home"}, {"text": "Read more", "href": "https://example.com/more"}])

    def test_web_page_metadata(self) -> None:
        parsed = self.parser.parse_web_page("https://example.com/fox", _HTML)

        self.assertEqual(parsed.title, "Fox Weekly")
        self.assertEqual(parsed.metadata["url"], "https://example.com/fox")
        self.assertEqual(parsed.metadata["description"], "News about foxes")
        self.assertEqual(parsed.metadata["author"], "R. Fox")

    def test_web_page_without_title(self) -> None:
        parsed = self.parser.parse_web_page("https://example.com", "<p>bare text</p>")

        self.assertEqual(parsed.title, "Untitled Page")
        self.assertEqual(parsed.content, "bare text")

    def test_docx(self) -> None:
        document = DocxDocument()
        document.core_properties.title = "Quarterly plan"
        document.add_paragraph("First paragraph.")
        table = document.add_table(rows=1, cols=1)
        table.cell(0, 0).text = "Cell text"
        buffer = io.BytesIO()
        document.save(buffer)

        parsed = self.parser.parse(buffer.getvalue(), "docx", "plan.docx")

        self.assertEqual(parsed.title, "Quarterly plan")
        self.assertIn("First paragraph.", parsed.content)
        self.assertIn("Cell text", parsed.content)
        self.assertEqual(parsed.metadata["tables"], 1)

    def test_pdf(self) -> None:
        pdf = fitz.open()
        page = pdf.new_page()
        page.insert_text((72, 72), "Hello PDF world")
        data = pdf.tobytes()
        pdf.close()

        parsed = self.parser.parse(data, "pdf", "hello.pdf")

        self.assertIn("Hello PDF world", parsed.content)
        self.assertEqual(parsed.metadata["pages"], 1)
        self.assertEqual(parsed.title, "hello.pdf")


if __name__ == "__main__":
    unittest.main()
