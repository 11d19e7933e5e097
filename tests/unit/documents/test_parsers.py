"""
Unit tests for format-specific document parsers.

Tests for:
- Markdown heading sections
- HTML headings and paragraphs
- ODT content.xml extraction
- DOCX (python-docx) and PDF (PyMuPDF) when installed
- Image transcription through a vision transcriber
- Extension dispatch and plain text fallback
"""

import zipfile
from unittest.mock import MagicMock, patch

import pytest

from documents import DocumentParser, Section, UnsupportedDocumentError
from documents.core.exceptions import DocumentParseError
from documents.parsing import parse_html, parse_markdown, parse_odt
from documents.parsing.image import VisionTranscriber, sections_from_transcript


class FakeTranscriber:
    """Records images and returns a fixed transcript."""

    def __init__(self, text="Hello world. Second line here."):
        self.text = text
        self.images = []

    def transcribe(self, image):
        self.images.append(image)
        return self.text


class TestMarkdown:
    def test_sections(self, sample_markdown):
        sections = DocumentParser().parse(sample_markdown)

        assert sections == [
            Section(
                heading="Geometry",
                content=[
                    "The Pythagorean theorem relates the sides of a right triangle.",
                    "It was known long before Pythagoras.",
                ],
            ),
            Section(heading="Algebra", content=["Variables stand for unknown values."]),
        ]

    def test_heading_without_body_is_dropped(self):
        sections = parse_markdown("# Empty\n# Full\nBody text.\n")
        assert [s.heading for s in sections] == ["Full"]

    def test_text_before_first_heading(self):
        sections = parse_markdown("Preamble here.\n## Part\nMore.")
        assert sections[0] == Section(heading="", content=["Preamble here."])
        assert sections[1].heading == "Part"

    def test_hash_without_space_is_not_heading(self):
        sections = parse_markdown("#hashtag stays. In the text.")
        assert sections == [Section(heading="", content=["#hashtag stays.", "In the text."])]


class TestHtml:
    def test_headings_and_paragraphs(self):
        markup = (
            "<html><head><style>p { color: red }</style></head><body>"
            "<h1 class='t'>Title &amp; more</h1>"
            "<p>First. <b>Second</b> one.</p>"
            "<div>ignored</div>"
            "<script>var p = '<p>no</p>';</script>"
            "<h2>Empty</h2>"
            "</body></html>"
        )

        sections = parse_html(markup)

        assert sections == [
            Section(heading="Title & more", content=["First.", "Second one."]),
            Section(heading="Empty", content=[]),
        ]

    def test_paragraphs_before_heading(self):
        assert parse_html("<p>Loose text.</p>") == [Section(heading="", content=["Loose text."])]

    def test_html_file_dispatch(self, tmp_path):
        path = tmp_path / "page.HTML"
        path.write_text("<h1>Head</h1><p>Body.</p>", encoding="utf-8")
        assert DocumentParser().parse(path) == [Section(heading="Head", content=["Body."])]


def write_odt(path, body):
    content = (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<office:document-content '
        'xmlns:office="urn:oasis:names:tc:opendocument:xmlns:office:1.0" '
        'xmlns:text="urn:oasis:names:tc:opendocument:xmlns:text:1.0">'
        f"<office:body><office:text>{body}</office:text></office:body>"
        "</office:document-content>"
    )
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("mimetype", "application/vnd.oasis.opendocument.text")
        archive.writestr("content.xml", content)
    return path


class TestOdt:
    def test_sections(self, tmp_path):
        path = write_odt(
            tmp_path / "notes.odt",
            '<text:h text:outline-level="1">Intro</text:h>'
            "<text:p>Hello<text:s text:c=\"2\"/>there. <text:span>Styled</text:span> text.</text:p>"
            '<text:h text:outline-level="1">Next</text:h>'
            "<text:p>Last one.</text:p>",
        )

        sections = parse_odt(path)

        assert sections == [
            Section(heading="Intro", content=["Hello there.", "Styled text."]),
            Section(heading="Next", content=["Last one."]),
        ]

    def test_not_a_zip(self, tmp_path):
        path = tmp_path / "broken.odt"
        path.write_bytes(b"plain bytes")

        with pytest.raises(DocumentParseError):
            parse_odt(path)

    def test_missing_content_xml(self, tmp_path):
        path = tmp_path / "empty.odt"
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("mimetype", "application/vnd.oasis.opendocument.text")

        with pytest.raises(DocumentParseError):
            DocumentParser().parse(path)


class TestDocx:
    def test_sections(self, tmp_path):
        docx = pytest.importorskip("docx")
        document = docx.Document()
        document.add_heading("Chapter One", level=1)
        document.add_paragraph("It begins. It continues.")
        document.add_paragraph("")
        document.add_heading("Chapter Two", level=2)
        document.add_paragraph("The end.")
        path = tmp_path / "book.docx"
        document.save(str(path))

        sections = DocumentParser().parse(path)

        assert sections == [
            Section(heading="Chapter One", content=["It begins.", "It continues."]),
            Section(heading="Chapter Two", content=["The end."]),
        ]

    def test_corrupt(self, tmp_path):
        pytest.importorskip("docx")
        path = tmp_path / "bad.docx"
        path.write_bytes(b"not a document")

        with pytest.raises(DocumentParseError):
            DocumentParser().parse(path)


class TestPdf:
    def test_text_layer(self, tmp_path):
        fitz = pytest.importorskip("fitz")
        path = tmp_path / "paper.pdf"
        document = fitz.open()
        page = document.new_page()
        page.insert_text((72, 72), "Results were significant. Methods follow.")
        document.save(str(path))
        document.close()
        transcriber = FakeTranscriber()

        sections = DocumentParser(transcriber=transcriber).parse(path)

        assert sections == [
            Section(heading="Page 1", content=["Results were significant.", "Methods follow."])
        ]
        assert transcriber.images == []

    def test_scanned_page_is_transcribed(self, tmp_path):
        fitz = pytest.importorskip("fitz")
        path = tmp_path / "scan.pdf"
        document = fitz.open()
        document.new_page()
        document.save(str(path))
        document.close()
        transcriber = FakeTranscriber("Scanned words. More words.")

        sections = DocumentParser(transcriber=transcriber).parse(path)

        assert sections == [Section(heading="Page 1", content=["Scanned words.", "More words."])]
        assert len(transcriber.images) == 1
        assert transcriber.images[0].startswith(b"\x89PNG")

    def test_scanned_page_without_transcriber(self, tmp_path):
        fitz = pytest.importorskip("fitz")
        path = tmp_path / "scan.pdf"
        document = fitz.open()
        document.new_page()
        document.save(str(path))
        document.close()

        assert DocumentParser().parse(path) == []

    def test_unreadable_page(self, tmp_path):
        path = tmp_path / "damaged.pdf"
        path.write_bytes(b"%PDF-1.7")
        page = MagicMock()
        page.get_text.side_effect = RuntimeError("cannot find object in xref")

        with patch("documents.parsing.pdf.fitz", fake_fitz([page])):
            with pytest.raises(DocumentParseError, match="damaged.pdf Page 1"):
                DocumentParser().parse(path)

    def test_unrenderable_page(self, tmp_path):
        path = tmp_path / "damaged.pdf"
        path.write_bytes(b"%PDF-1.7")
        page = MagicMock()
        page.get_text.return_value = ""
        page.get_pixmap.side_effect = RuntimeError("image data corrupt")
        transcriber = FakeTranscriber()

        with patch("documents.parsing.pdf.fitz", fake_fitz([page])):
            with pytest.raises(DocumentParseError, match="Failed to render"):
                DocumentParser(transcriber=transcriber).parse(path)

        assert transcriber.images == []


def fake_fitz(pages):
    document = MagicMock()
    document.__enter__.return_value = document
    document.__exit__.return_value = False
    document.__iter__.return_value = iter(pages)
    module = MagicMock()
    module.open.return_value = document
    return module


class TestImages:
    def test_transcript_under_extracted_text_heading(self, tmp_path):
        path = tmp_path / "photo.PNG"
        path.write_bytes(b"\x89PNG fake")
        transcriber = FakeTranscriber()

        sections = DocumentParser(transcriber=transcriber).parse(path)

        assert sections == [Section(heading="Extracted Text", content=["Hello world.", "Second line here."])]
        assert transcriber.images == [b"\x89PNG fake"]

    def test_no_transcriber(self, tmp_path):
        path = tmp_path / "photo.jpg"
        path.write_bytes(b"jpeg")

        with pytest.raises(UnsupportedDocumentError):
            DocumentParser().parse(path)

    def test_blank_transcript(self):
        assert sections_from_transcript("   ") == []

    def test_vision_transcriber_uses_client(self):
        class Client:
            def __init__(self):
                self.calls = []

            def generate(self, prompt, model=None, images=None):
                self.calls.append((prompt, model, images))
                return type("Response", (), {"content": "  text  "})()

        client = Client()
        transcriber = VisionTranscriber(client, model="vision-model")

        assert transcriber.transcribe(b"img") == "text"
        assert client.calls[0][1:] == ("vision-model", [b"img"])


class TestTextFallback:
    def test_unknown_extension(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("name,value\nalpha,1\n", encoding="utf-8")

        assert DocumentParser().parse(path) == [Section(heading="", content=["name,value alpha,1"])]

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_bytes(b"")

        assert DocumentParser().parse(path) == []

    def test_window_size_applies(self, tmp_path):
        path = tmp_path / "long.log"
        path.write_text("x" * 25, encoding="utf-8")

        sections = DocumentParser(window_size=10).parse(path)

        assert sections[0].content == ["x" * 10, "x" * 10, "x" * 5]
