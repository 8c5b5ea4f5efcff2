"""Unit tests for the service helpers that need no HTTP round-trip."""

from datetime import datetime

import pytest

from config import Config
from services.extraction import TextExtractor, get_document_type, join_element_texts
from services.storage import LocalStorage, StorageError, StorageService, build_object_key, sanitize_filename
from services.summarizer import DOCUMENT_CHAR_LIMIT, WEB_CHAR_LIMIT, prepare_content
from services.synthesis import (
    SynthesisError, build_trends, coerce_confidence, confidence_level,
    normalize_parameter_type, parse_analysis, parse_event_date,
)
from services.web_scraper import parse_html, validate_url


# ── extraction ────────────────────────────────────────────────────────────────

@pytest.mark.parametrize("mime,expected", [
    ("application/pdf", "pdf"),
    ("audio/wav", "audio"),
    ("application/vnd.openxmlformats-officedocument.wordprocessingml.document", "docx"),
    ("application/vnd.openxmlformats-officedocument.presentationml.presentation", "pptx"),
    ("text/plain", "txt"),
    ("application/octet-stream", "document"),
])
def test_get_document_type(mime, expected):
    assert get_document_type(mime) == expected


class _NoLLM:
    async def transcribe(self, data, filename, content_type):
        raise RuntimeError("whisper down")


async def test_extract_plain_text():
    result = await TextExtractor(_NoLLM()).extract("héllo".encode(), "a.txt", "text/plain")
    assert result.text == "héllo"


async def test_extract_audio_failure_becomes_placeholder():
    result = await TextExtractor(_NoLLM()).extract(b"ID3", "a.mp3", "audio/mpeg")
    assert result.text == "[Text extraction failed: whisper down]"


async def test_extract_unsupported_type():
    result = await TextExtractor(_NoLLM()).extract(b"\x89PNG", "a.png", "image/png")
    assert result.text.startswith("[image/png file - content not extracted.")


async def test_extract_partition_failure_becomes_placeholder(monkeypatch):
    monkeypatch.setattr(Config, "UNSTRUCTURED_API_KEY", None)
    mime = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    result = await TextExtractor(_NoLLM()).extract(b"PK", "deck.pptx", mime)
    assert result.text == "[Document uploaded but text extraction failed: UNSTRUCTURED_API_KEY is not set]"


def test_partition_uses_unstructured_response(monkeypatch):
    class _Resp:
        def raise_for_status(self):
            pass

        def json(self):
            return [
                {"type": "Title", "text": "Grid Report"},
                {"type": "NarrativeText", "text": "  Demand rose.  "},
                {"type": "NarrativeText", "text": ""},
            ]

    captured = {}

    def _post(url, **kwargs):
        captured.update(kwargs)
        return _Resp()

    import requests

    monkeypatch.setattr(Config, "UNSTRUCTURED_API_KEY", "key-123")
    monkeypatch.setattr(requests, "post", _post)

    text, meta = TextExtractor(_NoLLM()).partition(b"%PDF", "r.pdf", "application/pdf")
    assert text == "Grid Report\n\nDemand rose."
    assert meta == {
        "unstructuredProcessed": True,
        "elementCount": 3,
        "titles": ["Grid Report"],
        "processingStrategy": "default",
    }
    assert captured["headers"]["unstructured-api-key"] == "key-123"


def test_partition_docx_locally_without_key(monkeypatch):
    import io

    from docx import Document

    monkeypatch.setattr(Config, "UNSTRUCTURED_API_KEY", None)
    doc = Document()
    doc.add_heading("Grid Report", level=0)
    doc.add_paragraph("Demand rose in every region.")
    doc.add_paragraph("   ")
    buf = io.BytesIO()
    doc.save(buf)

    mime = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
    text, meta = TextExtractor(_NoLLM()).partition(buf.getvalue(), "r.docx", mime)
    assert text == "Grid Report\n\nDemand rose in every region."
    assert meta == {"elementCount": 2, "titles": ["Grid Report"], "processingStrategy": "local"}


def test_partition_pdf_locally_without_key(monkeypatch):
    import pdfplumber

    class _Page:
        def __init__(self, text):
            self._text = text

        def extract_text(self):
            return self._text

    class _Pdf:
        pages = [_Page(" First page. "), _Page(None), _Page("Second page.")]

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

    opened = []

    def _open(stream):
        opened.append(stream.read())
        return _Pdf()

    monkeypatch.setattr(Config, "UNSTRUCTURED_API_KEY", None)
    monkeypatch.setattr(pdfplumber, "open", _open)

    text, meta = TextExtractor(_NoLLM()).partition(b"%PDF-1.4", "r.pdf", "application/pdf")
    assert opened == [b"%PDF-1.4"]
    assert text == "First page.\n\nSecond page."
    assert meta == {"elementCount": 3, "titles": [], "processingStrategy": "local"}


def test_join_element_texts_skips_blank():
    assert join_element_texts([{"text": "a"}, {"text": None}, {"text": " b "}]) == "a\n\nb"


# ── storage ───────────────────────────────────────────────────────────────────

def test_object_key_is_sanitized():
    assert sanitize_filename("my report (final).pdf") == "my_report__final_.pdf"
    assert build_object_key(7, "p1", "a b.txt", timestamp_ms=1700000000000) == "7/p1/1700000000000_a_b.txt"


def test_local_storage_refuses_overwrite(tmp_path):
    backend = LocalStorage(str(tmp_path), "documents", "http://files")
    assert backend.ensure_bucket() is False
    assert backend.ensure_bucket() is True

    backend.put("1/p/x.txt", b"one", "text/plain")
    with pytest.raises(StorageError, match="already exists"):
        backend.put("1/p/x.txt", b"two", "text/plain")
    assert backend.public_url("1/p/x.txt") == "http://files/static/uploads/documents/1/p/x.txt"


def test_storage_service_gates_uploads(tmp_path):
    service = StorageService(LocalStorage(str(tmp_path), "documents", "http://files"))
    with pytest.raises(StorageError):
        service.upload("k.png", b"x", "image/png")

    service.max_bytes = 2
    with pytest.raises(StorageError):
        service.upload("k.txt", b"too big", "text/plain")


# ── web scraper ───────────────────────────────────────────────────────────────

PAGE = """
<html>
  <head>
    <title> Heat Pumps in 2024 </title>
    <meta name="description" content="Adoption figures">
    <meta name="author" content="J. Ortiz">
    <meta property="article:published_time" content="2024-02-03">
  </head>
  <body>
    <nav>Home | About</nav>
    <article>
      <h1>Heat pumps</h1>
      <p>Sales grew   strongly.</p>
      <script>track()</script>
    </article>
    <footer>Copyright</footer>
  </body>
</html>
"""


def test_parse_html_extracts_article():
    page = parse_html(PAGE, "https://example.org/heat")
    assert page.title == "Heat Pumps in 2024"
    assert page.text == "Heat pumps Sales grew strongly."
    assert page.metadata["author"] == "J. Ortiz"
    assert page.metadata["publishedTime"] == "2024-02-03"
    assert page.metadata["wordCount"] == 5
    assert page.metadata["originalUrl"] == "https://example.org/heat"


def test_parse_html_title_fallbacks():
    assert parse_html("<body><h1>Only Heading</h1></body>", "https://x.org/a").title == "Only Heading"
    assert parse_html("<body><p>text</p></body>", "https://x.org/docs/page-name").title == "page-name"
    assert parse_html("<body><p>text</p></body>", "https://x.org/").title == "Untitled Document"


def test_validate_url():
    assert validate_url("https://example.org/path?q=1")
    assert not validate_url("example.org")
    assert not validate_url("")


# ── summarizer ────────────────────────────────────────────────────────────────

def test_prepare_content_limits():
    long = "x" * 20000
    assert len(prepare_content(long, "document")) == DOCUMENT_CHAR_LIMIT
    assert prepare_content(long, "web") == "x" * WEB_CHAR_LIMIT + "..."
    assert prepare_content("short", "web") == "short"


# ── synthesis helpers ─────────────────────────────────────────────────────────

def test_parse_analysis_defaults_missing_sections():
    assert parse_analysis('{"suggestedParameters": null}') == {
        "suggestedParameters": [],
        "extractedValues": {},
    }
    with pytest.raises(SynthesisError):
        parse_analysis("[1, 2]")


def test_confidence_helpers():
    assert coerce_confidence("0.4") == 0.4
    assert coerce_confidence(-3) == 0.0
    assert coerce_confidence("high") is None
    assert confidence_level(0.8) == "high"
    assert confidence_level(0.6) == "medium"
    assert confidence_level(0.59) == "low"
    assert confidence_level(None) is None
    assert normalize_parameter_type(" Date ") == "date"
    assert normalize_parameter_type("boolean") == "text"


def test_parse_event_date():
    assert parse_event_date("2018") == datetime(2018, 1, 1)
    assert parse_event_date("2020-06-15T10:00:00+02:00") == datetime(2020, 6, 15, 8, 0)
    assert parse_event_date("sometime soon") is None


def test_build_trends_groups_by_year():
    events = [
        {"year": 2020, "values": {"Region": "EU"}},
        {"year": 2019, "values": {"Region": "US"}},
        {"year": 2020, "values": {"Region": "EU"}},
        {"year": 2021, "values": {}},
    ]
    assert build_trends(events, "Region") == [
        {"year": 2019, "values": ["US"], "uniqueValues": ["US"], "count": 1},
        {"year": 2020, "values": ["EU", "EU"], "uniqueValues": ["EU"], "count": 2},
    ]
