"""
services/extraction.py — Text extraction for uploaded source files.

Plain text is decoded, audio is transcribed with Whisper, and office/PDF
documents are partitioned by Unstructured.io.  Without an Unstructured key,
PDF and DOCX fall back to local extraction (pdfplumber / python-docx).

Extraction never fails the upload: errors become a bracketed placeholder
text that is stored with the source instead.
"""

import asyncio
import io
from dataclasses import dataclass, field
from typing import List, Tuple

from config import Config
from logging_config import get_logger

logger = get_logger(__name__)

UNSUPPORTED_TEMPLATE = (
    "[{mime} file - content not extracted. "
    "Supported types: PDF, DOCX, PPTX, TXT, MP3, M4A, WAV]"
)


class ExtractionError(Exception):
    pass


@dataclass
class ExtractionResult:
    text: str = ""
    metadata: dict = field(default_factory=dict)


def get_document_type(mime_type: str) -> str:
    """Map a MIME type onto the data_sources.type column."""
    mime_type = mime_type or ""
    if mime_type == "application/pdf":
        return "pdf"
    if mime_type.startswith("audio/"):
        return "audio"
    if "word" in mime_type:
        return "docx"
    if "presentation" in mime_type:
        return "pptx"
    if mime_type == "text/plain":
        return "txt"
    return "document"


def is_partitionable(mime_type: str) -> bool:
    return (
        mime_type == "application/pdf"
        or "word" in mime_type
        or "presentation" in mime_type
        or "document" in mime_type
    )


class TextExtractor:
    def __init__(self, llm_service):
        self._llm = llm_service

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractionResult:
        mime_type = mime_type or ""
        result = ExtractionResult()
        try:
            if mime_type == "text/plain":
                result.text = data.decode("utf-8", errors="replace")
            elif mime_type.startswith("audio/"):
                result.text = await self._llm.transcribe(data, filename, mime_type)
                result.metadata["transcribed"] = True
            elif is_partitionable(mime_type):
                loop = asyncio.get_running_loop()
                try:
                    text, meta = await loop.run_in_executor(
                        None, self.partition, data, filename, mime_type
                    )
                    result.text = text
                    result.metadata.update(meta)
                except Exception as exc:
                    logger.error("extraction.partition.failed", filename=filename, error=str(exc))
                    result.text = f"[Document uploaded but text extraction failed: {exc}]"
            else:
                result.text = UNSUPPORTED_TEMPLATE.format(mime=mime_type)
        except Exception as exc:
            logger.error("extraction.failed", filename=filename, mime=mime_type, error=str(exc))
            result.text = f"[Text extraction failed: {exc}]"
        return result

    # ── Document partitioning ────────────────────────────────────────────────

    def partition(self, data: bytes, filename: str, mime_type: str) -> Tuple[str, dict]:
        """Sync: returns (text, metadata).  Raises on any failure."""
        if Config.UNSTRUCTURED_API_KEY:
            return self._partition_unstructured(data, filename, mime_type)
        if mime_type == "application/pdf":
            return self._extract_pdf(data)
        if "wordprocessingml" in mime_type:
            return self._extract_docx(data)
        raise ExtractionError("UNSTRUCTURED_API_KEY is not set")

    def _partition_unstructured(self, data: bytes, filename: str, mime_type: str) -> Tuple[str, dict]:
        import requests

        resp = requests.post(
            Config.UNSTRUCTURED_API_URL,
            headers={
                "accept": "application/json",
                "unstructured-api-key": Config.UNSTRUCTURED_API_KEY,
            },
            files={"files": (filename, data, mime_type)},
            data={"languages": Config.UNSTRUCTURED_LANGUAGES},
            timeout=Config.UNSTRUCTURED_TIMEOUT,
        )
        resp.raise_for_status()
        elements = resp.json()
        if not isinstance(elements, list):
            raise ExtractionError("Unstructured API returned unexpected response format")

        text = join_element_texts(elements)
        titles = [
            el.get("text")
            for el in elements
            if (el.get("type") or el.get("category")) == "Title"
        ]
        logger.info("extraction.unstructured.ok", filename=filename, elements=len(elements))
        return text, {
            "unstructuredProcessed": True,
            "elementCount": len(elements),
            "titles": titles,
            "processingStrategy": "default",
        }

    def _extract_pdf(self, data: bytes) -> Tuple[str, dict]:
        import pdfplumber

        pages: List[str] = []
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                text = (page.extract_text() or "").strip()
                if text:
                    pages.append(text)
            page_count = len(pdf.pages)
        return "\n\n".join(pages), {
            "elementCount": page_count,
            "titles": [],
            "processingStrategy": "local",
        }

    def _extract_docx(self, data: bytes) -> Tuple[str, dict]:
        from docx import Document

        doc = Document(io.BytesIO(data))
        paragraphs = [p for p in doc.paragraphs if p.text.strip()]
        titles = [p.text.strip() for p in paragraphs if p.style is not None and p.style.name == "Title"]
        return "\n\n".join(p.text.strip() for p in paragraphs), {
            "elementCount": len(paragraphs),
            "titles": titles,
            "processingStrategy": "local",
        }


def join_element_texts(elements: List[dict]) -> str:
    texts = [(el.get("text") or "").strip() for el in elements]
    return "\n\n".join(t for t in texts if t)
