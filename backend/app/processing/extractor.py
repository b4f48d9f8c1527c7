"""
PDF Text Extraction Adapter
═══════════════════════════

Fetches a stored PDF by URL and returns its text, page count, word count,
chunks and metadata as a single ExtractionResult.

Strategy cascade:
  1.  pypdf text layer      ("pypdf-text-layer")
        Parses the document and reads every page's text layer plus the
        document information dictionary. Runs in a worker thread.
  2.  Raw content-stream scan ("raw-stream-scan")
        Deterministic offline fallback: regex scan of uncompressed
        BT … ET text objects for Tj / TJ string operands. Used when pypdf
        cannot parse the file or its text layer looks like noise.
  3.  Nothing usable → ExtractionError.

Every failure this module raises is an ExtractionError, so the processor
can classify it without inspecting messages.
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
from dataclasses import dataclass, field
from typing import Any

import httpx
from pypdf import PdfReader

from app.core.exceptions import ExtractionError
from app.processing.chunking import chunk_text, clean_text, count_words, looks_like_text

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

PDF_SIGNATURE = b"%PDF"

METHOD_PYPDF    = "pypdf-text-layer"
METHOD_RAW_SCAN = "raw-stream-scan"

# Minimum-content bar applied by validate_extraction()
MIN_TEXT_CHARS = 50
MIN_WORDS      = 10

FETCH_TIMEOUT_SECONDS = 30.0

DEFAULT_AUTHOR = "Unknown Author"

_TEXT_OBJECT_RE = re.compile(rb"BT\s(.*?)\sET", re.DOTALL)
_TJ_RE          = re.compile(rb"\(((?:\\.|[^\\)])*)\)\s*Tj")
_TJ_ARRAY_RE    = re.compile(rb"\[(.*?)\]\s*TJ", re.DOTALL)
_ARRAY_STR_RE   = re.compile(rb"\(((?:\\.|[^\\)])*)\)")
_PAGE_RE        = re.compile(rb"/Type\s*/Page(?![a-zA-Z])")
_ESCAPE_RE      = re.compile(rb"\\([nrtbf()\\]|[0-7]{1,3})")

_ESCAPES = {
    b"n": b"\n", b"r": b"\r", b"t": b"\t", b"b": b"\b", b"f": b"\f",
    b"(": b"(", b")": b")", b"\\": b"\\",
}


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------

@dataclass
class ExtractionResult:
    """
    text       : cleaned full text
    page_count : number of pages (≥ 1)
    word_count : whitespace-delimited word count of `text`
    chunks     : overlapping windows of `text` for size-limited summarizers
    metadata   : title, author, subject, creator, producer, creation_date,
                 file_size, extraction_method
    """
    text:       str
    page_count: int
    word_count: int
    chunks:     list[str] = field(default_factory=list)
    metadata:   dict[str, Any] = field(default_factory=dict)

    @property
    def extraction_method(self) -> str:
        return self.metadata.get("extraction_method", "unknown")


@dataclass
class _StrategyOutput:
    text:       str
    page_count: int
    info:       dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_extraction(text: str, word_count: int | None = None) -> None:
    """
    Raise ExtractionError unless the text meets the minimum-content bar:
    at least MIN_TEXT_CHARS characters after trimming and MIN_WORDS words.
    """
    stripped = (text or "").strip()
    if len(stripped) < MIN_TEXT_CHARS:
        raise ExtractionError(
            f"PDF content is too short or empty ({len(stripped)} chars, "
            f"minimum {MIN_TEXT_CHARS})"
        )
    words = count_words(stripped) if word_count is None else word_count
    if words < MIN_WORDS:
        raise ExtractionError(f"PDF must contain at least {MIN_WORDS} words (found {words})")


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class PdfExtractor:
    """
    Usage:
        extractor = PdfExtractor()
        result = await extractor.extract(file_url, "report.pdf")

    An httpx.AsyncClient may be injected (tests pass one backed by
    httpx.MockTransport); otherwise a short-lived client is opened per call.
    """

    def __init__(
        self,
        client:        httpx.AsyncClient | None = None,
        fetch_timeout: float = FETCH_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._fetch_timeout = fetch_timeout

    async def extract(self, file_url: str, file_name: str) -> ExtractionResult:
        data = await self._fetch(file_url)

        if not data.startswith(PDF_SIGNATURE):
            raise ExtractionError(f"{file_name} is not a valid PDF document")

        output, method = await self._run_strategies(data, file_name)
        text = clean_text(output.text)
        chunks = chunk_text(text)
        word_count = count_words(text)

        metadata = {
            "title":             output.info.get("title") or _strip_extension(file_name),
            "author":            output.info.get("author") or DEFAULT_AUTHOR,
            "subject":           output.info.get("subject"),
            "creator":           output.info.get("creator"),
            "producer":          output.info.get("producer"),
            "creation_date":     output.info.get("creation_date"),
            "file_size":         len(data),
            "extraction_method": method,
        }

        logger.info(
            "Extraction | file=%s method=%s pages=%d words=%d chars=%d chunks=%d",
            file_name, method, output.page_count, word_count, len(text), len(chunks),
        )
        return ExtractionResult(
            text=text,
            page_count=output.page_count,
            word_count=word_count,
            chunks=chunks,
            metadata=metadata,
        )

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def _fetch(self, file_url: str) -> bytes:
        headers = {"Accept": "application/pdf"}
        try:
            if self._client is not None:
                resp = await self._client.get(file_url, headers=headers)
            else:
                async with httpx.AsyncClient(
                    timeout=self._fetch_timeout,
                    follow_redirects=True,
                ) as client:
                    resp = await client.get(file_url, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise ExtractionError(
                f"Failed to fetch PDF: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ExtractionError(f"Failed to fetch PDF: {exc}") from exc
        return resp.content

    # ------------------------------------------------------------------
    # Strategy cascade
    # ------------------------------------------------------------------

    async def _run_strategies(
        self, data: bytes, file_name: str
    ) -> tuple[_StrategyOutput, str]:
        try:
            output = await asyncio.to_thread(_read_text_layer, data)
            if looks_like_text(clean_text(output.text)):
                return output, METHOD_PYPDF
            logger.info("pypdf text layer empty or unreadable | file=%s", file_name)
        except Exception as exc:
            logger.warning("pypdf failed: %s — trying raw stream scan | file=%s", exc, file_name)

        output = _scan_content_streams(data)
        if looks_like_text(clean_text(output.text)):
            return output, METHOD_RAW_SCAN

        raise ExtractionError(f"No extractable text found in {file_name}")


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def _read_text_layer(data: bytes) -> _StrategyOutput:
    """Read all pages' text layer and the document info dictionary with pypdf."""
    reader = PdfReader(io.BytesIO(data))
    pages = [page.extract_text() or "" for page in reader.pages]

    info: dict[str, Any] = {}
    meta = reader.metadata
    if meta is not None:
        info = {
            "title":    meta.title,
            "author":   meta.author,
            "subject":  meta.subject,
            "creator":  meta.creator,
            "producer": meta.producer,
            "creation_date": meta.get("/CreationDate"),
        }
        info = {k: str(v) for k, v in info.items() if v}

    return _StrategyOutput(
        text="\n\n".join(p for p in pages if p.strip()),
        page_count=max(1, len(reader.pages)),
        info=info,
    )


def _scan_content_streams(data: bytes) -> _StrategyOutput:
    """
    Pull string operands of Tj / TJ operators out of uncompressed text
    objects. Compressed streams are invisible to this scan.
    """
    lines: list[str] = []
    for block in _TEXT_OBJECT_RE.findall(data):
        parts = [_unescape(m) for m in _TJ_RE.findall(block)]
        for array in _TJ_ARRAY_RE.findall(block):
            parts.append("".join(_unescape(s) for s in _ARRAY_STR_RE.findall(array)))
        line = " ".join(p for p in parts if p.strip())
        if line:
            lines.append(line)

    page_count = len(_PAGE_RE.findall(data))
    return _StrategyOutput(text="\n".join(lines), page_count=max(1, page_count))


def _unescape(raw: bytes) -> str:
    def _sub(match: re.Match) -> bytes:
        token = match.group(1)
        if token in _ESCAPES:
            return _ESCAPES[token]
        return bytes([int(token, 8) & 0xFF])

    return _ESCAPE_RE.sub(_sub, raw).decode("latin-1")


def _strip_extension(file_name: str) -> str:
    return re.sub(r"\.pdf$", "", file_name, flags=re.IGNORECASE)
