"""
Text cleanup and chunking for extracted PDF text.

Chunks are fixed-size windows (CHUNK_SIZE chars, CHUNK_OVERLAP overlap)
produced by LangChain's RecursiveCharacterTextSplitter, which prefers to
break at paragraph → line → sentence → word boundaries in that order.
They feed size-limited summarization backends; the stored summary never
contains chunk text verbatim.
"""

from __future__ import annotations

import logging
import re

from langchain_text_splitters import RecursiveCharacterTextSplitter

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

CHUNK_SIZE    = 1000
CHUNK_OVERLAP = 200
SEPARATORS    = ["\n\n", "\n", ". ", " ", ""]

_splitter = RecursiveCharacterTextSplitter(
    chunk_size=CHUNK_SIZE,
    chunk_overlap=CHUNK_OVERLAP,
    separators=SEPARATORS,
)

# Minimum share of letters (any script) for text to count as real prose
MIN_LETTER_RATIO = 0.2

# Latin-script text without an English stop-word still passes when most of
# its words carry a vowel (French, Spanish, German prose)
MIN_VOWEL_WORD_RATIO = 0.6
MIN_WORDS_FOR_VOWEL_CHECK = 3

_COMMON_WORDS = frozenset({
    "the", "and", "or", "to", "of", "in", "for", "with", "on", "at", "by",
    "from", "as", "is", "was", "are", "were", "company", "report", "year",
    "financial", "revenue", "income", "total", "million", "billion", "percent",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december",
})

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0B\x0E-\x1F\x7F]")
_SPACES_RE        = re.compile(r" {2,}")
_NEWLINES_RE      = re.compile(r"\n{3,}")
_WORD_RE          = re.compile(r"[a-z]+")
_LETTER_RUN_RE    = re.compile(r"[^\W\d_]{2,}")
_VOWELS           = frozenset("aeiouyàâäáãåæèéêëìíîïòóôöõøœùúûüý")

# Highest code point of the Latin blocks (Basic Latin .. Latin Extended-B)
_LATIN_MAX = 0x024F


def clean_text(text: str) -> str:
    """Strip control characters and normalise whitespace, keeping paragraph breaks."""
    if not text:
        return ""
    text = text.replace("\f", "\n")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS_RE.sub("", text)
    text = text.replace("\t", " ")
    text = _SPACES_RE.sub(" ", text)
    text = _NEWLINES_RE.sub("\n\n", text)
    return text.strip()


def count_words(text: str) -> int:
    return len(text.split())


def looks_like_text(text: str) -> bool:
    """
    Heuristic guard against binary noise decoded as text.

    Requires at least MIN_LETTER_RATIO letters, then any one of:
      • a common English word, or a percent sign (figure-heavy reports)
      • mostly non-Latin letters (CJK, Cyrillic, Greek, Arabic ...); noise
        decoded from PDF byte strings stays inside Latin-1
      • Latin-script words that mostly contain a vowel (non-English prose)
    """
    if not text or len(text) < 10:
        return False

    letters = [ch for ch in text if ch.isalpha()]
    if len(letters) / len(text) < MIN_LETTER_RATIO:
        return False

    lowered = text.lower()
    if "%" in lowered:
        return True
    if any(word in _COMMON_WORDS for word in _WORD_RE.findall(lowered)):
        return True

    non_latin = sum(1 for ch in letters if ord(ch) > _LATIN_MAX)
    if non_latin * 2 >= len(letters):
        return True

    words = _LETTER_RUN_RE.findall(lowered)
    if len(words) < MIN_WORDS_FOR_VOWEL_CHECK:
        return False
    voiced = sum(1 for word in words if any(ch in _VOWELS for ch in word))
    return voiced / len(words) >= MIN_VOWEL_WORD_RATIO


def chunk_text(text: str) -> list[str]:
    """Split `text` into overlapping windows; empty text yields no chunks."""
    if not text.strip():
        return []
    chunks = _splitter.split_text(text)
    logger.debug("Chunked | chars=%d chunks=%d", len(text), len(chunks))
    return chunks
