"""
Document Processing Package
════════════════════════════

Turns a stored PDF into clean text ready for summarization:

  Fetch → Text layer (pypdf) / raw stream scan → Cleanup → Chunking

Modules
───────
  extractor.py  PdfExtractor adapter and validate_extraction()
  chunking.py   Text cleanup, garbage detection, recursive character chunking
"""

from app.processing.chunking import chunk_text, clean_text, count_words
from app.processing.extractor import ExtractionResult, PdfExtractor, validate_extraction

__all__ = [
    "ExtractionResult",
    "PdfExtractor",
    "validate_extraction",
    "chunk_text",
    "clean_text",
    "count_words",
]
