"""
Summarization Package

Public API::

    from app.llm import Summarizer, SummarizationOptions

    summarizer = Summarizer()
    result = await summarizer.summarize(text, "report.pdf", SummarizationOptions(model=...))
"""

from app.llm.fallback import OFFLINE_MODEL, offline_summary
from app.llm.summarizer import Summarizer
from app.llm.types import SummarizationOptions, SummaryResult

__all__ = [
    "OFFLINE_MODEL",
    "offline_summary",
    "Summarizer",
    "SummarizationOptions",
    "SummaryResult",
]
