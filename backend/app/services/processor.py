"""
Document Processor — drives one document from `uploaded` to a terminal state.

Pipeline (each step commits before the next begins):

   claim  uploaded → processing          (compare-and-set; losers stop here)
    1. log  extraction / started
    2. extract text                      (timeout: EXTRACTION_TIMEOUT_SECONDS)
       validate ≥ 50 chars, ≥ 10 words
    3. log  extraction / completed
    4. log  analysis / started
    5. summarize                         (timeout: SUMMARIZATION_TIMEOUT_SECONDS)
    6. log  analysis / completed
    7. status → completed + upsert summary, one transaction
       (summary.id == document.id; CAS on processing, so a run the sweep
       already timed out writes no summary)
    8. log  summary_generation / completed   (best effort)

Any exception before step 8 is caught once: the document moves to `error`
with an ErrorKind and message and an `error / error` log row is written,
unless it already left `processing`. A failed ProcessingResult is
returned. process() never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.core.exceptions import (
    ErrorKind,
    ExtractionError,
    PipelineError,
    SummarizationError,
)
from app.llm.summarizer import Summarizer
from app.llm.types import SummarizationOptions
from app.models.documents import LogStage, LogStatus
from app.processing.extractor import PdfExtractor, validate_extraction
from app.services.repository import PipelineRepository

logger = logging.getLogger(__name__)

FAILED_EXTRACTION_METHOD = "failed"
FAILED_AI_MODEL          = "none"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ProcessingResult:
    success:                 bool
    document_id:             uuid.UUID
    processing_time_seconds: int
    extraction_method:       str
    ai_model:                str
    summary_id:              uuid.UUID | None = None
    error:                   str | None = None
    error_kind:              ErrorKind | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["document_id"] = str(self.document_id)
        data["summary_id"] = str(self.summary_id) if self.summary_id else None
        data["error_kind"] = self.error_kind.value if self.error_kind else None
        return data


@dataclass(frozen=True)
class PipelineTimeouts:
    extraction_seconds:    float = 60.0
    summarization_seconds: float = 120.0


def default_options() -> SummarizationOptions:
    return SummarizationOptions(
        model=settings.summarizer_model,
        max_length=settings.summary_max_length,
        include_action_items=settings.summary_include_action_items,
    )


def default_timeouts() -> PipelineTimeouts:
    return PipelineTimeouts(
        extraction_seconds=settings.extraction_timeout_seconds,
        summarization_seconds=settings.summarization_timeout_seconds,
    )


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, PipelineError):
        return exc.kind
    if isinstance(exc, SQLAlchemyError):
        return ErrorKind.PERSISTENCE_FAILURE
    return ErrorKind.INTERNAL


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class DocumentProcessor:
    """
    Usage:
        processor = DocumentProcessor()
        result = await processor.process(document_id)

    All collaborators are injectable; tests pass an in-memory repository
    and fake extractor / summarizer.
    """

    def __init__(
        self,
        repository: PipelineRepository | None = None,
        extractor:  PdfExtractor | None = None,
        summarizer: Summarizer | None = None,
        options:    SummarizationOptions | None = None,
        timeouts:   PipelineTimeouts | None = None,
        clock:      Callable[[], float] = time.monotonic,
    ) -> None:
        self._repo       = repository or PipelineRepository()
        self._extractor  = extractor or PdfExtractor()
        self._summarizer = summarizer or Summarizer()
        self._options    = options or default_options()
        self._timeouts   = timeouts or default_timeouts()
        self._clock      = clock

    async def process(self, document_id: uuid.UUID) -> ProcessingResult:
        started = self._clock()

        # --- Preconditions: exists + claim (no mutation on rejection) -----
        try:
            doc = await self._repo.get_document(document_id)
            if doc is None:
                logger.warning("Document not found | doc=%s", document_id)
                return self._rejected(document_id, started, ErrorKind.NOT_FOUND, "Document not found")

            if not await self._repo.claim_for_processing(document_id):
                logger.warning(
                    "Document not claimable, skipping | doc=%s status=%s",
                    document_id, doc.status,
                )
                return self._rejected(
                    document_id, started, ErrorKind.CONFLICT,
                    f"Document is not awaiting processing (status={doc.status})",
                )
        except Exception as exc:
            logger.exception("Processing precondition failed | doc=%s", document_id)
            return self._rejected(document_id, started, classify_error(exc), str(exc))

        logger.info("Processing | doc=%s file=%s", document_id, doc.file_name)

        try:
            return await self._run(doc.id, doc.file_url, doc.file_name, started)
        except Exception as exc:
            return await self._fail(document_id, started, exc)

    # ------------------------------------------------------------------
    # Happy path
    # ------------------------------------------------------------------

    async def _run(
        self,
        document_id: uuid.UUID,
        file_url:    str,
        file_name:   str,
        started:     float,
    ) -> ProcessingResult:
        # --- Extraction ---------------------------------------------------
        await self._repo.append_log(
            document_id, LogStage.EXTRACTION, LogStatus.STARTED,
            "Starting PDF text extraction",
        )

        try:
            extracted = await asyncio.wait_for(
                self._extractor.extract(file_url, file_name),
                timeout=self._timeouts.extraction_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise ExtractionError(
                f"Extraction timed out after {self._timeouts.extraction_seconds:g}s"
            ) from exc
        validate_extraction(extracted.text, extracted.word_count)

        method = extracted.extraction_method
        await self._repo.append_log(
            document_id, LogStage.EXTRACTION, LogStatus.COMPLETED,
            f"PDF text extraction completed using {method}",
            {
                "page_count":        extracted.page_count,
                "word_count":        extracted.word_count,
                "text_length":       len(extracted.text),
                "chunk_count":       len(extracted.chunks),
                "extraction_method": method,
                "title":             extracted.metadata.get("title"),
                "author":            extracted.metadata.get("author"),
            },
        )

        # --- Summarization ------------------------------------------------
        await self._repo.append_log(
            document_id, LogStage.ANALYSIS, LogStatus.STARTED,
            "Starting AI analysis and summarization",
        )

        try:
            summary = await asyncio.wait_for(
                self._summarizer.summarize(
                    extracted.text, file_name, self._options, extracted.chunks,
                ),
                timeout=self._timeouts.summarization_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise SummarizationError(
                f"Summarization timed out after {self._timeouts.summarization_seconds:g}s"
            ) from exc

        await self._repo.append_log(
            document_id, LogStage.ANALYSIS, LogStatus.COMPLETED,
            "AI analysis and summarization completed",
            {
                "word_count":        summary.word_count,
                "key_point_count":   len(summary.key_points),
                "action_item_count": len(summary.action_items),
                "tag_count":         len(summary.tags),
                "title":             summary.title,
            },
        )

        # --- Persistence --------------------------------------------------
        summary_id = await self._repo.complete_with_summary(
            document_id, summary, self._elapsed(started),
        )

        # The document is completed from here on; a lost audit row is not a failed run.
        elapsed = self._elapsed(started)
        try:
            await self._repo.append_log(
                document_id, LogStage.SUMMARY_GENERATION, LogStatus.COMPLETED,
                "Document processing completed successfully",
                {
                    "summary_id":         str(summary_id),
                    "processing_time":    elapsed,
                    "extraction_method":  method,
                    "total_word_count":   extracted.word_count,
                    "summary_word_count": summary.word_count,
                },
            )
        except Exception:
            logger.exception("Completion log write failed | doc=%s", document_id)

        logger.info(
            "Processing complete | doc=%s method=%s model=%s time=%ds",
            document_id, method, summary.model, elapsed,
        )
        return ProcessingResult(
            success=True,
            document_id=document_id,
            summary_id=summary_id,
            processing_time_seconds=elapsed,
            extraction_method=method,
            ai_model=summary.model,
        )

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _fail(
        self,
        document_id: uuid.UUID,
        started:     float,
        exc:         Exception,
    ) -> ProcessingResult:
        kind = classify_error(exc)
        message = str(exc) or type(exc).__name__
        elapsed = self._elapsed(started)

        if kind is ErrorKind.INTERNAL:
            logger.exception("Processing failed | doc=%s", document_id)
        else:
            logger.error(
                "Processing failed | doc=%s kind=%s error=%s",
                document_id, kind.value, message,
            )

        try:
            if await self._repo.mark_failed(document_id, kind.value, message):
                await self._repo.append_log(
                    document_id, LogStage.ERROR, LogStatus.ERROR, message,
                    {
                        "processing_time": elapsed,
                        "error_type":      type(exc).__name__,
                        "error_kind":      kind.value,
                    },
                )
            else:
                logger.warning(
                    "Document already left processing, failure not recorded | doc=%s",
                    document_id,
                )
        except Exception:
            # Left in `processing`; the stale sweep moves it to `error`.
            logger.exception("Could not record failure | doc=%s", document_id)

        return ProcessingResult(
            success=False,
            document_id=document_id,
            processing_time_seconds=elapsed,
            extraction_method=FAILED_EXTRACTION_METHOD,
            ai_model=FAILED_AI_MODEL,
            error=message,
            error_kind=kind,
        )

    def _rejected(
        self,
        document_id: uuid.UUID,
        started:     float,
        kind:        ErrorKind,
        message:     str,
    ) -> ProcessingResult:
        return ProcessingResult(
            success=False,
            document_id=document_id,
            processing_time_seconds=self._elapsed(started),
            extraction_method=FAILED_EXTRACTION_METHOD,
            ai_model=FAILED_AI_MODEL,
            error=message,
            error_kind=kind,
        )

    def _elapsed(self, started: float) -> int:
        return round(self._clock() - started)
