"""
Celery Tasks — PDF Processing Pipeline

Task: process_document
  Runs DocumentProcessor for one document id. The processor claims the
  document (uploaded → processing), extracts text, summarizes it and
  writes the summary. It never raises: failures are recorded on the
  document row and returned in the result dict. Celery retries are off;
  a redelivered message loses the claim and returns a conflict result.

Task: sweep_stale_documents
  Beat task (every SWEEP_INTERVAL_SECONDS, default 60). Reconciles documents a crashed or hung run left
  behind:
    - processing for > STALE_PROCESSING_MINUTES   → error (kind=timeout)
    - uploaded   for > REQUEUE_UPLOADED_AFTER_MINUTES → re-published
  The second case covers a broker outage during the original upload.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from celery import Task

from app.core.config import settings
from app.workers.celery_app import celery_app, process_time_limits

logger = logging.getLogger(__name__)

SWEEP_BATCH_LIMIT = 50
REQUEUE_COUNTDOWN_SECONDS = 5

PROCESS_SOFT_LIMIT, PROCESS_HARD_LIMIT = process_time_limits()


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        loop = asyncio.get_event_loop()
        if loop.is_running():
            import concurrent.futures
            with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
    except RuntimeError:
        return asyncio.run(coro)


# ---------------------------------------------------------------------------
# Main processing task
# ---------------------------------------------------------------------------

@celery_app.task(
    name="app.workers.tasks.process_document",
    bind=True,
    max_retries=0,
    acks_late=True,
    reject_on_worker_lost=True,
    soft_time_limit=PROCESS_SOFT_LIMIT,
    time_limit=PROCESS_HARD_LIMIT,
)
def process_document(self: Task, *, document_id: str) -> dict[str, Any]:
    """Extract + summarize one document; returns ProcessingResult.to_dict()."""
    return run_async(_process_document_async(uuid.UUID(document_id)))


async def _process_document_async(document_id: uuid.UUID) -> dict[str, Any]:
    from app.services.processor import DocumentProcessor

    result = await DocumentProcessor().process(document_id)
    if not result.success:
        logger.warning(
            "Processing did not complete | doc=%s kind=%s error=%s",
            document_id,
            result.error_kind.value if result.error_kind else "-",
            result.error,
        )
    return result.to_dict()


# ---------------------------------------------------------------------------
# Stale sweep — Celery Beat, every SWEEP_INTERVAL_SECONDS
# ---------------------------------------------------------------------------

@celery_app.task(
    name="app.workers.tasks.sweep_stale_documents",
    bind=False,
    acks_late=True,
    soft_time_limit=max(settings.sweep_interval_seconds - 5, 1),
    time_limit=settings.sweep_interval_seconds,
)
def sweep_stale_documents() -> dict[str, int]:
    return run_async(sweep_stale_documents_async())


def _requeue(document_id: uuid.UUID) -> None:
    process_document.apply_async(
        kwargs={"document_id": str(document_id)},
        countdown=REQUEUE_COUNTDOWN_SECONDS,
    )


async def sweep_stale_documents_async(
    repository=None,
    publish:    Callable[[uuid.UUID], None] = _requeue,
    now:        datetime | None = None,
) -> dict[str, int]:
    """
    Move hung `processing` documents to `error` and re-publish `uploaded`
    documents whose job never ran. Returns counts for each.

    A re-published document has its updated_at bumped, so it is not handed
    out again until another REQUEUE_UPLOADED_AFTER_MINUTES pass; a failed
    publish is retried on that later pass.
    """
    from app.core.exceptions import ErrorKind
    from app.models.documents import DocumentStatus, LogStage, LogStatus
    from app.services.repository import PipelineRepository

    repo = repository or PipelineRepository()
    now = now or datetime.now(timezone.utc)

    # --- processing → error (timeout) -----------------------------------
    timed_out = 0
    stale_cutoff = now - timedelta(minutes=settings.stale_processing_minutes)
    for doc_id in await repo.stale_document_ids(
        DocumentStatus.PROCESSING, stale_cutoff, SWEEP_BATCH_LIMIT,
    ):
        message = (
            f"Processing did not finish within {settings.stale_processing_minutes} minutes"
        )
        # CAS on status=processing: a run that just finished wins
        if not await repo.mark_failed(doc_id, ErrorKind.TIMEOUT.value, message):
            continue
        await repo.append_log(
            doc_id, LogStage.ERROR, LogStatus.ERROR, message,
            {"error_kind": ErrorKind.TIMEOUT.value, "error_type": "StaleProcessing"},
        )
        timed_out += 1
        logger.warning("Stale document timed out | doc=%s", doc_id)

    # --- uploaded → re-published (at most once per window) -------------
    requeued = 0
    requeue_cutoff = now - timedelta(minutes=settings.requeue_uploaded_after_minutes)
    for doc_id in await repo.touch_stale_uploads(requeue_cutoff, SWEEP_BATCH_LIMIT):
        try:
            publish(doc_id)
        except Exception as exc:
            logger.error("Re-queue failed | doc=%s error=%s", doc_id, exc)
            continue
        requeued += 1
        logger.info("Re-queued stale document | doc=%s", doc_id)

    return {"timed_out": timed_out, "requeued": requeued}


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="app.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "worker": "healthy"}
