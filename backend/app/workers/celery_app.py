"""
Celery wiring for the PDF pipeline.

Messages carry a document id and nothing else; the worker loads file URL
and name from PostgreSQL, which is also where document state lives. The
result backend only holds ProcessingResult dicts for an hour.

    queue               task                     producer
    ─────────────────   ──────────────────────   ─────────────────────────
    documents.process   process_document         upload route, stale sweep
    documents.sweep     sweep_stale_documents    beat (SWEEP_INTERVAL_SECONDS)
    system.health       health_check             ops tooling

Broker and backend come from CELERY_BROKER_URL / CELERY_RESULT_BACKEND.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from app.core.config import settings

logger = logging.getLogger(__name__)

_TASK_PREFIX = "app.workers.tasks"

PROCESS_QUEUE = "documents.process"
SWEEP_QUEUE   = "documents.sweep"
HEALTH_QUEUE  = "system.health"

# queue → the one task routed to it
QUEUE_TASKS: dict[str, str] = {
    PROCESS_QUEUE: f"{_TASK_PREFIX}.process_document",
    SWEEP_QUEUE:   f"{_TASK_PREFIX}.sweep_stale_documents",
    HEALTH_QUEUE:  f"{_TASK_PREFIX}.health_check",
}

# Margin over the two bounded pipeline steps for claim, log and summary writes
_DB_WRITE_MARGIN_SECONDS = 60
_KILL_GRACE_SECONDS      = 60


def _queue(name: str) -> Queue:
    """Durable direct queue on the exchange named by the queue's prefix."""
    exchange = Exchange(name.split(".", 1)[0], type="direct", durable=True)
    return Queue(name, exchange=exchange, routing_key=name, durable=True)


def process_time_limits() -> tuple[int, int]:
    """
    (soft, hard) limits for process_document. The soft limit outlasts both
    per-step timeouts, so it only fires on a run hung outside them; the
    stale sweep then moves the document to error.
    """
    soft = int(
        settings.extraction_timeout_seconds
        + settings.summarization_timeout_seconds
        + _DB_WRITE_MARGIN_SECONDS
    )
    return soft, soft + _KILL_GRACE_SECONDS


def create_celery_app() -> Celery:
    app = Celery("pdf_summaries")

    app.conf.update(
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,
        result_expires=3600,

        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],

        task_queues=tuple(_queue(name) for name in QUEUE_TASKS),
        task_routes={task: {"queue": queue} for queue, task in QUEUE_TASKS.items()},
        task_default_queue=PROCESS_QUEUE,

        # A redelivered process_document loses the claim and exits as a conflict,
        # so late acks cost nothing and cover worker crashes.
        task_acks_late=True,
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,
        worker_max_tasks_per_child=200,

        timezone="UTC",
        enable_utc=True,

        beat_schedule={
            "sweep-stale-documents": {
                "task":     QUEUE_TASKS[SWEEP_QUEUE],
                "schedule": settings.sweep_interval_seconds,
                "options":  {"queue": SWEEP_QUEUE},
            },
        },
    )

    app.autodiscover_tasks(["app.workers"])
    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Lifecycle logging
# ---------------------------------------------------------------------------

def _doc(kwargs) -> str:
    return (kwargs or {}).get("document_id", "-")


@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info("Task start | task=%s id=%s doc=%s", task.name, task_id, _doc(kwargs))


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    # process_document returns a ProcessingResult dict; the sweep returns counts
    outcome = "-"
    if isinstance(retval, dict):
        if "success" in retval:
            outcome = "ok" if retval["success"] else retval.get("error_kind") or "failed"
        elif "timed_out" in retval:
            outcome = f"timed_out={retval['timed_out']} requeued={retval.get('requeued', 0)}"
    logger.info(
        "Task end | task=%s id=%s state=%s doc=%s outcome=%s",
        task.name, task_id, state, _doc(kwargs), outcome,
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task crashed | id=%s doc=%s error=%s", task_id, _doc(kwargs), exception,
        exc_info=True,
    )
