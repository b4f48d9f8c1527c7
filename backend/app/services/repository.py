"""
Pipeline persistence — one committed transaction per call.

The processor never holds a session across steps: every method opens its
own session_scope(), so each pipeline write is durable before the next
step begins and a crash mid-run leaves a readable partial trace.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.sql import func

from app.core.exceptions import ClaimLostError
from app.db.session import session_scope
from app.llm.types import SummaryResult
from app.models.documents import (
    Document,
    DocumentStatus,
    LogStage,
    LogStatus,
    ProcessingLog,
    Summary,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentRef:
    """Read-only view of the fields the processor needs."""
    id:        uuid.UUID
    file_name: str
    file_url:  str
    status:    str


class PipelineRepository:
    def __init__(self, scope_factory: Callable = session_scope) -> None:
        self._scope = scope_factory

    async def get_document(self, document_id: uuid.UUID) -> DocumentRef | None:
        async with self._scope() as db:
            result = await db.execute(select(Document).where(Document.id == document_id))
            doc = result.scalars().first()
            if doc is None:
                return None
            return DocumentRef(
                id=doc.id,
                file_name=doc.file_name,
                file_url=doc.file_url,
                status=doc.status,
            )

    async def claim_for_processing(self, document_id: uuid.UUID) -> bool:
        """
        Compare-and-set uploaded → processing.
        Returns False when another run already claimed (or finished) it.
        """
        async with self._scope() as db:
            result = await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.status == DocumentStatus.UPLOADED.value,
                )
                .values(status=DocumentStatus.PROCESSING.value, updated_at=func.now())
            )
            return result.rowcount == 1

    async def append_log(
        self,
        document_id: uuid.UUID,
        stage:       LogStage,
        status:      LogStatus,
        message:     str,
        metadata:    dict[str, Any] | None = None,
    ) -> None:
        async with self._scope() as db:
            db.add(ProcessingLog(
                document_id=document_id,
                stage=stage.value,
                status=status.value,
                message=message,
                log_metadata=metadata,
            ))

    async def complete_with_summary(
        self,
        document_id:     uuid.UUID,
        summary:         SummaryResult,
        processing_time: int,
    ) -> uuid.UUID:
        """
        processing → completed and the summary upsert, in one transaction.

        Raises ClaimLostError (rolling back, so no summary row is written)
        when the document is no longer `processing`.
        """
        values = {
            "title":           summary.title,
            "content":         summary.content,
            "key_points":      summary.key_points,
            "action_items":    summary.action_items,
            "tags":            summary.tags,
            "word_count":      summary.word_count,
            "processing_time": processing_time,
            "ai_model":        summary.model,
        }
        upsert = (
            pg_insert(Summary)
            .values(id=document_id, document_id=document_id, **values)
            .on_conflict_do_update(
                index_elements=[Summary.document_id],
                set_={**values, "updated_at": func.now()},
            )
            .returning(Summary.id)
        )
        async with self._scope() as db:
            claimed = await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.status == DocumentStatus.PROCESSING.value,
                )
                .values(status=DocumentStatus.COMPLETED.value, updated_at=func.now())
            )
            if claimed.rowcount != 1:
                raise ClaimLostError(
                    f"Document {document_id} is no longer processing; summary discarded"
                )
            result = await db.execute(upsert)
            return result.scalar_one()

    async def mark_failed(
        self,
        document_id: uuid.UUID,
        kind:        str,
        message:     str,
    ) -> bool:
        """processing → error; returns False if the document was not processing."""
        async with self._scope() as db:
            result = await db.execute(
                update(Document)
                .where(
                    Document.id == document_id,
                    Document.status == DocumentStatus.PROCESSING.value,
                )
                .values(
                    status=DocumentStatus.ERROR.value,
                    error_kind=kind,
                    error_message=message,
                    updated_at=func.now(),
                )
            )
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Reconciliation queries (stale sweep)
    # ------------------------------------------------------------------

    async def stale_document_ids(
        self,
        status: DocumentStatus,
        older_than: datetime,
        limit: int = 50,
    ) -> list[uuid.UUID]:
        """Ids of documents sitting in `status` since before `older_than`."""
        async with self._scope() as db:
            result = await db.execute(
                select(Document.id)
                .where(
                    Document.status == status.value,
                    Document.updated_at < older_than,
                )
                .order_by(Document.updated_at)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def touch_stale_uploads(
        self,
        older_than: datetime,
        limit: int = 50,
    ) -> list[uuid.UUID]:
        """
        Bump updated_at on `uploaded` documents idle since before `older_than`
        and return their ids. The bump is a compare-and-set on status and
        updated_at, so one document is handed out at most once per window
        even when sweeps overlap.
        """
        stale = (
            select(Document.id)
            .where(
                Document.status == DocumentStatus.UPLOADED.value,
                Document.updated_at < older_than,
            )
            .order_by(Document.updated_at)
            .limit(limit)
            .scalar_subquery()
        )
        async with self._scope() as db:
            result = await db.execute(
                update(Document)
                .where(
                    Document.id.in_(stale),
                    Document.status == DocumentStatus.UPLOADED.value,
                    Document.updated_at < older_than,
                )
                .values(updated_at=func.now())
                .returning(Document.id)
            )
            return list(result.scalars().all())
