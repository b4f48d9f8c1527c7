"""
Read-side queries for the authenticated caller.

Every query is scoped by joining documents → users on the verified
`sub` (users.external_id). A document owned by someone else is
indistinguishable from one that does not exist: both are a 404.

None of these functions mutate state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.documents import Document, DocumentStatus, Summary, User
from app.schemas.documents import (
    ApiErrors,
    DashboardResponse,
    DocumentInfo,
    DocumentListItem,
    DocumentListResponse,
    DocumentStatusInfo,
    RecentSummary,
    SummaryBrief,
    SummaryDetailResponse,
    SummaryOut,
    SummaryStatusResponse,
)

if TYPE_CHECKING:
    from app.auth.token import TokenPayload

logger = logging.getLogger(__name__)

RECENT_SUMMARIES_LIMIT = 5
_IN_FLIGHT = (DocumentStatus.UPLOADED.value, DocumentStatus.PROCESSING.value)


class DocumentQueries:
    """Caller-scoped reads behind the polling, list and dashboard routes."""

    def __init__(self, db: AsyncSession, user: "TokenPayload") -> None:
        self._db   = db
        self._user = user

    def _owned(self, stmt):
        return stmt.join(User, Document.user_id == User.id).where(
            User.external_id == self._user.sub
        )

    # ------------------------------------------------------------------
    # GET /summary-status
    # ------------------------------------------------------------------

    async def get_status(self, document_id: UUID) -> SummaryStatusResponse:
        stmt = self._owned(
            select(Document)
            .options(selectinload(Document.summary))
            .where(Document.id == document_id)
        )
        doc = (await self._db.execute(stmt)).scalars().first()
        if doc is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=ApiErrors.document_not_found(document_id).model_dump(),
            )

        summary = None
        if doc.status == DocumentStatus.COMPLETED.value and doc.summary is not None:
            summary = SummaryBrief.model_validate(doc.summary)

        return SummaryStatusResponse(
            document=DocumentStatusInfo.model_validate(doc),
            summary=summary,
            timestamp=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # GET /summary/{id}  — id may be the summary id or the document id
    # ------------------------------------------------------------------

    async def get_summary(self, summary_or_document_id: UUID) -> SummaryDetailResponse:
        stmt = self._owned(
            select(Summary)
            .join(Document, Summary.document_id == Document.id)
            .options(selectinload(Summary.document))
            .where(
                or_(
                    Summary.id == summary_or_document_id,
                    Summary.document_id == summary_or_document_id,
                )
            )
        )
        summary = (await self._db.execute(stmt)).scalars().first()
        if summary is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=ApiErrors.summary_not_found(summary_or_document_id).model_dump(),
            )

        return SummaryDetailResponse(
            summary=SummaryOut.model_validate(summary),
            document=DocumentInfo.model_validate(summary.document),
        )

    # ------------------------------------------------------------------
    # GET /documents
    # ------------------------------------------------------------------

    async def list_documents(self) -> DocumentListResponse:
        stmt = self._owned(
            select(Document)
            .options(
                selectinload(Document.summary),
                selectinload(Document.processing_logs),
            )
            .order_by(Document.created_at.desc())
        )
        docs = (await self._db.execute(stmt)).scalars().all()
        items = [DocumentListItem.model_validate(d) for d in docs]
        return DocumentListResponse(documents=items, total=len(items))

    # ------------------------------------------------------------------
    # GET /dashboard
    # ------------------------------------------------------------------

    async def dashboard(self) -> DashboardResponse:
        summary_stats = self._owned(
            select(
                func.count(Summary.id),
                func.coalesce(func.sum(Summary.word_count), 0),
            ).select_from(Summary).join(Document, Summary.document_id == Document.id)
        )
        total_summaries, words_saved = (await self._db.execute(summary_stats)).one()

        in_flight = self._owned(
            select(func.count(Document.id))
            .select_from(Document)
            .where(Document.status.in_(_IN_FLIGHT))
        )
        processing_count = (await self._db.execute(in_flight)).scalar_one()

        recent_stmt = self._owned(
            select(Summary, Document)
            .join(Document, Summary.document_id == Document.id)
            .order_by(Summary.created_at.desc())
            .limit(RECENT_SUMMARIES_LIMIT)
        )
        recent = [
            RecentSummary(
                id=s.id,
                title=s.title,
                file_name=d.file_name,
                status=d.status,
                created_at=s.created_at,
            )
            for s, d in (await self._db.execute(recent_stmt)).all()
        ]

        return DashboardResponse(
            total_summaries=int(total_summaries or 0),
            processing_count=int(processing_count or 0),
            words_saved=int(words_saved or 0),
            recent_summaries=recent,
        )
