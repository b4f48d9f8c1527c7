"""
Documents & Summaries API Router

    POST /api/v1/upload                       → 202, processing queued
    GET  /api/v1/summary-status?documentId=   → poll pipeline progress
    GET  /api/v1/documents                    → caller's documents + logs
    GET  /api/v1/summary/{id}                 → full summary (summary or document id)
    GET  /api/v1/dashboard                    → aggregate stats

Request lifecycle (upload):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. JWT verification → sub (no client-supplied user id)  │
  │ 2. File validation (size ≤ 32 MiB, %PDF, .pdf)          │
  │ 3. Lazy users row for sub                               │
  │ 4. S3 upload under users/<user_id>/documents/           │
  │ 5. DB insert (status=uploaded) + commit                 │
  │ 6. Celery task published → returns 202                  │
  └─────────────────────────────────────────────────────────┘

Ids arrive as plain strings and are parsed here so a malformed id is a
400 INVALID_ID rather than FastAPI's generic 422.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status
from fastapi.responses import JSONResponse

from app.auth.dependencies import CurrentUser, Publisher, RequestDB, UserStorage
from app.schemas.documents import (
    ApiErrors,
    DashboardResponse,
    DocumentListResponse,
    DocumentUploadResponse,
    ErrorResponse,
    SummaryDetailResponse,
    SummaryStatusResponse,
)
from app.services.ingestion import IngestionService
from app.services.queries import DocumentQueries

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Documents"])


def _parse_id(field: str, value: Optional[str]) -> uuid.UUID:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ApiErrors.invalid_id(field, value).model_dump(),
        )
    try:
        return uuid.UUID(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ApiErrors.invalid_id(field, value).model_dump(),
        ) from exc


# ---------------------------------------------------------------------------
# POST /upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Upload a PDF for summarization",
    description=(
        "Accepts a single PDF up to 32 MB. Returns 202 immediately; "
        "processing is asynchronous. Poll GET /summary-status?documentId=<id>."
    ),
    responses={
        202: {"model": DocumentUploadResponse, "description": "File accepted for processing"},
        400: {"model": ErrorResponse, "description": "Missing file, not a PDF, or too large"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
        500: {"model": ErrorResponse, "description": "Storage or database failure"},
    },
)
async def upload_document(
    user:      CurrentUser,
    db:        RequestDB,
    storage:   UserStorage,
    publisher: Publisher,
    file:      Optional[UploadFile] = File(None, description="PDF file (max 32 MB)"),
) -> JSONResponse:
    service = IngestionService(
        db=db,
        storage_factory=storage,
        user=user,
        task_publisher=publisher,
    )
    result = await service.ingest(file)

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=result.model_dump(mode="json"),
        headers={
            "X-Document-ID": str(result.document_id),
            "Location":      f"/api/v1/summary-status?documentId={result.document_id}",
        },
    )


# ---------------------------------------------------------------------------
# GET /summary-status
# ---------------------------------------------------------------------------

@router.get(
    "/summary-status",
    response_model=SummaryStatusResponse,
    summary="Poll async processing status",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_summary_status(
    user:       CurrentUser,
    db:         RequestDB,
    documentId: Optional[str] = Query(None, description="Document UUID"),
) -> SummaryStatusResponse:
    """summary stays null until the document reaches `completed`."""
    document_id = _parse_id("documentId", documentId)
    return await DocumentQueries(db, user).get_status(document_id)


# ---------------------------------------------------------------------------
# GET /documents
# ---------------------------------------------------------------------------

@router.get(
    "/documents",
    response_model=DocumentListResponse,
    summary="List the caller's documents, newest first",
    responses={401: {"model": ErrorResponse}},
)
async def list_documents(user: CurrentUser, db: RequestDB) -> DocumentListResponse:
    return await DocumentQueries(db, user).list_documents()


# ---------------------------------------------------------------------------
# GET /summary/{summary_id}
# ---------------------------------------------------------------------------

@router.get(
    "/summary/{summary_id}",
    response_model=SummaryDetailResponse,
    summary="Fetch a summary by summary id or document id",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
async def get_summary(summary_id: str, user: CurrentUser, db: RequestDB) -> SummaryDetailResponse:
    parsed = _parse_id("id", summary_id)
    return await DocumentQueries(db, user).get_summary(parsed)


# ---------------------------------------------------------------------------
# GET /dashboard
# ---------------------------------------------------------------------------

@router.get(
    "/dashboard",
    response_model=DashboardResponse,
    summary="Aggregate summary statistics",
    responses={401: {"model": ErrorResponse}},
)
async def get_dashboard(user: CurrentUser, db: RequestDB) -> DashboardResponse:
    return await DocumentQueries(db, user).dashboard()
