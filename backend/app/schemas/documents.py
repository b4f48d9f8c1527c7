"""
Documents & Summaries — Pydantic Request/Response Schemas

Covers:
  - POST /api/v1/upload             (202 Accepted)
  - GET  /api/v1/summary-status     (polling)
  - GET  /api/v1/documents          (list with summaries + processing logs)
  - GET  /api/v1/summary/{id}       (full summary)
  - GET  /api/v1/dashboard          (aggregate stats)
  - All structured error bodies (400, 401, 404, 422, 500)

Design decisions:
  - document_id is always server-generated (UUID4); never client-supplied.
  - summary.id == summary.document_id, so either resolves a summary.
  - error_kind is a stable ErrorKind value clients can branch on.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.exceptions import ErrorKind
from app.models.documents import DocumentStatus


# ---------------------------------------------------------------------------
# Upload constraints — enforced before touching S3
# ---------------------------------------------------------------------------

ALLOWED_EXTENSIONS: frozenset[str] = frozenset({".pdf"})

# 32 MiB hard ceiling; a file of exactly this size is accepted
MAX_FILE_SIZE_BYTES: int = 32 * 1024 * 1024


# ---------------------------------------------------------------------------
# Upload success response — 202 Accepted
# ---------------------------------------------------------------------------

class DocumentUploadResponse(BaseModel):
    """
    Returned immediately after a successful upload.
    HTTP 202 — the file is stored but processing is async; poll
    /summary-status?documentId=<document_id> for progress.
    """
    document_id: UUID           = Field(..., description="Server-generated document UUID")
    file_url:    str            = Field(..., description="URL the worker fetches the PDF from")
    file_name:   str            = Field(..., description="Sanitized original filename")
    file_size:   int            = Field(..., description="File size in bytes")
    status:      DocumentStatus = Field(DocumentStatus.UPLOADED)
    created_at:  datetime


# ---------------------------------------------------------------------------
# Status polling — GET /summary-status
# ---------------------------------------------------------------------------

class DocumentStatusInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:            UUID
    status:        DocumentStatus
    file_name:     str
    created_at:    datetime
    updated_at:    datetime
    error_kind:    ErrorKind | None = None
    error_message: str | None = None


class SummaryBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:          UUID
    document_id: UUID
    title:       str
    word_count:  int
    created_at:  datetime


class SummaryStatusResponse(BaseModel):
    """
    summary is null while the document is uploaded/processing, and stays
    null when status=error. Clients stop polling on completed or error.
    """
    document:  DocumentStatusInfo
    summary:   SummaryBrief | None = None
    timestamp: datetime


# ---------------------------------------------------------------------------
# Full summary — GET /summary/{id}
# ---------------------------------------------------------------------------

class SummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:              UUID
    document_id:     UUID
    title:           str
    content:         str
    key_points:      list[str] = Field(default_factory=list)
    action_items:    list[str] = Field(default_factory=list)
    tags:            list[str] = Field(default_factory=list)
    word_count:      int
    processing_time: int = Field(..., description="Seconds from claim to summary write")
    ai_model:        str
    created_at:      datetime
    updated_at:      datetime


class DocumentInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:         UUID
    file_name:  str
    file_url:   str
    file_size:  int
    status:     DocumentStatus
    created_at: datetime


class SummaryDetailResponse(BaseModel):
    summary:  SummaryOut
    document: DocumentInfo


# ---------------------------------------------------------------------------
# Document list — GET /documents
# ---------------------------------------------------------------------------

class ProcessingLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id:         int
    stage:      str
    status:     str
    message:    str
    metadata:   dict[str, Any] | None = Field(None, validation_alias="log_metadata")
    created_at: datetime


class DocumentListItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:              UUID
    file_name:       str
    file_url:        str
    file_size:       int
    status:          DocumentStatus
    error_kind:      ErrorKind | None = None
    error_message:   str | None = None
    created_at:      datetime
    updated_at:      datetime
    summary:         SummaryOut | None = None
    processing_logs: list[ProcessingLogOut] = Field(default_factory=list)


class DocumentListResponse(BaseModel):
    documents: list[DocumentListItem]
    total:     int


# ---------------------------------------------------------------------------
# Dashboard — GET /dashboard
# ---------------------------------------------------------------------------

class RecentSummary(BaseModel):
    id:         UUID
    title:      str
    file_name:  str
    status:     DocumentStatus
    created_at: datetime


class DashboardResponse(BaseModel):
    total_summaries:  int
    processing_count: int = Field(..., description="Documents in uploaded or processing")
    words_saved:      int = Field(..., description="Sum of summary word counts")
    recent_summaries: list[RecentSummary]


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error — may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


# ---------------------------------------------------------------------------
# Pre-defined error factories (keeps route handlers thin)
# ---------------------------------------------------------------------------

class ApiErrors:
    """Factories for every documented error case."""

    @staticmethod
    def unsupported_file_type(filename: str, detected_type: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message=f"File type '{detected_type}' is not supported.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"'{filename}' is not a PDF. Only PDF files are accepted.",
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int) -> ErrorResponse:
        max_mb = MAX_FILE_SIZE_BYTES // (1024 * 1024)
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {max_mb} MB limit.",
            details=[
                ErrorDetail(
                    field="file",
                    message=f"Received {size_bytes:,} bytes; limit is {MAX_FILE_SIZE_BYTES:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="No file was provided in the request.",
            details=[
                ErrorDetail(
                    field="file",
                    message="The 'file' multipart field is required and must not be empty.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def invalid_id(field: str, value: str | None) -> ErrorResponse:
        message = f"'{field}' is required." if not value else f"'{value}' is not a valid id."
        return ErrorResponse(
            error_code="INVALID_ID",
            message=message,
            details=[ErrorDetail(field=field, message=message, code="INVALID_ID")],
        )

    @staticmethod
    def unauthorized(reason: str = "Missing or invalid Authorization header.") -> ErrorResponse:
        return ErrorResponse(
            error_code="UNAUTHORIZED",
            message="Authentication required. Provide a valid Bearer token.",
            details=[ErrorDetail(field=None, message=reason, code="UNAUTHORIZED")],
        )

    @staticmethod
    def token_expired() -> ErrorResponse:
        return ErrorResponse(
            error_code="TOKEN_EXPIRED",
            message="Your access token has expired. Please re-authenticate.",
            details=[],
        )

    @staticmethod
    def storage_error(detail: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="STORAGE_ERROR",
            message="Failed to store the document. Please retry.",
            details=(
                [ErrorDetail(field=None, message=detail, code="STORAGE_ERROR")]
                if detail
                else []
            ),
        )

    @staticmethod
    def document_not_found(document_id: UUID | str) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{document_id}' was not found.",
            details=[],
        )

    @staticmethod
    def summary_not_found(summary_id: UUID | str) -> ErrorResponse:
        return ErrorResponse(
            error_code="SUMMARY_NOT_FOUND",
            message=f"Summary '{summary_id}' was not found.",
            details=[],
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="The request could not be completed.",
            details=[],
            request_id=request_id,
        )


# ---------------------------------------------------------------------------
# HTTP status code → error code mapping (for OpenAPI documentation)
# ---------------------------------------------------------------------------

HTTP_ERROR_MAP: dict[int, str] = {
    400: "INVALID_REQUEST",        # unsupported type, file too large, bad id
    401: "UNAUTHORIZED",           # missing/invalid/expired JWT
    404: "DOCUMENT_NOT_FOUND",     # unknown id or owned by another user
    422: "VALIDATION_ERROR",       # FastAPI Pydantic validation failure
    500: "INTERNAL_ERROR",         # unhandled exception
}
