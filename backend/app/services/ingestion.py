"""
Document Ingestion Service

Orchestrates the upload pipeline:
  1. Read the upload with a hard size ceiling (32 MiB, inclusive)
  2. Validate type: %PDF magic bytes AND .pdf extension
  3. Resolve the caller's local user row (created lazily on first upload)
  4. Upload to S3 under users/<user_id>/documents/<document_id>.pdf
  5. Insert the document row (status=uploaded) and COMMIT
       - insert fails → delete the stored object (compensation)
  6. Publish the processing job to Celery
       - publish fails → non-fatal; the sweep task re-queues it
  7. Return 202 with the new document id

Invariants enforced here:
  - Nothing is stored and no row is written unless validation passes.
  - The document row is committed before the job is published, so the
    worker can never observe a job for a row that does not exist.
  - MIME type is detected from file magic bytes, not the client's
    Content-Type header.
"""

from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from fastapi import HTTPException, UploadFile, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.documents import Document, DocumentStatus, User
from app.schemas.documents import (
    ALLOWED_EXTENSIONS,
    MAX_FILE_SIZE_BYTES,
    ApiErrors,
    DocumentUploadResponse,
)
from app.storage.s3 import S3StorageService

if TYPE_CHECKING:
    from app.auth.token import TokenPayload

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF"
UNKNOWN_EMAIL = "unknown@example.com"


# ---------------------------------------------------------------------------
# File validation helpers
# ---------------------------------------------------------------------------

def _is_pdf(file_head: bytes) -> bool:
    return file_head.startswith(PDF_MAGIC)


def _get_extension(filename: str) -> str:
    """Return lowercased file extension including the dot."""
    parts = filename.rsplit(".", 1)
    return f".{parts[-1].lower()}" if len(parts) == 2 else ""


def _sanitize_filename(filename: str) -> str:
    """
    Strip path components and replace unsafe characters.
    Returns only the basename with OS-safe characters.
    """
    basename = filename.replace("\\", "/").rsplit("/", 1)[-1]
    safe = re.sub(r"[^a-zA-Z0-9._\- ]", "_", basename).strip()
    return safe[:200] or "document.pdf"


# ---------------------------------------------------------------------------
# Lazy user provisioning
# ---------------------------------------------------------------------------

async def get_or_create_user(db: AsyncSession, token: "TokenPayload") -> User:
    """
    Return the users row for the token's subject, inserting it on first use.
    A concurrent first upload by the same user loses the UNIQUE race and
    re-reads the winner's row.
    """
    stmt = select(User).where(User.external_id == token.sub)
    user = (await db.execute(stmt)).scalars().first()
    if user is not None:
        return user

    user = User(
        id=uuid.uuid4(),
        external_id=token.sub,
        email=token.email or UNKNOWN_EMAIL,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        user = (await db.execute(stmt)).scalars().first()
        if user is None:
            raise
        return user

    logger.info("User created | user=%s external_id=%s", user.id, token.sub)
    return user


# ---------------------------------------------------------------------------
# Core ingestion orchestrator
# ---------------------------------------------------------------------------

class IngestionService:
    """
    Stateless service object — one instance per request.
    All dependencies are injected (testable, no hidden globals).
    """

    def __init__(
        self,
        db:              AsyncSession,
        storage_factory: Callable[[uuid.UUID], S3StorageService],
        user:            "TokenPayload",
        task_publisher:  "TaskPublisher",
    ) -> None:
        self._db        = db
        self._storage   = storage_factory
        self._user      = user
        self._publisher = task_publisher

    async def ingest(self, file: UploadFile | None) -> DocumentUploadResponse:
        """
        Full ingestion pipeline. Returns the 202 body on success.
        Raises HTTPException with structured ErrorResponse on all error cases.
        """
        # ---- Step 1: Read file into memory (with size guard) -----------
        file_bytes = await self._read_upload(file)
        original_name = file.filename or "upload"

        # ---- Step 2: Validate type (magic bytes + extension) -----------
        if not _is_pdf(file_bytes[:8]):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ApiErrors.unsupported_file_type(
                    original_name, file.content_type or "unknown"
                ).model_dump(),
            )
        ext = _get_extension(original_name)
        if ext not in ALLOWED_EXTENSIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ApiErrors.unsupported_file_type(original_name, ext or "none").model_dump(),
            )

        safe_filename = _sanitize_filename(original_name)
        document_id = uuid.uuid4()

        # ---- Step 3: Resolve local user --------------------------------
        user = await get_or_create_user(self._db, self._user)

        logger.info(
            "Ingest start | user=%s doc=%s file=%s size=%d",
            user.id, document_id, safe_filename, len(file_bytes),
        )

        # ---- Step 4: Upload to S3 --------------------------------------
        storage = self._storage(user.id)
        try:
            stored = await storage.put_document(document_id, file_bytes, safe_filename)
        except Exception as exc:
            logger.exception("S3 upload failed | user=%s doc=%s", user.id, document_id)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=ApiErrors.storage_error(str(exc)).model_dump(),
            ) from exc

        # ---- Step 5: Persist + commit (compensate on failure) ----------
        doc = Document(
            id=document_id,
            user_id=user.id,
            file_name=safe_filename,
            file_url=stored.url,
            file_size=stored.size_bytes,
            storage_key=stored.key,
            status=DocumentStatus.UPLOADED.value,
        )
        try:
            self._db.add(doc)
            await self._db.commit()
        except SQLAlchemyError:
            logger.exception("Document insert failed — removing stored object | doc=%s", document_id)
            await self._db.rollback()
            await self._compensate(storage, stored.key)
            raise

        # ---- Step 6: Publish async processing task ---------------------
        try:
            await self._publisher.publish_processing_task(document_id=document_id)
        except Exception as exc:
            # Non-fatal: the row is committed; the sweep re-queues
            # documents still `uploaded` after REQUEUE_UPLOADED_AFTER_MINUTES.
            logger.error(
                "Failed to publish processing task | doc=%s error=%s", document_id, exc
            )

        return DocumentUploadResponse(
            document_id=document_id,
            file_url=stored.url,
            file_name=safe_filename,
            file_size=stored.size_bytes,
            status=DocumentStatus.UPLOADED,
            created_at=datetime.now(timezone.utc),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _read_upload(self, file: UploadFile | None) -> bytes:
        """
        Read the upload into memory with a hard size ceiling.
        At most MAX_FILE_SIZE_BYTES + 1 bytes are read.
        """
        if file is None or not file.filename:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ApiErrors.missing_file().model_dump(),
            )

        data = await file.read(MAX_FILE_SIZE_BYTES + 1)

        if not data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ApiErrors.missing_file().model_dump(),
            )

        if len(data) > MAX_FILE_SIZE_BYTES:
            size = file.size if file.size is not None else len(data)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=ApiErrors.file_too_large(size).model_dump(),
            )

        return data

    @staticmethod
    async def _compensate(storage: S3StorageService, key: str) -> None:
        try:
            await storage.delete_object(key)
        except Exception:
            logger.exception("Compensating delete failed — orphaned object | key=%s", key)


# ---------------------------------------------------------------------------
# Task publisher — thin abstraction over Celery apply_async()
# Injected into IngestionService so it can be mocked in tests.
# ---------------------------------------------------------------------------

class TaskPublisher:
    """
    Sends the document processing task to the Celery broker.
    Import is deferred so the broker connection is not required at module load time.
    """

    async def publish_processing_task(
        self,
        document_id: uuid.UUID,
        countdown:   int = 0,
    ) -> None:
        """
        Dispatch process_document.apply_async() to the Celery worker.
        Runs in a thread executor to avoid blocking the async event loop.
        """
        import asyncio
        from app.workers.tasks import process_document

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            lambda: process_document.apply_async(
                kwargs={"document_id": str(document_id)},
                countdown=countdown,
            ),
        )
        logger.info("Processing task published | doc=%s", document_id)
