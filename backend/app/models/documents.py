"""
SQLAlchemy ORM Models — Users, Documents, Summaries & Processing Logs

Using SQLAlchemy mapped classes (2.x style) for full async support.

Relationships:
    users 1 ── * documents 1 ── 0..1 summaries
                           1 ── *    processing_logs

The summary row shares its primary key with the document it summarises
(summaries.id == documents.id), so either identifier resolves the summary.
summaries.document_id is UNIQUE: a second summary for one document is a
constraint violation, not a duplicate row.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enumerations (stored as TEXT + CHECK constraint)
# ---------------------------------------------------------------------------

class DocumentStatus(str, enum.Enum):
    UPLOADED   = "uploaded"
    PROCESSING = "processing"
    COMPLETED  = "completed"
    ERROR      = "error"


class LogStage(str, enum.Enum):
    EXTRACTION         = "extraction"
    ANALYSIS           = "analysis"
    SUMMARY_GENERATION = "summary_generation"
    ERROR              = "error"


class LogStatus(str, enum.Enum):
    STARTED   = "started"
    COMPLETED = "completed"
    ERROR     = "error"


# ---------------------------------------------------------------------------
# User model — users
# ---------------------------------------------------------------------------

class User(Base):
    """
    Local profile for an identity issued by the auth provider.
    Created lazily the first time the caller uploads a document.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    external_id: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        unique=True,
        comment="Opaque subject id from the auth provider (JWT sub)",
    )
    email: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]]  = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    documents: Mapped[list["Document"]] = relationship(back_populates="user")

    def __repr__(self) -> str:
        return f"<User id={self.id} external_id={self.external_id!r}>"


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    One uploaded PDF and its processing state.

    State machine (status column), forward-only:
        uploaded   — file stored, processing not yet started
        processing — claimed by a worker (extraction + summarization)
        completed  — summary written
        error      — pipeline failed (see error_kind / error_message)

    There is no transition out of `error`; a new upload is required.
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded', 'processing', 'completed', 'error')",
            name="documents_status_check",
        ),
        Index("idx_documents_user_created", "user_id", "created_at"),
        Index("idx_documents_status_updated", "status", "updated_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_url: Mapped[str]  = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        comment="File size in bytes — validated against MAX_FILE_SIZE_BYTES",
    )
    storage_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Object key: users/<user_id>/documents/<doc_id>.pdf",
    )

    status: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DocumentStatus.UPLOADED.value,
        server_default=DocumentStatus.UPLOADED.value,
    )
    error_kind: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="ErrorKind value; populated only when status='error'",
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    user: Mapped[User] = relationship(back_populates="documents")
    summary: Mapped[Optional["Summary"]] = relationship(
        back_populates="document",
        uselist=False,
    )
    processing_logs: Mapped[list["ProcessingLog"]] = relationship(
        back_populates="document",
        order_by=lambda: [ProcessingLog.created_at, ProcessingLog.id],
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} user={self.user_id} "
            f"status={self.status} file={self.file_name!r}>"
        )


# ---------------------------------------------------------------------------
# Summary model — summaries
# ---------------------------------------------------------------------------

class Summary(Base):
    """AI-generated summary for exactly one document."""

    __tablename__ = "summaries"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        comment="Equal to document_id by convention",
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    title: Mapped[str]   = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    key_points: Mapped[list]   = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    action_items: Mapped[list] = mapped_column(JSONB, nullable=False, default=list, server_default="[]")
    tags: Mapped[list]         = mapped_column(JSONB, nullable=False, default=list, server_default="[]")

    word_count: Mapped[int]      = mapped_column(Integer, nullable=False, default=0)
    processing_time: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Whole seconds from claim to summary write",
    )
    ai_model: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    document: Mapped[Document] = relationship(back_populates="summary")

    def __repr__(self) -> str:
        return f"<Summary id={self.id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# ProcessingLog model — processing_logs
# ---------------------------------------------------------------------------

class ProcessingLog(Base):
    """
    Append-only trace of pipeline stage transitions.

    Rows are written by the processor in program order, each in its own
    committed transaction; (created_at, id) is the read order.
    """

    __tablename__ = "processing_logs"
    __table_args__ = (
        CheckConstraint(
            "stage IN ('extraction', 'analysis', 'summary_generation', 'error')",
            name="processing_logs_stage_check",
        ),
        CheckConstraint(
            "status IN ('started', 'completed', 'error')",
            name="processing_logs_status_check",
        ),
        Index("idx_processing_logs_document", "document_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    stage: Mapped[str]   = mapped_column(Text, nullable=False)
    status: Mapped[str]  = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")

    log_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata",                 # PostgreSQL column name stays 'metadata'
        JSONB,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    document: Mapped[Document] = relationship(back_populates="processing_logs")

    def __repr__(self) -> str:
        return (
            f"<ProcessingLog id={self.id} doc={self.document_id} "
            f"stage={self.stage} status={self.status}>"
        )
