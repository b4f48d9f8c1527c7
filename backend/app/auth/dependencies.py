"""
Composed FastAPI Dependencies

Combines auth + DB session + storage + job publisher into injectable
objects. Route handlers import from here — never from auth/token,
db/session or storage/s3 directly.

This is the single wiring point for the request context, and the set of
dependencies tests override.
"""

from __future__ import annotations

from typing import Annotated, AsyncGenerator, Callable
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.token import TokenPayload, get_current_user
from app.db.session import get_db
from app.services.ingestion import TaskPublisher
from app.storage.s3 import S3StorageService, UserStorageConfig

StorageFactory = Callable[[UUID], S3StorageService]


# ---------------------------------------------------------------------------
# 1. Request-scoped DB session
# ---------------------------------------------------------------------------

async def get_request_db() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_db():
        yield session


# ---------------------------------------------------------------------------
# 2. User-scoped S3 service
#    The local user id is only known after the lazy users upsert, so routes
#    receive a factory rather than a bound service.
# ---------------------------------------------------------------------------

def get_storage_factory() -> StorageFactory:
    def _build(user_id: UUID) -> S3StorageService:
        return S3StorageService(user_config=UserStorageConfig(user_id=user_id))
    return _build


# ---------------------------------------------------------------------------
# 3. Processing job publisher
# ---------------------------------------------------------------------------

def get_task_publisher() -> TaskPublisher:
    return TaskPublisher()


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

RequestDB      = Annotated[AsyncSession,   Depends(get_request_db)]
UserStorage    = Annotated[StorageFactory, Depends(get_storage_factory)]
Publisher      = Annotated[TaskPublisher,  Depends(get_task_publisher)]
CurrentUser    = Annotated[TokenPayload,   Depends(get_current_user)]
