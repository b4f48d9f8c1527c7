"""
S3 Storage Service — User-Scoped

Every uploaded PDF is stored under:
    s3://<BUCKET>/users/<user_id>/documents/<document_id>.pdf

The key is built server-side from the authenticated user and the
server-generated document id; nothing from the client's filename reaches
the key. The client's filename is kept only as object metadata.

Works against AWS S3 or any S3-compatible endpoint (S3_ENDPOINT_URL).
The returned URL is what the extraction worker later fetches:
    STORAGE_PUBLIC_BASE_URL/<key>    when configured (CDN / MinIO / R2)
    https://<bucket>.s3.<region>.amazonaws.com/<key>    otherwise
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from uuid import UUID

import aioboto3
from botocore.exceptions import ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StoredObject:
    """Returned by put_document — everything the documents row needs."""
    key:          str
    url:          str
    bucket:       str
    size_bytes:   int
    content_type: str
    etag:         str


@dataclass
class UserStorageConfig:
    user_id: UUID
    bucket:  str = field(default_factory=lambda: settings.s3_bucket)

    def document_key(self, document_id: UUID) -> str:
        """Pattern: users/<user_id>/documents/<document_id>.pdf"""
        return f"users/{self.user_id}/documents/{document_id}.pdf"

    def owns(self, key: str) -> bool:
        return key.startswith(f"users/{self.user_id}/")


def public_url(bucket: str, key: str) -> str:
    if settings.storage_public_base_url:
        return f"{settings.storage_public_base_url.rstrip('/')}/{key}"
    return f"https://{bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"


# ---------------------------------------------------------------------------
# S3 Service
# ---------------------------------------------------------------------------

class S3StorageService:
    """
    Async S3 operations scoped to a single user.

    One instance is created per request (via FastAPI dependency) so the
    user config is immutably bound.
    """

    def __init__(self, user_config: UserStorageConfig) -> None:
        self._cfg = user_config
        self._session = aioboto3.Session()

    def _client(self):
        """Return a scoped async S3 client context manager."""
        kwargs: dict = {"region_name": settings.aws_region}
        if settings.s3_endpoint_url:
            kwargs["endpoint_url"] = settings.s3_endpoint_url
        if settings.aws_access_key_id:
            # Local dev only; production uses the task role / IRSA.
            kwargs["aws_access_key_id"] = settings.aws_access_key_id
            kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
        return self._session.client("s3", **kwargs)

    async def put_document(
        self,
        document_id: UUID,
        body:        bytes,
        file_name:   str,
    ) -> StoredObject:
        """Upload a PDF to the user's documents prefix."""
        key = self._cfg.document_key(document_id)

        async with self._client() as s3:
            resp = await s3.put_object(
                Bucket=self._cfg.bucket,
                Key=key,
                Body=body,
                ContentType=PDF_CONTENT_TYPE,
                Metadata={
                    "user_id":       str(self._cfg.user_id),
                    "document_id":   str(document_id),
                    "original_name": file_name.encode("ascii", "ignore").decode(),
                },
            )

        logger.info(
            "S3 upload ok | user=%s key=%s size=%d",
            self._cfg.user_id, key, len(body),
        )
        return StoredObject(
            key=key,
            url=public_url(self._cfg.bucket, key),
            bucket=self._cfg.bucket,
            size_bytes=len(body),
            content_type=PDF_CONTENT_TYPE,
            etag=resp.get("ETag", "").strip('"'),
        )

    async def delete_object(self, key: str) -> None:
        """Hard delete; used to compensate a failed documents insert."""
        if not self._cfg.owns(key):
            raise PermissionError(f"Key outside user prefix: {key}")
        async with self._client() as s3:
            try:
                await s3.delete_object(Bucket=self._cfg.bucket, Key=key)
            except ClientError as exc:
                code = exc.response["Error"]["Code"]
                if code in ("NoSuchKey", "404"):
                    return
                raise
        logger.warning("S3 delete | user=%s key=%s", self._cfg.user_id, key)
