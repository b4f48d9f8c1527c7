"""
Integration Tests — /api/v1 document routes
════════════════════════════════════════════
These tests exercise the FULL FastAPI routing stack, including:
  - Multipart form parsing
  - Dependency injection chain (auth overridden or real, S3/DB mocked)
  - Response status codes and body schemas
  - Header assertions (X-Document-ID, Location, X-Request-ID)
  - Caller-scoped read endpoints

What is mocked vs real
──────────────────────
  ✅ Real: FastAPI routing, request parsing, Pydantic schema validation,
           IngestionService, DocumentQueries, ORM → schema conversion
  🔲 Mock: JWT verification  (dependency_overrides → user_payload, except TestAuthRequired)
  🔲 Mock: PostgreSQL        (mock_db AsyncSession fixture)
  🔲 Mock: S3 storage        (storage_factory / mock_storage fixtures)
  🔲 Mock: Celery broker     (mock_publisher fixture)

How to run
──────────
  pytest -m integration backend/tests/integration/test_upload_api.py -v
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.models.documents import Document, ProcessingLog, Summary
from tests.conftest import db_result

API = "/api/v1"


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _document(status: str = "processing", **overrides) -> Document:
    created = _now() - timedelta(minutes=3)
    fields = dict(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        file_name="report.pdf",
        file_url="https://test-bucket.s3.amazonaws.com/users/u/documents/report.pdf",
        file_size=2048,
        storage_key="users/u/documents/report.pdf",
        status=status,
        error_kind=None,
        error_message=None,
        created_at=created,
        updated_at=created,
    )
    fields.update(overrides)
    return Document(**fields)


def _summary(doc: Document) -> Summary:
    summary = Summary(
        id=doc.id,
        document_id=doc.id,
        title="Financial Report Analysis",
        content="Revenue grew while costs fell.",
        key_points=["Revenue up", "Costs down"],
        action_items=["Review budget"],
        tags=["financial"],
        word_count=5,
        processing_time=4,
        ai_model="offline-fallback",
        created_at=_now(),
        updated_at=_now(),
    )
    summary.document = doc
    return summary


def _detail(response) -> dict:
    return response.json()["detail"]


@pytest_asyncio.fixture
async def authed_client(app_with_overrides):
    """Client that goes through real JWT verification (auth override removed)."""
    from app.auth.token import get_current_user
    app_with_overrides.dependency_overrides.pop(get_current_user, None)
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


# ─────────────────────────────────────────────────────────────────────────────
# Authentication
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
@pytest.mark.auth
class TestAuthRequired:

    async def test_missing_header_is_401(self, authed_client):
        response = await authed_client.get(f"{API}/documents")

        assert response.status_code == 401
        assert _detail(response)["error_code"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_garbage_token_is_401(self, authed_client):
        response = await authed_client.get(
            f"{API}/documents", headers={"Authorization": "Bearer garbage"},
        )

        assert response.status_code == 401

    async def test_valid_token_reaches_route(self, authed_client, make_token, test_jwks):
        from app.auth.token import _JWKS_CACHE
        _JWKS_CACHE.clear()

        with patch("app.auth.token._fetch_jwks", new=AsyncMock(return_value=test_jwks)):
            response = await authed_client.get(
                f"{API}/documents", headers={"Authorization": f"Bearer {make_token()}"},
            )

        assert response.status_code == 200
        assert response.json() == {"documents": [], "total": 0}


# ─────────────────────────────────────────────────────────────────────────────
# POST /upload
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestUploadEndpoint:

    async def test_upload_returns_202_with_headers(
        self, async_client, sample_pdf_bytes, mock_publisher
    ):
        response = await async_client.post(
            f"{API}/upload",
            files={"file": ("report.pdf", sample_pdf_bytes, "application/pdf")},
        )

        assert response.status_code == 202
        body = response.json()
        doc_id = body["document_id"]
        assert body["status"] == "uploaded"
        assert body["file_name"] == "report.pdf"
        assert body["file_size"] == len(sample_pdf_bytes)
        assert response.headers["X-Document-ID"] == doc_id
        assert response.headers["Location"] == f"{API}/summary-status?documentId={doc_id}"
        mock_publisher.publish_processing_task.assert_awaited_once_with(
            document_id=uuid.UUID(doc_id)
        )

    async def test_upload_without_file_is_400(self, async_client):
        response = await async_client.post(f"{API}/upload", data={"note": "no file here"})

        assert response.status_code == 400
        assert _detail(response)["error_code"] == "MISSING_FILE"

    async def test_upload_non_pdf_is_400(self, async_client, mock_storage):
        response = await async_client.post(
            f"{API}/upload",
            files={"file": ("report.pdf", b"just some text", "application/pdf")},
        )

        assert response.status_code == 400
        assert _detail(response)["error_code"] == "UNSUPPORTED_FILE_TYPE"
        mock_storage.put_document.assert_not_awaited()


# ─────────────────────────────────────────────────────────────────────────────
# GET /summary-status
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestSummaryStatusEndpoint:

    async def test_missing_document_id_is_400(self, async_client):
        response = await async_client.get(f"{API}/summary-status")

        assert response.status_code == 400
        assert _detail(response)["error_code"] == "INVALID_ID"

    async def test_malformed_document_id_is_400(self, async_client):
        response = await async_client.get(f"{API}/summary-status", params={"documentId": "abc"})

        assert response.status_code == 400
        assert _detail(response)["error_code"] == "INVALID_ID"

    async def test_unknown_document_is_404(self, async_client):
        response = await async_client.get(
            f"{API}/summary-status", params={"documentId": str(uuid.uuid4())},
        )

        assert response.status_code == 404
        assert _detail(response)["error_code"] == "DOCUMENT_NOT_FOUND"

    async def test_processing_document_has_null_summary(self, async_client, mock_db):
        doc = _document(status="processing")
        mock_db.execute = AsyncMock(return_value=db_result(first=doc))

        response = await async_client.get(
            f"{API}/summary-status", params={"documentId": str(doc.id)},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["document"]["id"] == str(doc.id)
        assert body["document"]["status"] == "processing"
        assert body["summary"] is None
        assert "timestamp" in body

    async def test_completed_document_includes_summary(self, async_client, mock_db):
        doc = _document(status="completed")
        _summary(doc)
        mock_db.execute = AsyncMock(return_value=db_result(first=doc))

        response = await async_client.get(
            f"{API}/summary-status", params={"documentId": str(doc.id)},
        )

        summary = response.json()["summary"]
        assert summary["id"] == str(doc.id)
        assert summary["title"] == "Financial Report Analysis"

    async def test_error_document_reports_error_kind(self, async_client, mock_db):
        doc = _document(
            status="error",
            error_kind="extraction_failure",
            error_message="Failed to fetch PDF: HTTP 404",
        )
        mock_db.execute = AsyncMock(return_value=db_result(first=doc))

        response = await async_client.get(
            f"{API}/summary-status", params={"documentId": str(doc.id)},
        )

        document = response.json()["document"]
        assert document["error_kind"] == "extraction_failure"
        assert response.json()["summary"] is None


# ─────────────────────────────────────────────────────────────────────────────
# GET /summary/{id}, /documents, /dashboard
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestReadEndpoints:

    async def test_summary_with_malformed_id_is_400(self, async_client):
        response = await async_client.get(f"{API}/summary/not-a-uuid")

        assert response.status_code == 400
        assert _detail(response)["error_code"] == "INVALID_ID"

    async def test_unknown_summary_is_404(self, async_client):
        response = await async_client.get(f"{API}/summary/{uuid.uuid4()}")

        assert response.status_code == 404
        assert _detail(response)["error_code"] == "SUMMARY_NOT_FOUND"

    async def test_summary_detail(self, async_client, mock_db):
        doc = _document(status="completed")
        summary = _summary(doc)
        mock_db.execute = AsyncMock(return_value=db_result(first=summary))

        response = await async_client.get(f"{API}/summary/{doc.id}")

        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["key_points"] == ["Revenue up", "Costs down"]
        assert body["summary"]["processing_time"] == 4
        assert body["document"]["file_name"] == "report.pdf"

    async def test_documents_list_includes_logs(self, async_client, mock_db):
        doc = _document(status="processing")
        doc.processing_logs = [
            ProcessingLog(
                id=1, document_id=doc.id, stage="extraction", status="started",
                message="Fetching PDF", log_metadata={"file_name": "report.pdf"},
                created_at=_now(),
            ),
        ]
        mock_db.execute = AsyncMock(return_value=db_result(all_=[doc]))

        response = await async_client.get(f"{API}/documents")

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        [item] = body["documents"]
        assert item["summary"] is None
        assert item["processing_logs"][0]["stage"] == "extraction"
        assert item["processing_logs"][0]["metadata"] == {"file_name": "report.pdf"}

    async def test_dashboard_aggregates(self, async_client, mock_db):
        doc = _document(status="completed")
        summary = _summary(doc)
        mock_db.execute = AsyncMock(side_effect=[
            db_result(one=(3, 420)),
            db_result(scalar=1),
            db_result(all_=[(summary, doc)]),
        ])

        response = await async_client.get(f"{API}/dashboard")

        assert response.status_code == 200
        body = response.json()
        assert body["total_summaries"] == 3
        assert body["words_saved"] == 420
        assert body["processing_count"] == 1
        assert body["recent_summaries"][0]["file_name"] == "report.pdf"


# ─────────────────────────────────────────────────────────────────────────────
# Health + middleware
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.integration
class TestHealthAndMiddleware:

    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "pdf-summary-api"}

    async def test_request_id_echoed(self, async_client):
        response = await async_client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    async def test_request_id_generated(self, async_client):
        response = await async_client.get("/health")

        assert response.headers["X-Request-ID"]

    async def test_ready_reports_database_down(self, async_client):
        with patch(
            "app.main.check_db_health",
            AsyncMock(return_value={"status": "error", "error": "refused"}),
        ):
            response = await async_client.get("/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"

    async def test_unhandled_error_uses_envelope_with_request_id(self):
        from app.main import create_app

        app = create_app()

        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/boom", headers={"X-Request-ID": "req-500"})

        body = response.json()
        assert response.status_code == 500
        assert body["error_code"] == "INTERNAL_ERROR"
        assert body["request_id"] == "req-500"
        assert "kaboom" not in response.text
