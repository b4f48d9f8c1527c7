"""
PDF Summary Service: HTTP entry point.

The API process only accepts uploads and serves reads. It stores the PDF,
inserts the document row and publishes a job; extraction and summarization
happen in the Celery worker (app.workers.tasks).

    /api/v1/...   document routes, bearer JWT required
    /health       liveness, no dependencies touched
    /ready        readiness, fails with 503 while PostgreSQL is unreachable

Every response carries X-Request-ID (echoed from the request or generated),
and the same id is stamped on the request log line and on error envelopes.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.documents import router as documents_router
from app.core.config import settings
from app.db.session import check_db_health, init_models
from app.schemas.documents import ApiErrors, ErrorDetail, ErrorResponse

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _request_id(request: Request) -> str:
    return (
        getattr(request.state, "request_id", None)
        or request.headers.get(REQUEST_ID_HEADER)
        or str(uuid.uuid4())
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Refuse to start without a database; dispose the pool on the way out."""
    db_health = await check_db_health()
    if db_health["status"] != "ok":
        logger.critical("Database unreachable at startup | detail=%s", db_health)
        raise RuntimeError(f"DB unavailable: {db_health}")

    if settings.db_create_tables:
        await init_models()

    logger.info(
        "API ready | env=%s bucket=%s issuer=%s summarizer=%s",
        settings.app_env,
        settings.s3_bucket,
        settings.auth_issuer or "-",
        settings.summarizer_model if settings.summarizer_api_key else "offline",
    )

    yield

    from app.db.session import engine
    await engine.dispose()
    logger.info("API stopped")


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

def _install_middleware(app: FastAPI) -> None:
    # Last added runs first.
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials="*" not in settings.cors_allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
        expose_headers=[REQUEST_ID_HEADER, "X-Document-ID", "Location"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        started = time.perf_counter()

        response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        logger.info(
            "%s %s -> %d in %.1fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            request.state.request_id,
        )
        return response


# ---------------------------------------------------------------------------
# Error envelopes
# ---------------------------------------------------------------------------

def _install_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(RequestValidationError)
    async def on_validation_error(request: Request, exc: RequestValidationError):
        body = ErrorResponse(
            error_code="VALIDATION_ERROR",
            message="Request validation failed.",
            details=[
                ErrorDetail(
                    field=".".join(str(part) for part in err["loc"]),
                    message=err["msg"],
                    code="VALIDATION_ERROR",
                )
                for err in exc.errors()
            ],
            request_id=_request_id(request),
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def on_unhandled_error(request: Request, exc: Exception):
        request_id = _request_id(request)
        logger.exception(
            "Unhandled error | %s %s request_id=%s",
            request.method, request.url.path, request_id,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ApiErrors.internal_error(request_id).model_dump(mode="json"),
            headers={REQUEST_ID_HEADER: request_id},
        )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _install_routes(app: FastAPI) -> None:
    app.include_router(documents_router, prefix="/api/v1")

    @app.get("/health", tags=["Operations"], summary="Process is up")
    async def health() -> dict:
        return {"status": "ok", "service": "pdf-summary-api"}

    @app.get("/ready", tags=["Operations"], summary="Database is reachable")
    async def ready() -> JSONResponse:
        db = await check_db_health()
        is_ready = db["status"] == "ok"
        return JSONResponse(
            status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "ready" if is_ready else "not_ready", "database": db},
        )


def create_app() -> FastAPI:
    docs = not settings.is_production
    app = FastAPI(
        title="PDF Summary Service",
        description=(
            "Upload a PDF and poll for its summary, key points, action items "
            "and tags. Processing runs asynchronously after the upload returns."
        ),
        version="1.0.0",
        docs_url="/api/docs" if docs else None,
        redoc_url="/api/redoc" if docs else None,
        openapi_url="/api/openapi.json" if docs else None,
        lifespan=lifespan,
    )
    _install_middleware(app)
    _install_error_handlers(app)
    _install_routes(app)
    return app


configure_logging()
app = create_app()
