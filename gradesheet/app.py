"""FastAPI entry point for the grade sheet extractor.

Endpoints:
- POST /v1/extract      — Extract (name, score, custom fields) from uploaded images
- POST /v1/extract.csv  — Same batch, rendered as CSV
- GET  /liveness        — Health check
- GET  /readiness       — Configuration check (credential present)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from gradesheet.config import (
    GRADESHEET_CORS_ALLOW_CREDENTIALS,
    GRADESHEET_CORS_ALLOW_HEADERS,
    GRADESHEET_CORS_ALLOW_METHODS,
    GRADESHEET_CORS_ALLOW_ORIGINS,
    GRADESHEET_MAX_IMAGE_BYTES,
    GRADESHEET_MAX_UPLOAD_FILES,
    ExtractorConfig,
)
from gradesheet.errors import ConfigurationError
from gradesheet.export import render_csv
from gradesheet.extraction.client import ExtractionClient
from gradesheet.extraction.columns import ColumnSpec
from gradesheet.extraction.pipeline import ExtractionPipeline
from gradesheet.extraction.types import FileFailure, FileOutcome, SourceImage
from gradesheet.logging_config import generate_request_id, request_id_var, setup_logging
from gradesheet.models import (
    ExtractResponse,
    FileResult,
    HealthResponse,
    RecordResult,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    logger.info("Grade sheet extractor started")
    yield
    logger.info("Grade sheet extractor stopped")


app = FastAPI(
    title="Grade Sheet Extractor API",
    version="0.1.0",
    lifespan=lifespan,
)

# -- Rate limiting ------------------------------------------------------------

limiter = Limiter(key_func=get_remote_address, default_limits=["60/minute"])
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"})


@app.exception_handler(ConfigurationError)
async def _configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error("Extraction unavailable: %s", exc.message)
    return JSONResponse(
        status_code=503,
        content={"detail": exc.message, "error_kind": exc.kind.value},
    )


if GRADESHEET_CORS_ALLOW_CREDENTIALS and "*" in GRADESHEET_CORS_ALLOW_ORIGINS:
    raise RuntimeError("Invalid CORS config: wildcard origin cannot be combined with credentials=true")

app.add_middleware(
    CORSMiddleware,
    allow_origins=GRADESHEET_CORS_ALLOW_ORIGINS,
    allow_credentials=GRADESHEET_CORS_ALLOW_CREDENTIALS,
    allow_methods=GRADESHEET_CORS_ALLOW_METHODS,
    allow_headers=GRADESHEET_CORS_ALLOW_HEADERS,
)


# -- Body size limit ----------------------------------------------------------

# Room for a full batch of max-size images plus multipart overhead
_MAX_BODY_BYTES = GRADESHEET_MAX_UPLOAD_FILES * GRADESHEET_MAX_IMAGE_BYTES + 1024 * 1024


@app.middleware("http")
async def body_size_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests with bodies exceeding the size limit."""
    content_length = request.headers.get("content-length")
    if content_length is not None:
        try:
            declared = int(content_length)
        except ValueError:
            return JSONResponse(status_code=400, content={"detail": "Invalid Content-Length header"})
        if declared > _MAX_BODY_BYTES:
            return JSONResponse(status_code=413, content={"detail": "Request body too large"})
    return await call_next(request)


# -- Request ID middleware ----------------------------------------------------


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Tag the request, and every log line emitted while serving it, with an id."""
    request_id = request.headers.get("x-request-id") or generate_request_id()
    request.state.request_id = request_id
    token = request_id_var.set(request_id)
    try:
        response = await call_next(request)
    finally:
        request_id_var.reset(token)
    response.headers["x-request-id"] = request_id
    return response


# -- Dependencies -------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_config() -> ExtractorConfig:
    """Resolved once; a ConfigurationError is not cached, so a fixed env recovers."""
    return ExtractorConfig.from_env()


@lru_cache(maxsize=1)
def _get_client() -> ExtractionClient:
    return ExtractionClient(cfg=_get_config())


def get_pipeline() -> ExtractionPipeline:
    """Dependency: a fresh pipeline (own status string) sharing the cached client."""
    return ExtractionPipeline(cfg=_get_config(), client=_get_client())


# -- Health -------------------------------------------------------------------


@app.get("/liveness", response_model=HealthResponse)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@app.get("/readiness", response_model=HealthResponse)
async def readiness() -> HealthResponse:
    try:
        _get_config()
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=e.message) from e
    return HealthResponse(status="ok")


# -- Extraction ---------------------------------------------------------------


async def _run_batch(
    pipeline: ExtractionPipeline,
    files: list[UploadFile],
    columns: list[str] | None,
) -> tuple[ColumnSpec, list[FileOutcome]]:
    if not files:
        raise HTTPException(status_code=400, detail="At least one image file is required")
    if len(files) > GRADESHEET_MAX_UPLOAD_FILES:
        raise HTTPException(
            status_code=400,
            detail=f"Too many files: {len(files)} (max {GRADESHEET_MAX_UPLOAD_FILES})",
        )

    # Blank form fields are common from HTML forms; drop them instead of failing
    spec = ColumnSpec.build(c for c in (columns or []) if c.strip())

    images: list[SourceImage] = []
    for i, f in enumerate(files):
        data = await f.read()
        images.append(
            SourceImage.from_bytes(
                f.filename or f"image-{i + 1}",
                data,
                mime_type=f.content_type or "application/octet-stream",
            )
        )

    outcomes = await pipeline.run(images, spec)
    return spec, outcomes


def _to_file_result(outcome: FileOutcome) -> FileResult:
    if isinstance(outcome, FileFailure):
        return FileResult(
            file_name=outcome.source_file_name,
            status="error",
            error_kind=outcome.error_kind.value,
            error_message=outcome.message,
            http_status=outcome.status,
        )
    return FileResult(
        file_name=outcome.source_file_name,
        status="success",
        records=[
            RecordResult(
                student_name=r.student_name,
                score=r.score,
                custom_fields=dict(r.custom_fields),
            )
            for r in outcome.records
        ],
    )


@app.post("/v1/extract", response_model=ExtractResponse)
@limiter.limit("10/minute")
async def extract(
    request: Request,
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    files: Annotated[list[UploadFile], File(description="Score sheet images (JPEG/PNG)")],
    columns: Annotated[list[str] | None, Form(description="Custom column labels")] = None,
) -> ExtractResponse:
    """Extract every (name, score) pair from each image, one outcome per file."""
    spec, outcomes = await _run_batch(pipeline, files, columns)
    succeeded = sum(1 for o in outcomes if o.ok)
    return ExtractResponse(
        columns=list(spec.labels),
        outcomes=[_to_file_result(o) for o in outcomes],
        succeeded=succeeded,
        failed=len(outcomes) - succeeded,
        status=pipeline.status,
    )


@app.post("/v1/extract.csv")
@limiter.limit("10/minute")
async def extract_csv(
    request: Request,
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    files: Annotated[list[UploadFile], File(description="Score sheet images (JPEG/PNG)")],
    columns: Annotated[list[str] | None, Form(description="Custom column labels")] = None,
) -> Response:
    """Extract and return the results as a CSV download."""
    spec, outcomes = await _run_batch(pipeline, files, columns)
    return Response(
        content=render_csv(outcomes, spec),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="grades.csv"'},
    )
