"""Pydantic response schemas for the extraction API."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

# -- Extraction ---------------------------------------------------------------


class RecordResult(BaseModel):
    student_name: str
    score: str
    custom_fields: dict[str, str] = Field(
        default_factory=dict, description="Custom column values keyed by display label"
    )


class FileResult(BaseModel):
    file_name: str
    status: Literal["success", "error"]
    records: list[RecordResult] = Field(default_factory=list)
    error_kind: str | None = None
    error_message: str | None = None
    http_status: int | None = None  # upstream model endpoint status, when known


class ExtractResponse(BaseModel):
    columns: list[str]
    outcomes: list[FileResult]
    succeeded: int
    failed: int
    status: str


# -- Health -------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    error: str | None = None
