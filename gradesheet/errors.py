"""Error taxonomy for the extraction pipeline.

Every stage raises an ``ExtractionError`` subclass. The pipeline turns those
into per-file ``FileFailure`` values, except ``ConfigurationError`` which is
raised before a batch starts and blocks the whole run.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    IO = "io"
    INVALID_INPUT = "invalid_input"
    TRANSIENT_REQUEST = "transient_request"
    FATAL_REQUEST = "fatal_request"
    CONTENT = "content"
    SCHEMA_VIOLATION = "schema_violation"
    CANCELLED = "cancelled"


class ExtractionError(Exception):
    kind: ErrorKind = ErrorKind.FATAL_REQUEST

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.kind.value} (HTTP {self.status}): {self.message}"
        return f"{self.kind.value}: {self.message}"


class ConfigurationError(ExtractionError):
    kind = ErrorKind.CONFIGURATION


class SourceReadError(ExtractionError):
    """The source image bytes could not be read."""

    kind = ErrorKind.IO


class InvalidImageError(ExtractionError):
    """Unsupported MIME type or oversized image."""

    kind = ErrorKind.INVALID_INPUT


class TransientRequestError(ExtractionError):
    """Rate-limit or server error that persisted through every attempt."""

    kind = ErrorKind.TRANSIENT_REQUEST


class FatalRequestError(ExtractionError):
    """Non-retryable HTTP status, or a transport-level failure."""

    kind = ErrorKind.FATAL_REQUEST


class ContentError(ExtractionError):
    """The call succeeded but carried no usable text payload."""

    kind = ErrorKind.CONTENT


class SchemaViolation(ExtractionError):
    kind = ErrorKind.SCHEMA_VIOLATION


class BatchCancelledError(ExtractionError):
    """The batch was cancelled before this file started."""

    kind = ErrorKind.CANCELLED
