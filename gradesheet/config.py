"""Environment-variable-driven configuration for the grade sheet extractor.

Module-level values are process-wide defaults. The extraction pipeline never
reads them directly: it receives an ``ExtractorConfig`` built once at startup.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from gradesheet.errors import ConfigurationError


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


# -- Model --------------------------------------------------------------------
GRADESHEET_MODEL: str = os.getenv("GRADESHEET_MODEL", "gemini-2.5-flash")
GRADESHEET_MAX_ATTEMPTS: int = 3
GRADESHEET_RETRY_BASE_SECONDS: float = 1.0
GRADESHEET_REQUEST_TIMEOUT_SECONDS: float = 60.0

# -- Input --------------------------------------------------------------------
GRADESHEET_MAX_IMAGE_BYTES: int = 4 * 1024 * 1024
GRADESHEET_ALLOWED_MIME_TYPES: tuple[str, ...] = ("image/jpeg", "image/png", "image/webp")

# -- CORS ---------------------------------------------------------------------
GRADESHEET_CORS_ALLOW_ORIGINS: list[str] = _env_csv(
    "GRADESHEET_CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://localhost:5173",
)
GRADESHEET_CORS_ALLOW_METHODS: list[str] = _env_csv(
    "GRADESHEET_CORS_ALLOW_METHODS",
    "GET,POST,OPTIONS",
)
GRADESHEET_CORS_ALLOW_HEADERS: list[str] = _env_csv(
    "GRADESHEET_CORS_ALLOW_HEADERS",
    "Content-Type,X-Request-Id",
)
GRADESHEET_CORS_ALLOW_CREDENTIALS: bool = _env_bool("GRADESHEET_CORS_ALLOW_CREDENTIALS", False)

# -- Server -------------------------------------------------------------------
GRADESHEET_MAX_UPLOAD_FILES: int = _env_int("GRADESHEET_MAX_UPLOAD_FILES", 20)
IS_CLOUD_RUN: bool = bool(os.getenv("K_SERVICE"))


@dataclass(frozen=True)
class ExtractorConfig:
    api_key: str
    model: str = GRADESHEET_MODEL
    base_url: str | None = None  # None = SDK default endpoint

    # Retry / timeouts
    max_attempts: int = GRADESHEET_MAX_ATTEMPTS
    retry_base_seconds: float = GRADESHEET_RETRY_BASE_SECONDS
    request_timeout_seconds: float = GRADESHEET_REQUEST_TIMEOUT_SECONDS

    # Input limits
    max_image_bytes: int = GRADESHEET_MAX_IMAGE_BYTES
    allowed_mime_types: tuple[str, ...] = GRADESHEET_ALLOWED_MIME_TYPES

    @classmethod
    def from_env(cls) -> ExtractorConfig:
        # API_KEY is what the browser build read; GEMINI_API_KEY wins when both are set
        api_key = (os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY") or "").strip()

        mime_types = tuple(
            m.lower()
            for m in _env_csv("GRADESHEET_ALLOWED_MIME_TYPES", ",".join(GRADESHEET_ALLOWED_MIME_TYPES))
        )

        cfg = cls(
            api_key=api_key,
            model=os.getenv("GRADESHEET_MODEL", GRADESHEET_MODEL),
            base_url=os.getenv("GEMINI_BASE_URL") or None,
            max_attempts=_env_int("GRADESHEET_MAX_ATTEMPTS", GRADESHEET_MAX_ATTEMPTS),
            retry_base_seconds=_env_float("GRADESHEET_RETRY_BASE_SECONDS", GRADESHEET_RETRY_BASE_SECONDS),
            request_timeout_seconds=_env_float(
                "GRADESHEET_REQUEST_TIMEOUT_SECONDS", GRADESHEET_REQUEST_TIMEOUT_SECONDS
            ),
            max_image_bytes=_env_int("GRADESHEET_MAX_IMAGE_BYTES", GRADESHEET_MAX_IMAGE_BYTES),
            allowed_mime_types=mime_types,
        )
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if not self.api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY not set. Export it (or API_KEY) before running extraction."
            )
        if not self.model:
            raise ConfigurationError("GRADESHEET_MODEL must not be empty")
        if self.max_attempts < 1:
            raise ConfigurationError("GRADESHEET_MAX_ATTEMPTS must be >= 1")
        if self.retry_base_seconds < 0:
            raise ConfigurationError("GRADESHEET_RETRY_BASE_SECONDS must be >= 0")
        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("GRADESHEET_REQUEST_TIMEOUT_SECONDS must be > 0")
        if self.max_image_bytes < 1:
            raise ConfigurationError("GRADESHEET_MAX_IMAGE_BYTES must be >= 1")
        if not self.allowed_mime_types:
            raise ConfigurationError("GRADESHEET_ALLOWED_MIME_TYPES was set but parsed as empty")
