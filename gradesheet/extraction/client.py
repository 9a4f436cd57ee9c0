"""Gemini client for structured grade-sheet extraction.

One call per image: inline image part + instructions, JSON-array response
schema derived from the ``ColumnSpec``. Retries follow ``RetryPolicy``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from gradesheet.config import ExtractorConfig
from gradesheet.errors import (
    ContentError,
    FatalRequestError,
    SchemaViolation,
    TransientRequestError,
)
from gradesheet.extraction.columns import ColumnSpec
from gradesheet.extraction.prompt import build_instructions, build_response_schema
from gradesheet.extraction.retry import Phase, RetryPolicy, RetryState
from gradesheet.extraction.types import EncodedImage

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def build_genai_client(cfg: ExtractorConfig) -> genai.Client:
    """Gemini client with the configured endpoint and a per-attempt timeout."""
    http_options = types.HttpOptions(
        timeout=int(cfg.request_timeout_seconds * 1000),  # milliseconds
        base_url=cfg.base_url,
    )
    return genai.Client(api_key=cfg.api_key, http_options=http_options)


def strip_json_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    return cleaned.strip()


def _reject_constant(name: str) -> Any:
    raise SchemaViolation(f"Response contains non-finite number {name}")


def parse_payload(text: str) -> list[Any]:
    """Parse the model's text payload; the top level must be a JSON array."""
    try:
        data = json.loads(strip_json_fences(text), parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise SchemaViolation(f"Response is not valid JSON: {e}") from e
    if not isinstance(data, list):
        raise SchemaViolation(
            f"Expected a JSON array at the top level, got {type(data).__name__}"
        )
    return data


class ExtractionClient:
    def __init__(
        self,
        *,
        cfg: ExtractorConfig,
        genai_client: genai.Client | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._cfg = cfg
        self._client = genai_client if genai_client is not None else build_genai_client(cfg)
        self._policy = RetryPolicy(
            max_attempts=cfg.max_attempts, base_seconds=cfg.retry_base_seconds
        )
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    async def extract(self, image: EncodedImage, columns: ColumnSpec) -> list[Any]:
        """Return the raw JSON array the model produced for one image.

        Raises:
            TransientRequestError: 429/5xx on every attempt.
            FatalRequestError: Any other HTTP error, or a transport failure.
            ContentError: Success status but no text payload.
            SchemaViolation: Payload is not a JSON array.
        """
        contents: list[Any] = [
            types.Part.from_bytes(data=image.raw_bytes(), mime_type=image.mime_type),
            build_instructions(columns),
        ]
        config = {
            "response_mime_type": "application/json",
            "response_schema": build_response_schema(columns),
        }

        response = await self._generate_with_retries(contents, config)

        text = getattr(response, "text", None)
        if not text or not text.strip():
            raise ContentError("Model response contained no text payload")
        return parse_payload(text)

    async def _generate_with_retries(self, contents: list[Any], config: dict[str, Any]) -> Any:
        state = self._policy.start()
        while True:
            try:
                response = await self._client.aio.models.generate_content(
                    model=self._cfg.model,
                    contents=contents,
                    config=config,
                )
            except genai_errors.APIError as e:
                status = e.code if isinstance(e.code, int) else None
                message = e.message or str(e)
                if status is None:
                    state = self._policy.on_transport_error(state, message)
                else:
                    state = self._policy.on_status(state, status, message)
            except Exception as e:
                state = self._policy.on_transport_error(state, f"{type(e).__name__}: {e}")
            else:
                state = self._policy.on_success(state)
                return response

            self._raise_if_terminal(state)
            logger.warning(
                "Extraction attempt %d/%d failed with HTTP %s; retrying in %.2fs",
                state.attempt,
                self._policy.max_attempts,
                state.last_status,
                state.delay_seconds,
            )
            await self._sleep(state.delay_seconds)

    def _raise_if_terminal(self, state: RetryState) -> None:
        if state.phase is Phase.FAILED_TRANSIENT:
            raise TransientRequestError(
                f"Gave up after {state.attempt + 1} attempts: {state.last_error}",
                status=state.last_status,
            )
        if state.phase is Phase.FAILED_FATAL:
            if state.last_status is None:
                raise FatalRequestError(f"Transport failure: {state.last_error}")
            raise FatalRequestError(state.last_error or "Request failed", status=state.last_status)
