"""Unit test conftest — no network or Gemini credentials required."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

# Smallest valid PNG signature + IHDR start; the model is mocked so content is irrelevant
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01"


class SleepRecorder:
    """Async stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_genai_client() -> Callable[..., MagicMock]:
    """Build a fake genai.Client whose generate_content yields the given effects in order.

    Each effect is a response text (str or None) or an exception to raise.
    """

    def _make(*effects: Any) -> MagicMock:
        side_effects: list[Any] = []
        for eff in effects:
            if isinstance(eff, BaseException):
                side_effects.append(eff)
            else:
                response = MagicMock()
                response.text = eff
                side_effects.append(response)

        client = MagicMock()
        client.aio.models.generate_content = AsyncMock(side_effect=side_effects)
        return client

    return _make
