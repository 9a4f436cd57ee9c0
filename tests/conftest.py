"""Shared test fixtures for the gradesheet test suite."""

from __future__ import annotations

import pytest

from gradesheet.config import ExtractorConfig


@pytest.fixture
def test_api_key() -> str:
    return "test-gemini-key"


@pytest.fixture
def extractor_config(test_api_key: str) -> ExtractorConfig:
    return ExtractorConfig(api_key=test_api_key, model="gemini-test")
