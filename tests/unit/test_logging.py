"""Unit tests for logging setup."""

from __future__ import annotations

import json
import logging

import pytest

from gradesheet.logging_config import (
    NO_REQUEST,
    GCPJsonFormatter,
    RequestIdFilter,
    generate_request_id,
    request_id_var,
    setup_logging,
)


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_plain_text_locally(self, monkeypatch):
        monkeypatch.delenv("K_SERVICE", raising=False)
        setup_logging(level="debug")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0].formatter, GCPJsonFormatter)

    def test_json_on_cloud_run(self, monkeypatch):
        monkeypatch.setenv("K_SERVICE", "gradesheet")
        setup_logging()
        assert isinstance(logging.getLogger().handlers[0].formatter, GCPJsonFormatter)

    def test_severity_field(self):
        formatter = GCPJsonFormatter(fmt="%(message)s %(levelname)s")
        record = logging.LogRecord("gradesheet", logging.WARNING, __file__, 1, "retrying", None, None)
        payload = json.loads(formatter.format(record))
        assert payload["severity"] == "WARNING"
        assert "levelname" not in payload
        assert payload["message"] == "retrying"


def test_request_id_shape():
    rid = generate_request_id()
    assert len(rid) == 16
    assert rid != generate_request_id()


class TestRequestIdFilter:
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord("gradesheet", logging.INFO, __file__, 1, "hello", None, None)

    def test_outside_a_request(self):
        record = self._record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == NO_REQUEST

    def test_stamps_current_request(self):
        token = request_id_var.set("abc123")
        try:
            record = self._record()
            RequestIdFilter().filter(record)
        finally:
            request_id_var.reset(token)
        assert record.request_id == "abc123"

    def test_request_id_in_json_output(self):
        setup_logging(json_output=True)
        handler = logging.getLogger().handlers[0]
        record = self._record()
        token = request_id_var.set("abc123")
        try:
            handler.filter(record)
        finally:
            request_id_var.reset(token)
        payload = json.loads(handler.format(record))
        assert payload["request_id"] == "abc123"
        assert payload["logger"] == "gradesheet"
