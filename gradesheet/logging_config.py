"""Logging for the extraction service and CLI.

Every record carries ``request_id``: the id of the HTTP batch being served,
or ``"-"`` outside a request (CLI runs, startup). On Cloud Run the output is
JSON with Cloud Logging severities; locally it is plain text.
"""

from __future__ import annotations

import contextvars
import logging
import os
import uuid

from pythonjsonlogger.json import JsonFormatter

NO_REQUEST = "-"

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar(
    "gradesheet_request_id", default=NO_REQUEST
)

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s:%(lineno)d  %(message)s"
_JSON_FIELDS = "%(message)s %(name)s %(request_id)s %(funcName)s %(lineno)d"


class RequestIdFilter(logging.Filter):
    """Stamp the current request id onto each record; never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


class GCPJsonFormatter(JsonFormatter):
    """JSON lines with ``severity`` in place of ``levelname``."""

    def add_fields(
        self,
        log_record: dict[str, object],
        record: logging.LogRecord,
        message_dict: dict[str, object],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        # Python's level names are already valid Cloud Logging severities
        log_record["severity"] = record.levelname
        log_record.pop("levelname", None)


def setup_logging(*, level: str = "INFO", json_output: bool | None = None) -> None:
    if json_output is None:
        json_output = bool(os.getenv("K_SERVICE"))

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())
    if json_output:
        handler.setFormatter(
            GCPJsonFormatter(fmt=_JSON_FIELDS, rename_fields={"name": "logger"})
        )
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # google-genai's httpx transport logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


def generate_request_id() -> str:
    return uuid.uuid4().hex[:16]
