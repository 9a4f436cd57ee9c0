"""Validate the model's JSON array and map it onto ``ExtractionRecord``s.

Validation is all-or-nothing per file: one malformed element rejects the
whole batch for that image.
"""

from __future__ import annotations

import math
from typing import Any

from gradesheet.errors import SchemaViolation
from gradesheet.extraction.columns import NAME_KEY, SCORE_KEY, ColumnSpec
from gradesheet.extraction.types import ExtractionRecord


def _coerce(value: Any) -> str | None:
    # bool is an int subclass but "True" is not a score
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, int):
        return str(value)
    # 1e999 parses to inf
    if isinstance(value, float) and math.isfinite(value):
        return str(value)
    return None


def normalize(raw: list[Any], columns: ColumnSpec) -> list[ExtractionRecord]:
    if not isinstance(raw, list):
        raise SchemaViolation(f"Expected a list of records, got {type(raw).__name__}")

    records: list[ExtractionRecord] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise SchemaViolation(f"Record {i} is {type(item).__name__}, expected an object")

        mandatory: dict[str, str] = {}
        for key in (NAME_KEY, SCORE_KEY):
            if key not in item:
                raise SchemaViolation(f"Record {i} is missing required field '{key}'")
            value = _coerce(item[key])
            if value is None:
                raise SchemaViolation(
                    f"Record {i} field '{key}' is not a string ({type(item[key]).__name__})"
                )
            mandatory[key] = value

        custom: dict[str, str] = {}
        for key, label in columns.custom_keys:
            if key not in item:
                continue
            if item[key] is None:
                custom[label] = ""
                continue
            value = _coerce(item[key])
            if value is None:
                raise SchemaViolation(
                    f"Record {i} field '{key}' is not a string ({type(item[key]).__name__})"
                )
            custom[label] = value

        records.append(
            ExtractionRecord(
                student_name=mandatory[NAME_KEY],
                score=mandatory[SCORE_KEY],
                custom_fields=custom,
            )
        )
    return records
