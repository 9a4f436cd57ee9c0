"""CSV export of extraction outcomes.

One row per extracted record, one row per failed file. A file that succeeded
with zero records contributes no rows.
"""

from __future__ import annotations

import csv
import io
from collections.abc import Iterator, Sequence

from gradesheet.extraction.columns import ColumnSpec
from gradesheet.extraction.types import FileFailure, FileOutcome

FILE_HEADER = "File Name"
STATUS_HEADER = "Status"
ERROR_HEADER = "Error"

_BOM = "\ufeff"

# Spreadsheet apps evaluate cells starting with these as formulas
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def _safe_cell(value: str) -> str:
    return "'" + value if value.startswith(_FORMULA_PREFIXES) else value


def header(columns: ColumnSpec) -> list[str]:
    return [FILE_HEADER, *columns.labels, STATUS_HEADER, ERROR_HEADER]


def outcome_rows(outcomes: Sequence[FileOutcome], columns: ColumnSpec) -> Iterator[list[str]]:
    """Data rows; file names and extracted values are escaped against formula injection."""
    blank = [""] * len(columns.labels)
    for outcome in outcomes:
        name = _safe_cell(outcome.source_file_name)
        if isinstance(outcome, FileFailure):
            yield [
                name,
                *blank,
                "error",
                f"{outcome.error_kind.value}: {outcome.message}",
            ]
            continue
        for record in outcome.records:
            yield [name, *(_safe_cell(v) for v in columns.row(record)), "success", ""]


def render_csv(outcomes: Sequence[FileOutcome], columns: ColumnSpec, *, bom: bool = True) -> str:
    """CSV text with a header row; the BOM lets spreadsheet apps detect UTF-8."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(header(columns))
    writer.writerows(outcome_rows(outcomes, columns))
    text = buf.getvalue()
    return _BOM + text if bom else text
