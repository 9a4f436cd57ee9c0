"""Instruction text and response schema sent with every extraction request."""

from __future__ import annotations

from typing import Any

from gradesheet.extraction.columns import NAME_KEY, SCORE_KEY, ColumnSpec

_INSTRUCTIONS = """\
You are an expert at reading test papers and grade sheets.
From this image, extract EVERY student record you can find, not only the first one.

Requirements:
1. Extract all students if the image lists more than one.
2. Copy names exactly as written, keeping every character and diacritic of the
   original script. Do not transliterate, translate or drop characters.
3. Return the score as a single value without rounding. If the sheet clearly uses
   a scale other than 10 points (for example 100 points or 20 points), convert the
   score to the 10-point scale.
4. If a value is unreadable, return an empty string for it.
{custom_block}
Output:
- Return the result as ONE JSON ARRAY of objects following the provided schema.
- If no student is found, return an empty array: []
- Do not include any other text."""


def build_instructions(columns: ColumnSpec) -> str:
    custom_block = ""
    if columns.custom_labels:
        lines = "\n".join(
            f'   - "{key}": {label}' for key, label in columns.custom_keys
        )
        custom_block = f"5. Also extract these fields for each student:\n{lines}\n"
    return _INSTRUCTIONS.format(custom_block=custom_block)


def build_response_schema(columns: ColumnSpec) -> dict[str, Any]:
    """Array-of-objects schema; every property is a required string."""
    properties: dict[str, Any] = {
        NAME_KEY: {
            "type": "STRING",
            "description": "Student's full name, original script and diacritics preserved.",
        },
        SCORE_KEY: {
            "type": "STRING",
            "description": "Final score as written, e.g. 8.5, 8,5 or A+.",
        },
    }
    for key, label in columns.custom_keys:
        properties[key] = {"type": "STRING", "description": label}

    keys = list(columns.keys)
    return {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": properties,
            "required": keys,
            "property_ordering": keys,
        },
    }
