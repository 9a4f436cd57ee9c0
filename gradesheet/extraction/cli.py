from __future__ import annotations

import argparse


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="gradesheet-extract",
        description="Extract student names and scores from score sheet images into CSV",
    )

    p.add_argument("images", nargs="+", help="Image files to process, in order")
    p.add_argument(
        "--column",
        action="append",
        default=[],
        help="Custom column label to extract in addition to name and score (repeatable)",
    )
    p.add_argument("--output", "-o", default=None, help="CSV output path (default: stdout)")
    p.add_argument("--no-bom", action="store_true", help="Omit the UTF-8 byte order mark")
    p.add_argument("--model", default=None, help="Override GRADESHEET_MODEL")
    p.add_argument("--log-level", default="INFO", help="Python logging level (INFO, DEBUG, ...)")
    return p
