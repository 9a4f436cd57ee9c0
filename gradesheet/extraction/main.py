from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Sequence
from dataclasses import replace

from gradesheet.config import ExtractorConfig
from gradesheet.errors import ConfigurationError
from gradesheet.export import render_csv
from gradesheet.extraction.cli import build_parser
from gradesheet.extraction.columns import ColumnSpec
from gradesheet.extraction.pipeline import ExtractionPipeline
from gradesheet.extraction.types import SourceImage
from gradesheet.logging_config import setup_logging


async def _amain(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level=args.log_level.upper())
    logger = logging.getLogger("gradesheet.extraction")

    try:
        columns = ColumnSpec.build(args.column)
    except ValueError as e:
        parser.error(str(e))

    try:
        cfg = ExtractorConfig.from_env()
        if args.model:
            cfg = replace(cfg, model=args.model)
        pipeline = ExtractionPipeline(cfg=cfg, on_status=lambda s: logger.info("%s", s))
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.message)
        return 1

    images = [SourceImage.from_path(p) for p in args.images]
    outcomes = await pipeline.run(images, columns)

    text = render_csv(outcomes, columns, bom=not args.no_bom)
    if args.output:
        with open(args.output, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        logger.info("Wrote %s", args.output)
    else:
        sys.stdout.write(text)

    failed = sum(1 for o in outcomes if not o.ok)
    logger.info("DONE total=%d failed=%d", len(outcomes), failed)
    return 0 if failed == 0 else 2


def main(argv: Sequence[str] | None = None) -> None:
    raise SystemExit(asyncio.run(_amain(argv)))


if __name__ == "__main__":
    main()
