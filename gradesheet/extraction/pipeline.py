from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

from gradesheet.config import ExtractorConfig
from gradesheet.errors import BatchCancelledError, ExtractionError
from gradesheet.extraction.client import ExtractionClient
from gradesheet.extraction.columns import ColumnSpec
from gradesheet.extraction.encoder import encode
from gradesheet.extraction.normalizer import normalize
from gradesheet.extraction.types import FileFailure, FileOutcome, FileSuccess, SourceImage

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


class ExtractionPipeline:
    """Sequential driver: Encoder -> ExtractionClient -> Normalizer, one file at a time.

    ``run`` returns exactly one ``FileOutcome`` per input image, in input
    order. A failing file never stops the batch.
    """

    def __init__(
        self,
        *,
        cfg: ExtractorConfig,
        client: ExtractionClient | None = None,
        on_status: StatusCallback | None = None,
    ) -> None:
        # Raises ConfigurationError up front, before any file is touched
        cfg.validate()
        self._cfg = cfg
        self._client = client if client is not None else ExtractionClient(cfg=cfg)
        self._on_status = on_status
        self.status = "Idle"

    async def run(
        self,
        images: Sequence[SourceImage],
        columns: ColumnSpec,
        *,
        cancel: asyncio.Event | None = None,
    ) -> list[FileOutcome]:
        total = len(images)
        outcomes: list[FileOutcome] = []

        for idx, image in enumerate(images, start=1):
            if cancel is not None and cancel.is_set():
                err = BatchCancelledError("Batch cancelled before this file started")
                outcomes.append(_failure(image, err))
                continue
            self._set_status(f"Processing {idx}/{total}: {image.name}")
            outcomes.append(await self.process_one(image, columns))

        succeeded = sum(1 for o in outcomes if o.ok)
        self._set_status(f"Done: {succeeded}/{total} files succeeded")
        logger.info("Batch finished: total=%d succeeded=%d failed=%d", total, succeeded, total - succeeded)
        return outcomes

    async def process_one(self, image: SourceImage, columns: ColumnSpec) -> FileOutcome:
        """Run one image through every stage; stage errors become a ``FileFailure``."""
        try:
            encoded = await asyncio.to_thread(
                encode,
                image,
                allowed_mime_types=self._cfg.allowed_mime_types,
                max_bytes=self._cfg.max_image_bytes,
            )
            raw = await self._client.extract(encoded, columns)
            records = normalize(raw, columns)
        except ExtractionError as e:
            logger.warning("File failed: %s :: %s", image.name, e)
            return _failure(image, e)

        logger.info("File succeeded: %s (%d records)", image.name, len(records))
        return FileSuccess(source_file_name=image.name, records=tuple(records))

    def _set_status(self, status: str) -> None:
        self.status = status
        if self._on_status is not None:
            self._on_status(status)


def _failure(image: SourceImage, err: ExtractionError) -> FileFailure:
    return FileFailure(
        source_file_name=image.name,
        error_kind=err.kind,
        message=err.message,
        status=err.status,
    )
