"""Unit tests for the sequential extraction pipeline.

Real encoder/client/normalizer; only the Gemini client and sleep are faked.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
from google.genai import errors as genai_errors

from gradesheet.config import ExtractorConfig
from gradesheet.errors import ConfigurationError, ErrorKind
from gradesheet.extraction.client import ExtractionClient
from gradesheet.extraction.columns import ColumnSpec
from gradesheet.extraction.pipeline import ExtractionPipeline
from gradesheet.extraction.types import FileFailure, FileSuccess, SourceImage


def _images(png_bytes: bytes, n: int) -> list[SourceImage]:
    return [
        SourceImage.from_bytes(f"sheet-{i}.png", png_bytes, mime_type="image/png")
        for i in range(1, n + 1)
    ]


def _rows(*pairs: tuple[str, str]) -> str:
    return json.dumps([{"student_name": n, "score": s} for n, s in pairs])


@pytest.fixture
def build_pipeline(extractor_config, make_genai_client, sleeps):
    def _build(*effects, cfg: ExtractorConfig | None = None, on_status=None):
        cfg = cfg or extractor_config
        genai_client = make_genai_client(*effects)
        client = ExtractionClient(cfg=cfg, genai_client=genai_client, sleep=sleeps)
        return ExtractionPipeline(cfg=cfg, client=client, on_status=on_status), genai_client

    return _build


class TestOrdering:
    async def test_one_outcome_per_file_in_input_order(self, build_pipeline, png_bytes):
        pipeline, _ = build_pipeline(
            _rows(("An", "9")),
            genai_errors.ClientError(400, {"error": {"message": "bad image"}}),
            _rows(("Chi", "7"), ("Dung", "6")),
            "[]",
        )
        images = _images(png_bytes, 4)

        outcomes = await pipeline.run(images, ColumnSpec.build())

        assert [o.source_file_name for o in outcomes] == [i.name for i in images]
        assert [o.ok for o in outcomes] == [True, False, True, True]
        assert isinstance(outcomes[1], FileFailure)
        assert outcomes[1].error_kind is ErrorKind.FATAL_REQUEST
        assert outcomes[1].status == 400

    async def test_files_processed_sequentially(self, build_pipeline, png_bytes):
        pipeline, genai_client = build_pipeline("[]", "[]", "[]")
        in_flight = 0
        max_in_flight = 0
        original = genai_client.aio.models.generate_content.side_effect

        async def _tracking(*args, **kwargs):
            nonlocal in_flight, max_in_flight
            in_flight += 1
            max_in_flight = max(max_in_flight, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return next(original)

        genai_client.aio.models.generate_content.side_effect = _tracking
        await pipeline.run(_images(png_bytes, 3), ColumnSpec.build())
        assert max_in_flight == 1


class TestOutcomes:
    async def test_empty_array_is_success_with_zero_records(self, build_pipeline, png_bytes):
        pipeline, _ = build_pipeline("[]")
        (outcome,) = await pipeline.run(_images(png_bytes, 1), ColumnSpec.build())
        assert isinstance(outcome, FileSuccess)
        assert outcome.records == ()

    async def test_multiple_records_from_one_sheet(self, build_pipeline, png_bytes):
        pipeline, _ = build_pipeline(_rows(("An", "9"), ("Binh", "8,5"), ("Chi", "A")))
        (outcome,) = await pipeline.run(_images(png_bytes, 1), ColumnSpec.build())
        assert isinstance(outcome, FileSuccess)
        assert [r.score for r in outcome.records] == ["9", "8,5", "A"]

    async def test_custom_fields_keyed_by_labels(self, build_pipeline, png_bytes):
        payload = json.dumps(
            [{"student_name": "An", "score": "9", "student_id": "S01", "class": "6A"}]
        )
        pipeline, _ = build_pipeline(payload)
        (outcome,) = await pipeline.run(
            _images(png_bytes, 1), ColumnSpec.build(["Student ID", "Class"])
        )
        assert isinstance(outcome, FileSuccess)
        assert dict(outcome.records[0].custom_fields) == {"Student ID": "S01", "Class": "6A"}

    async def test_transport_exception_isolated_to_its_file(self, build_pipeline, png_bytes):
        pipeline, _ = build_pipeline(
            _rows(("An", "9")),
            httpx.ConnectError("connection reset"),
            _rows(("Chi", "7")),
        )
        outcomes = await pipeline.run(_images(png_bytes, 3), ColumnSpec.build())

        assert isinstance(outcomes[0], FileSuccess)
        assert isinstance(outcomes[1], FileFailure)
        assert outcomes[1].error_kind is ErrorKind.FATAL_REQUEST
        assert isinstance(outcomes[2], FileSuccess)

    async def test_malformed_record_fails_whole_file(self, build_pipeline, png_bytes):
        payload = json.dumps(
            [
                {"student_name": "An", "score": "9"},
                {"student_name": "Binh"},
                {"student_name": "Chi", "score": "7"},
            ]
        )
        pipeline, _ = build_pipeline(payload)
        (outcome,) = await pipeline.run(_images(png_bytes, 1), ColumnSpec.build())
        assert isinstance(outcome, FileFailure)
        assert outcome.error_kind is ErrorKind.SCHEMA_VIOLATION

    async def test_exhausted_retries_surface_transient_kind(self, build_pipeline, png_bytes, sleeps):
        errs = [genai_errors.ServerError(503, {"error": {"message": "overloaded"}}) for _ in range(3)]
        pipeline, genai_client = build_pipeline(*errs, _rows(("Binh", "8")))
        outcomes = await pipeline.run(_images(png_bytes, 2), ColumnSpec.build())

        assert isinstance(outcomes[0], FileFailure)
        assert outcomes[0].error_kind is ErrorKind.TRANSIENT_REQUEST
        assert outcomes[0].status == 503
        assert isinstance(outcomes[1], FileSuccess)
        assert genai_client.aio.models.generate_content.await_count == 4
        assert sleeps.calls == [1.0, 2.0]

    async def test_unreadable_file_does_not_call_model(self, build_pipeline, png_bytes, tmp_path):
        pipeline, genai_client = build_pipeline(_rows(("Binh", "8")))
        images = [
            SourceImage.from_path(tmp_path / "gone.png"),
            SourceImage.from_bytes("ok.png", png_bytes, mime_type="image/png"),
        ]
        outcomes = await pipeline.run(images, ColumnSpec.build())

        assert isinstance(outcomes[0], FileFailure)
        assert outcomes[0].error_kind is ErrorKind.IO
        assert outcomes[1].ok
        assert genai_client.aio.models.generate_content.await_count == 1

    async def test_unsupported_type_is_invalid_input(self, build_pipeline, png_bytes):
        pipeline, genai_client = build_pipeline()
        image = SourceImage.from_bytes("scan.tiff", png_bytes, mime_type="image/tiff")
        (outcome,) = await pipeline.run([image], ColumnSpec.build())

        assert isinstance(outcome, FileFailure)
        assert outcome.error_kind is ErrorKind.INVALID_INPUT
        genai_client.aio.models.generate_content.assert_not_awaited()


class TestStatus:
    async def test_status_updated_before_each_file(self, build_pipeline, png_bytes):
        seen: list[str] = []
        pipeline, _ = build_pipeline("[]", "[]", on_status=seen.append)

        await pipeline.run(_images(png_bytes, 2), ColumnSpec.build())

        assert seen == [
            "Processing 1/2: sheet-1.png",
            "Processing 2/2: sheet-2.png",
            "Done: 2/2 files succeeded",
        ]
        assert pipeline.status == "Done: 2/2 files succeeded"


class TestCancellation:
    async def test_cancelled_batch_still_returns_every_file(self, build_pipeline, png_bytes):
        cancel = asyncio.Event()

        def _on_status(status: str) -> None:
            if status.startswith("Processing 1/"):
                cancel.set()

        pipeline, genai_client = build_pipeline(_rows(("An", "9")), on_status=_on_status)
        outcomes = await pipeline.run(_images(png_bytes, 3), ColumnSpec.build(), cancel=cancel)

        assert len(outcomes) == 3
        assert outcomes[0].ok
        assert [o.error_kind for o in outcomes[1:]] == [ErrorKind.CANCELLED, ErrorKind.CANCELLED]
        assert genai_client.aio.models.generate_content.await_count == 1


class TestConfiguration:
    def test_missing_credential_blocks_pipeline(self):
        with pytest.raises(ConfigurationError, match="GEMINI_API_KEY"):
            ExtractionPipeline(cfg=ExtractorConfig(api_key=""))
