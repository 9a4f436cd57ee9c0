from __future__ import annotations

import base64
import mimetypes
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from gradesheet.errors import ErrorKind


@dataclass(frozen=True)
class SourceImage:
    name: str  # display name, e.g. the uploaded file name
    mime_type: str
    data: bytes | None = None
    path: Path | None = None  # read lazily when data is None

    @classmethod
    def from_path(cls, path: str | Path, *, mime_type: str | None = None) -> SourceImage:
        p = Path(path)
        guessed, _ = mimetypes.guess_type(p.name)
        return cls(name=p.name, mime_type=mime_type or guessed or "application/octet-stream", path=p)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, *, mime_type: str) -> SourceImage:
        return cls(name=name, mime_type=mime_type, data=data)

    def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            raise OSError(f"No content or path for {self.name}")
        return self.path.read_bytes()


@dataclass(frozen=True)
class EncodedImage:
    base64_data: str
    mime_type: str

    def raw_bytes(self) -> bytes:
        return base64.b64decode(self.base64_data)


@dataclass(frozen=True)
class ExtractionRecord:
    student_name: str
    score: str  # kept verbatim: "8,5", "9.0", "A+"
    custom_fields: Mapping[str, str] = field(default_factory=dict)  # display label -> value


@dataclass(frozen=True)
class FileSuccess:
    source_file_name: str
    records: tuple[ExtractionRecord, ...]

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class FileFailure:
    source_file_name: str
    error_kind: ErrorKind
    message: str
    status: int | None = None  # HTTP status when the failure came from the endpoint

    @property
    def ok(self) -> bool:
        return False


FileOutcome = FileSuccess | FileFailure
