from __future__ import annotations

import base64
from collections.abc import Collection

from gradesheet.errors import InvalidImageError, SourceReadError
from gradesheet.extraction.types import EncodedImage, SourceImage


def encode(
    image: SourceImage,
    *,
    allowed_mime_types: Collection[str] | None = None,
    max_bytes: int | None = None,
) -> EncodedImage:
    """Read the image once and return its base64 form with its media type (parameters dropped).

    Raises:
        SourceReadError: The bytes could not be read.
        InvalidImageError: MIME type not allowed, or the image exceeds ``max_bytes``.
    """
    # Parameters such as "; charset=binary" are not part of the media type
    media_type = (image.mime_type or "").split(";", 1)[0].strip()
    if allowed_mime_types is not None:
        allowed = {m.strip().lower() for m in allowed_mime_types}
        if media_type.lower() not in allowed:
            raise InvalidImageError(
                f"Unsupported image type {image.mime_type!r} for {image.name} "
                f"(allowed: {', '.join(sorted(allowed))})"
            )

    try:
        data = image.read()
    except OSError as e:
        raise SourceReadError(f"Could not read {image.name}: {e}") from e

    if not data:
        raise SourceReadError(f"{image.name} is empty")
    if max_bytes is not None and len(data) > max_bytes:
        raise InvalidImageError(
            f"{image.name} is {len(data)} bytes; limit is {max_bytes} bytes"
        )

    return EncodedImage(
        base64_data=base64.b64encode(data).decode("ascii"),
        mime_type=media_type,
    )
