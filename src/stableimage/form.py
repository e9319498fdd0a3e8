"""Multipart form construction.

Turns scalar parameters plus already-validated image sources into a
:class:`MultipartForm` that ``httpx`` sends as ``multipart/form-data``.
Raw strings are refused: an image reaches the wire only after
:func:`stableimage.source.validate_source` has produced a
:class:`ValidatedImageSource` for it.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from stableimage.errors import StableImageSourceNotAnImageError
from stableimage.models import LocalPath, RemoteUrl, ValidatedImageSource
from stableimage.observability import get_logger
from stableimage.source.download import ImageDownloader
from stableimage.source.validate import sniff_image_mime

_EXTENSIONS: dict[str, str] = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}


@dataclass
class MultipartForm:
    """Fields of a ``multipart/form-data`` request.

    Attributes
    ----------
    data:
        Scalar fields, already stringified.
    files:
        ``field name -> (filename, bytes, content type)``.
    """

    data: dict[str, str] = field(default_factory=dict)
    files: dict[str, tuple[str, bytes, str]] = field(default_factory=dict)

    def as_httpx_kwargs(self) -> dict[str, Any]:
        # httpx only switches to multipart encoding when ``files`` is
        # non-empty; text-only operations carry the service's "none" part.
        files = dict(self.files) or {"none": (None, b"")}
        return {"data": self.data, "files": files}

    def describe(self) -> dict[str, Any]:
        """Log-safe summary: scalar fields and file sizes, never bytes."""
        return {
            "fields": sorted(self.data),
            "files": {name: len(part[1]) for name, part in self.files.items()},
        }


def form_value(value: Any) -> str:
    """Stringify a scalar the way the service expects."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


async def build_form(
    params: Mapping[str, Any],
    images: Mapping[str, ValidatedImageSource] | None = None,
    *,
    downloader: ImageDownloader | None = None,
    logger: logging.Logger | None = None,
) -> MultipartForm:
    """Build a :class:`MultipartForm`.

    Parameters
    ----------
    params:
        Scalar fields.  ``None`` values are dropped.
    images:
        ``field name -> validated source``.  Local sources use the bytes
        captured during validation; remote sources are fetched with
        *downloader* and magic-byte checked.
    downloader:
        Required when any image is remote.
    logger:
        Logger for per-part debug messages.

    Raises
    ------
    TypeError
        If an image is not a :class:`ValidatedImageSource`.
    StableImageSourceNotAnImageError
        If a downloaded body is not a recognised image.
    """
    log = logger or get_logger("stableimage.form")
    form = MultipartForm(
        data={key: form_value(value) for key, value in params.items() if value is not None},
    )

    for field_name, validated in (images or {}).items():
        if not isinstance(validated, ValidatedImageSource):
            raise TypeError(
                f"Image field {field_name!r} must be a ValidatedImageSource, "
                f"got {type(validated).__name__}"
            )
        filename, data, mime = await _image_part(validated, downloader)
        form.files[field_name] = (filename, data, mime)
        log.debug(
            "Added image to form data",
            extra={"extra_fields": {
                "op": "build_form", "field": field_name, "size_bytes": len(data),
            }},
        )

    return form


async def _image_part(
    validated: ValidatedImageSource,
    downloader: ImageDownloader | None,
) -> tuple[str, bytes, str]:
    source = validated.source
    if isinstance(source, LocalPath):
        if validated.data is None:
            raise ValueError(f"Local image source {source.path!r} carries no validated data")
        mime = validated.mime_type or sniff_image_mime(validated.data) or "application/octet-stream"
        return os.path.basename(source.path) or "image", validated.data, mime

    if not isinstance(source, RemoteUrl):
        raise TypeError(f"Unsupported image source type: {type(source).__name__}")
    if downloader is None:
        raise ValueError("A downloader is required for remote image sources")
    data = await downloader.fetch(source.url)
    mime = sniff_image_mime(data)
    if mime is None:
        raise StableImageSourceNotAnImageError(
            message=(
                "Downloaded file does not appear to be a valid image "
                f"(PNG, JPEG, WebP, or GIF): {source.url}"
            ),
            context={"src": source.url, "size_bytes": len(data)},
        )
    return f"image.{_EXTENSIONS[mime]}", data, mime
