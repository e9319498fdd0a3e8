"""Image source detection.

Classifies a raw, user-supplied image reference into a :data:`ImageSource`
variant.  Anything starting with ``http://`` or ``https://`` is a URL, even
though only ``https`` will pass validation, so that an ``http`` URL is
reported as a scheme error instead of a missing file.
"""

from __future__ import annotations

from stableimage.models import ImageSource, LocalPath, RemoteUrl

_URL_PREFIXES = ("http://", "https://")


def is_url(src: str) -> bool:
    """Return ``True`` if *src* should be treated as a URL."""
    return src[:8].lower().startswith(_URL_PREFIXES)


def detect_image_source(src: str | ImageSource) -> ImageSource:
    """Wrap *src* in the matching :data:`ImageSource` variant.

    Already-classified sources are returned unchanged.
    """
    if isinstance(src, (LocalPath, RemoteUrl)):
        return src
    if not isinstance(src, str):
        raise TypeError(
            f"Image source must be a path, a URL or an ImageSource, got {type(src).__name__}"
        )
    if is_url(src):
        return RemoteUrl(src)
    return LocalPath(src)
