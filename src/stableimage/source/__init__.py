"""Image source handling: detection, validation and remote fetching.

Exports
-------
detect_image_source
    Classify a raw reference as a local path or a URL.
validate_source
    Validate either kind and return a :class:`ValidatedImageSource`.
validate_image_url / validate_image_path
    The URL (SSRF) and local-file (magic byte) checks.
ImageDownloader / download_image
    Fetch a validated remote image, re-validating every redirect hop.
"""

from .detect import detect_image_source, is_url
from .download import ImageDownloader, download_image
from .validate import (
    default_resolver,
    sniff_image_mime,
    validate_image_path,
    validate_image_url,
    validate_source,
)

__all__ = [
    "ImageDownloader",
    "default_resolver",
    "detect_image_source",
    "download_image",
    "is_url",
    "sniff_image_mime",
    "validate_image_path",
    "validate_image_url",
    "validate_source",
]
