"""Fetch remote images that passed URL validation.

Redirects are never followed by ``httpx`` itself.  Each ``Location`` is
resolved against the current URL and sent back through
:func:`validate_image_url`, so a public URL cannot bounce the fetch to an
internal address.  Bodies are streamed and abandoned as soon as they exceed
the configured size cap.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import urljoin

import httpx

from stableimage.config import DOWNLOAD_TIMEOUT_SECONDS, MAX_DOWNLOAD_BYTES, MAX_REDIRECTS
from stableimage.errors import StableImageSourceUnreadableError
from stableimage.observability import get_logger

from .validate import Resolver, validate_image_url


class ImageDownloader:
    """Download image bytes from validated HTTPS URLs.

    Parameters
    ----------
    timeout_seconds:
        Timeout applied to each HTTP request.
    max_bytes:
        Largest body accepted.
    max_redirects:
        Maximum number of redirect hops.  Every hop is re-validated.
    resolver:
        DNS resolver used for validation (see :mod:`.validate`).
    client:
        Optional pre-built ``httpx.AsyncClient``.  When given, the caller
        owns it and :meth:`aclose` leaves it open.
    logger:
        Logger for progress messages.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = DOWNLOAD_TIMEOUT_SECONDS,
        max_bytes: int = MAX_DOWNLOAD_BYTES,
        max_redirects: int = MAX_REDIRECTS,
        resolver: Resolver | None = None,
        client: httpx.AsyncClient | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._max_bytes = max_bytes
        self._max_redirects = max_redirects
        self._resolver = resolver
        self._log = logger or get_logger("stableimage.download")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=False,
        )

    async def fetch(self, url: str) -> bytes:
        """Validate *url* and download its body.

        Raises
        ------
        StableImageInvalidSourceError / StableImageUnsafeSourceError
            If *url* or any redirect target fails validation.
        StableImageSourceUnreadableError
            On HTTP errors, non-200 responses, oversize bodies, or too many
            redirects (``reason`` is ``download_failed``, ``too_large`` or
            ``too_many_redirects``).
        """
        current = url
        for hop in range(self._max_redirects + 1):
            await validate_image_url(current, resolver=self._resolver, logger=self._log)
            try:
                async with self._client.stream(
                    "GET", current, follow_redirects=False,
                ) as response:
                    if response.is_redirect:
                        location = response.headers.get("location")
                        if not location:
                            raise self._failure(
                                url, f"redirect without Location (HTTP {response.status_code})",
                            )
                        current = urljoin(current, location)
                        self._log.debug(
                            "Following redirect",
                            extra={"extra_fields": {
                                "op": "download", "hop": hop + 1, "location": current,
                            }},
                        )
                        continue
                    if response.status_code != 200:
                        raise self._failure(url, f"HTTP {response.status_code}")
                    data = await self._read_capped(url, response)
            except httpx.HTTPError as exc:
                raise self._failure(url, str(exc) or type(exc).__name__, cause=exc) from exc

            self._log.debug(
                "Downloaded image",
                extra={"extra_fields": {"op": "download", "src": url, "size_bytes": len(data)}},
            )
            return data

        raise StableImageSourceUnreadableError(
            message=(
                f"Failed to download image from URL: more than "
                f"{self._max_redirects} redirects"
            ),
            context={"src": url, "reason": "too_many_redirects"},
        )

    async def _read_capped(self, url: str, response: httpx.Response) -> bytes:
        declared = response.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self._max_bytes:
            raise self._too_large(url)

        chunks: list[bytes] = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > self._max_bytes:
                raise self._too_large(url)
            chunks.append(chunk)
        return b"".join(chunks)

    def _too_large(self, url: str) -> StableImageSourceUnreadableError:
        limit_mb = self._max_bytes / (1024 * 1024)
        return StableImageSourceUnreadableError(
            message=f"Image exceeds maximum size of {limit_mb:g}MB",
            context={"src": url, "reason": "too_large", "max_bytes": self._max_bytes},
        )

    @staticmethod
    def _failure(
        url: str,
        detail: str,
        cause: Exception | None = None,
    ) -> StableImageSourceUnreadableError:
        return StableImageSourceUnreadableError(
            message=f"Failed to download image from URL: {detail}",
            context={"src": url, "reason": "download_failed"},
            cause=cause,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this downloader created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> ImageDownloader:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


async def download_image(
    url: str,
    destination: str | Path,
    *,
    downloader: ImageDownloader | None = None,
) -> Path:
    """Download a validated remote image to *destination*.

    Parent directories are created as needed.

    Returns
    -------
    Path
        The path written.
    """
    path = Path(destination)
    if downloader is None:
        async with ImageDownloader() as owned:
            data = await owned.fetch(url)
    else:
        data = await downloader.fetch(url)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    get_logger("stableimage.download").info(
        "Downloaded image",
        extra={"extra_fields": {"op": "download_image", "path": str(path), "size_bytes": len(data)}},
    )
    return path
