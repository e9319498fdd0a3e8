"""Tests for stableimage/form.py."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from stableimage.errors import StableImageSourceNotAnImageError
from stableimage.form import MultipartForm, build_form, form_value
from stableimage.models import LocalPath, RemoteUrl, ValidatedImageSource


def local(path: str, data: bytes) -> ValidatedImageSource:
    return ValidatedImageSource(source=LocalPath(path), mime_type="image/png", data=data)


def remote(url: str) -> ValidatedImageSource:
    return ValidatedImageSource(source=RemoteUrl(url), resolved_address="93.184.216.34")


class TestFormValue:
    def test_bool_lowercase(self):
        assert form_value(True) == "true"
        assert form_value(False) == "false"

    def test_numbers(self):
        assert form_value(5) == "5"
        assert form_value(0.3) == "0.3"

    def test_string_passthrough(self):
        assert form_value("1:1") == "1:1"


class TestBuildForm:
    async def test_scalars_stringified_and_none_dropped(self):
        form = await build_form({"prompt": "a cat", "seed": 42, "negative_prompt": None})
        assert form.data == {"prompt": "a cat", "seed": "42"}
        assert form.files == {}

    async def test_local_image_uses_validated_bytes(self, png_bytes):
        form = await build_form({}, {"image": local("/photos/cat.png", png_bytes)})
        assert form.files["image"] == ("cat.png", png_bytes, "image/png")

    async def test_remote_image_downloaded_and_sniffed(self, png_bytes):
        downloader = MagicMock()
        downloader.fetch = AsyncMock(return_value=png_bytes)
        form = await build_form(
            {}, {"image": remote("https://example.com/x")}, downloader=downloader,
        )
        downloader.fetch.assert_awaited_once_with("https://example.com/x")
        assert form.files["image"] == ("image.png", png_bytes, "image/png")

    async def test_remote_non_image_rejected(self):
        downloader = MagicMock()
        downloader.fetch = AsyncMock(return_value=b"<html>nope</html>")
        with pytest.raises(StableImageSourceNotAnImageError):
            await build_form({}, {"image": remote("https://example.com/x")}, downloader=downloader)

    async def test_remote_without_downloader(self):
        with pytest.raises(ValueError):
            await build_form({}, {"image": remote("https://example.com/x")})

    async def test_raw_string_refused(self):
        with pytest.raises(TypeError):
            await build_form({}, {"image": "/photos/cat.png"})  # type: ignore[dict-item]

    async def test_local_image_without_data_rejected(self):
        missing = ValidatedImageSource(source=LocalPath("/photos/cat.png"), mime_type="image/png")
        with pytest.raises(ValueError, match="carries no validated data"):
            await build_form({}, {"image": missing})

    async def test_unknown_source_variant_rejected(self):
        odd = ValidatedImageSource(source=object())  # type: ignore[arg-type]
        with pytest.raises(TypeError, match="Unsupported image source type"):
            await build_form({}, {"image": odd})


class TestMultipartForm:
    def test_text_only_form_still_multipart(self):
        kwargs = MultipartForm(data={"prompt": "x"}).as_httpx_kwargs()
        assert kwargs["files"] == {"none": (None, b"")}

        request = httpx.Request("POST", "https://api.example.com/", **kwargs)
        assert request.headers["content-type"].startswith("multipart/form-data")

    def test_files_passed_through(self, png_bytes):
        form = MultipartForm(data={}, files={"image": ("a.png", png_bytes, "image/png")})
        assert form.as_httpx_kwargs()["files"] == {"image": ("a.png", png_bytes, "image/png")}

    def test_describe_never_contains_bytes(self, png_bytes):
        form = MultipartForm(
            data={"prompt": "x", "seed": "1"},
            files={"image": ("a.png", png_bytes, "image/png")},
        )
        assert form.describe() == {"fields": ["prompt", "seed"], "files": {"image": len(png_bytes)}}
