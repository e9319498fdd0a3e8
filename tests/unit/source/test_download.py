"""Tests for stableimage/source/download.py.

HTTP is served by ``httpx.MockTransport``; DNS by a fake resolver.
"""

from __future__ import annotations

import httpx
import pytest

from stableimage.errors import (
    StableImageSourceUnreadableError,
    StableImageUnsafeSourceError,
)
from stableimage.source.download import ImageDownloader, download_image


def make_downloader(handler, resolver, **kwargs) -> ImageDownloader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageDownloader(client=client, resolver=resolver, **kwargs)


class TestFetch:
    async def test_returns_body(self, public_resolver, png_bytes):
        def handler(request):
            return httpx.Response(200, content=png_bytes, headers={"content-type": "image/png"})

        downloader = make_downloader(handler, public_resolver)
        assert await downloader.fetch("https://cdn.example.com/a.png") == png_bytes

    async def test_validates_before_fetching(self, make_resolver):
        requests: list[httpx.Request] = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, content=b"x")

        resolver = make_resolver({"internal.example.com": ["10.1.1.1"]})
        downloader = make_downloader(handler, resolver)
        with pytest.raises(StableImageUnsafeSourceError):
            await downloader.fetch("https://internal.example.com/a.png")
        assert requests == []

    async def test_non_200_fails(self, public_resolver):
        downloader = make_downloader(lambda r: httpx.Response(404), public_resolver)
        with pytest.raises(StableImageSourceUnreadableError) as exc_info:
            await downloader.fetch("https://cdn.example.com/missing.png")
        assert exc_info.value.context["reason"] == "download_failed"
        assert "HTTP 404" in exc_info.value.message

    async def test_network_error_fails(self, public_resolver):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        downloader = make_downloader(handler, public_resolver)
        with pytest.raises(StableImageSourceUnreadableError) as exc_info:
            await downloader.fetch("https://cdn.example.com/a.png")
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


class TestSizeCap:
    async def test_declared_length_over_cap(self, public_resolver):
        def handler(request):
            return httpx.Response(200, content=b"x" * 10, headers={"content-length": "999999"})

        downloader = make_downloader(handler, public_resolver, max_bytes=100)
        with pytest.raises(StableImageSourceUnreadableError) as exc_info:
            await downloader.fetch("https://cdn.example.com/big.png")
        assert exc_info.value.context["reason"] == "too_large"

    async def test_streamed_body_over_cap(self, public_resolver):
        def handler(request):
            return httpx.Response(200, content=b"x" * 101)

        downloader = make_downloader(handler, public_resolver, max_bytes=100)
        with pytest.raises(StableImageSourceUnreadableError) as exc_info:
            await downloader.fetch("https://cdn.example.com/big.png")
        assert exc_info.value.context["reason"] == "too_large"

    async def test_body_at_cap_is_accepted(self, public_resolver):
        downloader = make_downloader(
            lambda r: httpx.Response(200, content=b"x" * 100), public_resolver, max_bytes=100,
        )
        assert len(await downloader.fetch("https://cdn.example.com/a.png")) == 100


class TestRedirects:
    async def test_follows_and_revalidates_each_hop(self, make_resolver, png_bytes):
        def handler(request):
            if request.url.path == "/start":
                return httpx.Response(302, headers={"location": "https://other.example.com/final"})
            return httpx.Response(200, content=png_bytes)

        resolver = make_resolver(default=["93.184.216.34"])
        downloader = make_downloader(handler, resolver)
        assert await downloader.fetch("https://cdn.example.com/start") == png_bytes
        assert resolver.calls == ["cdn.example.com", "other.example.com"]

    async def test_relative_location(self, public_resolver, png_bytes):
        def handler(request):
            if request.url.path == "/a":
                return httpx.Response(301, headers={"location": "/b"})
            return httpx.Response(200, content=png_bytes)

        downloader = make_downloader(handler, public_resolver)
        assert await downloader.fetch("https://cdn.example.com/a") == png_bytes

    async def test_redirect_to_private_address_blocked(self, make_resolver):
        requests: list[str] = []

        def handler(request):
            requests.append(str(request.url))
            return httpx.Response(302, headers={"location": "https://169.254.169.254/latest/"})

        downloader = make_downloader(handler, make_resolver(default=["93.184.216.34"]))
        with pytest.raises(StableImageUnsafeSourceError):
            await downloader.fetch("https://cdn.example.com/a")
        assert requests == ["https://cdn.example.com/a"]

    async def test_redirect_to_http_rejected(self, public_resolver):
        from stableimage.errors import StableImageInvalidSourceError

        def handler(request):
            return httpx.Response(302, headers={"location": "http://cdn.example.com/b"})

        downloader = make_downloader(handler, public_resolver)
        with pytest.raises(StableImageInvalidSourceError):
            await downloader.fetch("https://cdn.example.com/a")

    async def test_too_many_redirects(self, public_resolver):
        def handler(request):
            n = int(request.url.path.strip("/") or 0)
            return httpx.Response(302, headers={"location": f"/{n + 1}"})

        downloader = make_downloader(handler, public_resolver, max_redirects=3)
        with pytest.raises(StableImageSourceUnreadableError) as exc_info:
            await downloader.fetch("https://cdn.example.com/0")
        assert exc_info.value.context["reason"] == "too_many_redirects"


class TestDownloadImage:
    async def test_writes_file(self, tmp_path, public_resolver, png_bytes):
        downloader = make_downloader(lambda r: httpx.Response(200, content=png_bytes), public_resolver)
        dest = tmp_path / "nested" / "out.png"
        written = await download_image("https://cdn.example.com/a.png", dest, downloader=downloader)
        assert written == dest
        assert dest.read_bytes() == png_bytes


class TestLifecycle:
    async def test_caller_owned_client_left_open(self, public_resolver):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        async with ImageDownloader(client=client, resolver=public_resolver):
            pass
        assert not client.is_closed
        await client.aclose()

    async def test_owned_client_closed(self):
        downloader = ImageDownloader()
        await downloader.aclose()
        assert downloader._client.is_closed
