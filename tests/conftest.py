"""Shared test fixtures for the stableimage test suite."""

from __future__ import annotations

import socket
from pathlib import Path

import pytest

from stableimage.config import StableImageConfig

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
PUBLIC_IP = "93.184.216.34"


def _make_resolver(mapping: dict[str, list[str]] | None = None, default: list[str] | None = None):
    calls: list[str] = []

    async def resolve(hostname: str) -> list[str]:
        calls.append(hostname)
        if mapping and hostname in mapping:
            return list(mapping[hostname])
        if default is not None:
            return list(default)
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    resolve.calls = calls  # type: ignore[attr-defined]
    return resolve


@pytest.fixture
def config() -> StableImageConfig:
    """Default test configuration with a dummy key."""
    return StableImageConfig(api_key="sk-test-key-1234")


@pytest.fixture
def make_resolver():
    """Factory for fake DNS resolvers.

    ``make_resolver({"host": ["1.2.3.4"]}, default=[...])`` returns an async
    resolver recording every hostname in ``.calls``.  Unknown hostnames
    resolve to *default*, or raise ``EAI_NONAME`` when no default is given.
    """
    return _make_resolver


@pytest.fixture
def public_resolver():
    """Resolver that maps every hostname to a public address."""
    return _make_resolver(default=[PUBLIC_IP])


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def png_file(tmp_path: Path) -> Path:
    path = tmp_path / "image.png"
    path.write_bytes(PNG_BYTES)
    return path
