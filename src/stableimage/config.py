"""Client configuration for stableimage.

:class:`StableImageConfig` is a plain dataclass that captures every
tuneable knob exposed by the client.  Instances are passed to
:class:`AsyncStabilityClient` and to the transport it builds.

The API key is supplied by the caller; this module performs no credential
lookup of its own.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

from stableimage.utils.redact import redact_api_key

DEFAULT_BASE_URL = "https://api.stability.ai"

DEFAULT_POLL_INTERVAL = 10.0
"""Seconds between task-status queries (the service recommends 10 s)."""

DEFAULT_POLL_TIMEOUT = 300.0
"""Seconds to wait for an async task before giving up."""

MAX_DOWNLOAD_BYTES = 50 * 1024 * 1024

DOWNLOAD_TIMEOUT_SECONDS = 60.0

MAX_REDIRECTS = 5


@dataclass
class StableImageConfig:
    """Complete configuration for a stableimage client.

    Every parameter has a sensible default so that the only *required*
    value is ``api_key``.

    Parameters
    ----------
    api_key:
        Bearer credential for the image-generation service.  **Required.**
        Never logged in full.
    base_url:
        API root URL.  Must use HTTPS.
    timeout_seconds:
        Per-request HTTP timeout in seconds.
    poll_interval_seconds:
        Delay between task-status queries while waiting on async tasks.
    poll_timeout_seconds:
        Wall-clock budget for waiting on an async task.
    download_timeout_seconds:
        Timeout for fetching remote image sources.
    max_download_bytes:
        Upper bound on the size of a fetched remote image.
    max_redirects:
        Maximum number of redirects followed when fetching a remote image.
        Every redirect target is re-validated.
    production:
        When ``True``, upstream error details are collapsed into a generic
        message before reaching the caller.
    http_proxy:
        Optional HTTP/HTTPS proxy URL.
    log_level:
        Level applied to the client's ``stableimage`` logger.
    metrics:
        Optional :class:`MetricsHook` implementation.
    """

    # ── Core ────────────────────────────────────────────────────────────
    api_key: str = ""

    base_url: str = DEFAULT_BASE_URL

    # ── HTTP ────────────────────────────────────────────────────────────
    timeout_seconds: float = 30.0

    http_proxy: str | None = None

    # ── Polling ─────────────────────────────────────────────────────────
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL

    poll_timeout_seconds: float = DEFAULT_POLL_TIMEOUT

    # ── Remote image sources ────────────────────────────────────────────
    download_timeout_seconds: float = DOWNLOAD_TIMEOUT_SECONDS

    max_download_bytes: int = MAX_DOWNLOAD_BYTES

    max_redirects: int = MAX_REDIRECTS

    # ── Error presentation ──────────────────────────────────────────────
    production: bool = False

    # ── Observability ──────────────────────────────────────────────────
    log_level: int | str = "INFO"

    metrics: Any | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        parsed = urlparse(self.base_url)
        if parsed.scheme != "https":
            raise ValueError(
                f"base_url must use HTTPS, got {self.base_url!r}. "
                "The API key is sent with every request."
            )

        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.poll_interval_seconds <= 0:
            raise ValueError(
                f"poll_interval_seconds must be > 0, got {self.poll_interval_seconds}"
            )
        if self.poll_timeout_seconds <= 0:
            raise ValueError(
                f"poll_timeout_seconds must be > 0, got {self.poll_timeout_seconds}"
            )
        if self.download_timeout_seconds <= 0:
            raise ValueError(
                f"download_timeout_seconds must be > 0, got {self.download_timeout_seconds}"
            )
        if self.max_download_bytes <= 0:
            raise ValueError(f"max_download_bytes must be > 0, got {self.max_download_bytes}")
        if self.max_redirects < 0:
            raise ValueError(f"max_redirects must be >= 0, got {self.max_redirects}")

    @classmethod
    def from_env(cls, **overrides: Any) -> StableImageConfig:
        """Build a config from ``STABILITY_*`` environment variables.

        Reads ``STABILITY_POLL_INTERVAL`` and ``STABILITY_TIMEOUT`` (whole
        seconds; unparsable values fall back to the defaults) and
        ``STABILITY_ENV`` (``production`` enables production mode).
        Explicit *overrides* win over the environment.
        """
        values: dict[str, Any] = {
            "poll_interval_seconds": _env_int(
                "STABILITY_POLL_INTERVAL", DEFAULT_POLL_INTERVAL,
            ),
            "poll_timeout_seconds": _env_int("STABILITY_TIMEOUT", DEFAULT_POLL_TIMEOUT),
            "production": os.environ.get("STABILITY_ENV", "").lower() == "production",
        }
        values.update(overrides)
        return cls(**values)

    def __repr__(self) -> str:
        """Mask the API key to prevent accidental credential leakage."""
        parts: list[str] = []
        for f in dataclasses.fields(self):
            val = getattr(self, f.name)
            if f.name == "api_key":
                parts.append(f"api_key='{redact_api_key(val)}'")
            else:
                parts.append(f"{f.name}={val!r}")
        return f"StableImageConfig({', '.join(parts)})"


def _env_int(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(int(raw))
    except ValueError:
        return default
