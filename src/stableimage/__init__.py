"""stableimage — Async client for the Stability image-generation API.

Public re-exports
-----------------

* **Client:** :class:`AsyncStabilityClient`
* **Configuration:** :class:`StableImageConfig`
* **Parameters:** One dataclass per operation
* **Errors:** Every :class:`StableImageError` subclass and :class:`ErrorCode`
* **Models:** Image sources, request outcomes and supporting types

Usage::

    import asyncio
    from stableimage import AsyncStabilityClient

    async def main():
        async with AsyncStabilityClient(api_key="sk-...") as client:
            result = await client.upscale_creative("photo.png", creativity=0.4)
            open("upscaled.png", "wb").write(result.image)

    asyncio.run(main())
"""

from __future__ import annotations

# ── Client ─────────────────────────────────────────────────────────────
from stableimage.async_client import AsyncStabilityClient

# ── Configuration ───────────────────────────────────────────────────────
from stableimage.config import StableImageConfig

# ── Errors ──────────────────────────────────────────────────────────────
from stableimage.errors import (
    ErrorCode,
    StableImageAPIError,
    StableImageAuthError,
    StableImageContentModeratedError,
    StableImageError,
    StableImageInvalidParametersError,
    StableImageInvalidSourceError,
    StableImagePayloadTooLargeError,
    StableImageRateLimitError,
    StableImageSourceError,
    StableImageSourceNotAnImageError,
    StableImageSourceNotFoundError,
    StableImageSourceUnreadableError,
    StableImageTimeoutError,
    StableImageTransientError,
    StableImageUnknownUpstreamError,
    StableImageUnsafeSourceError,
)

# ── Models ──────────────────────────────────────────────────────────────
from stableimage.models import (
    BalanceResult,
    ImageResult,
    ImageSource,
    ImageSourceType,
    JsonBody,
    LocalPath,
    Outcome,
    PollSession,
    RemoteUrl,
    TaskHandle,
    TaskState,
    ValidatedImageSource,
)

# ── Parameters ──────────────────────────────────────────────────────────
from stableimage.params import (
    ControlSketchParams,
    ControlStructureParams,
    ControlStyleParams,
    ControlStyleTransferParams,
    CoreParams,
    EraseParams,
    InpaintParams,
    OperationParams,
    OutpaintParams,
    RemoveBackgroundParams,
    ReplaceBackgroundParams,
    SD3Params,
    SearchAndRecolorParams,
    SearchAndReplaceParams,
    UltraParams,
    UpscaleConservativeParams,
    UpscaleCreativeParams,
    UpscaleFastParams,
)

# ── Image sources ───────────────────────────────────────────────────────
from stableimage.source import download_image, validate_source

__all__ = [
    # Client
    "AsyncStabilityClient",
    # Configuration
    "StableImageConfig",
    # Errors
    "ErrorCode",
    "StableImageAPIError",
    "StableImageAuthError",
    "StableImageContentModeratedError",
    "StableImageError",
    "StableImageInvalidParametersError",
    "StableImageInvalidSourceError",
    "StableImagePayloadTooLargeError",
    "StableImageRateLimitError",
    "StableImageSourceError",
    "StableImageSourceNotAnImageError",
    "StableImageSourceNotFoundError",
    "StableImageSourceUnreadableError",
    "StableImageTimeoutError",
    "StableImageTransientError",
    "StableImageUnknownUpstreamError",
    "StableImageUnsafeSourceError",
    # Models
    "BalanceResult",
    "ImageResult",
    "ImageSource",
    "ImageSourceType",
    "JsonBody",
    "LocalPath",
    "Outcome",
    "PollSession",
    "RemoteUrl",
    "TaskHandle",
    "TaskState",
    "ValidatedImageSource",
    # Parameters
    "ControlSketchParams",
    "ControlStructureParams",
    "ControlStyleParams",
    "ControlStyleTransferParams",
    "CoreParams",
    "EraseParams",
    "InpaintParams",
    "OperationParams",
    "OutpaintParams",
    "RemoveBackgroundParams",
    "ReplaceBackgroundParams",
    "SD3Params",
    "SearchAndRecolorParams",
    "SearchAndReplaceParams",
    "UltraParams",
    "UpscaleConservativeParams",
    "UpscaleCreativeParams",
    "UpscaleFastParams",
    # Image sources
    "download_image",
    "validate_source",
]

__version__ = "0.1.0"
