"""Asynchronous client for the Stability image-generation API.

:class:`AsyncStabilityClient` wires parameter validation, image-source
validation, multipart form construction, the HTTP transport and the task
poller together.  Every operation follows the same pipeline::

    params.validate() -> validate_source(each image) -> build_form()
        -> transport.request() -> (async endpoints) TaskPoller

Nothing is sent until the parameters and every image reference have
passed validation.

Usage::

    import asyncio
    from stableimage import AsyncStabilityClient

    async def main():
        async with AsyncStabilityClient(api_key="sk-...") as client:
            result = await client.generate_core("a lighthouse at dusk")
            open("lighthouse.png", "wb").write(result.image)

    asyncio.run(main())
"""

from __future__ import annotations

import asyncio
from typing import Any

from stableimage.api.poller import TaskPoller
from stableimage.api.transport import (
    ACCEPT_ANY,
    ACCEPT_IMAGE,
    ACCEPT_JSON,
    GENERIC_ERROR_MESSAGE,
    AsyncStabilityTransport,
)
from stableimage.config import StableImageConfig
from stableimage.constraints import endpoint_path, is_async_operation
from stableimage.errors import StableImageUnknownUpstreamError
from stableimage.form import build_form
from stableimage.models import (
    BalanceResult,
    ImageResult,
    JsonBody,
    Outcome,
    RemoteUrl,
    TaskHandle,
    ValidatedImageSource,
)
from stableimage.observability import get_logger
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
from stableimage.source.download import ImageDownloader
from stableimage.source.validate import Resolver, validate_source


class AsyncStabilityClient:
    """Asynchronous Stability API client.

    Parameters
    ----------
    api_key:
        Bearer credential.  **Required.**
    resolver:
        Optional DNS resolver used when validating remote image URLs.
        Defaults to the event loop's ``getaddrinfo``.
    **kwargs:
        All remaining keyword arguments are forwarded to
        :class:`StableImageConfig`.

    Raises
    ------
    StableImageAuthError
        If *api_key* is empty.
    """

    def __init__(
        self,
        api_key: str,
        *,
        resolver: Resolver | None = None,
        **kwargs: Any,
    ) -> None:
        self._config = StableImageConfig(api_key=api_key, **kwargs)
        self._log = get_logger("stableimage", level=self._config.log_level)
        self._resolver = resolver
        self._transport = AsyncStabilityTransport(self._config, logger=self._log)
        self._poller = TaskPoller(
            self.get_result, logger=self._log, metrics=self._config.metrics,
        )
        self._downloader: ImageDownloader | None = None

    @classmethod
    def from_config(
        cls,
        config: StableImageConfig,
        *,
        resolver: Resolver | None = None,
    ) -> AsyncStabilityClient:
        """Build a client from an existing :class:`StableImageConfig`."""
        values = {
            name: getattr(config, name)
            for name in config.__dataclass_fields__
            if name != "api_key"
        }
        return cls(config.api_key, resolver=resolver, **values)

    @property
    def config(self) -> StableImageConfig:
        return self._config

    # ------------------------------------------------------------------
    # Generate
    # ------------------------------------------------------------------

    async def generate_ultra(self, prompt: str, **options: Any) -> ImageResult:
        """Generate with Stable Image Ultra.

        *options* are the remaining :class:`UltraParams` fields; pass
        ``image`` (and ``strength``) for image-to-image.
        """
        return await self.run(UltraParams(prompt=prompt, **options))

    async def generate_core(self, prompt: str, **options: Any) -> ImageResult:
        """Generate with Stable Image Core.  See :class:`CoreParams`."""
        return await self.run(CoreParams(prompt=prompt, **options))

    async def generate_sd3(self, prompt: str, **options: Any) -> ImageResult:
        """Generate with Stable Diffusion 3.5.  See :class:`SD3Params`."""
        return await self.run(SD3Params(prompt=prompt, **options))

    # ------------------------------------------------------------------
    # Upscale
    # ------------------------------------------------------------------

    async def upscale_fast(self, image: str, **options: Any) -> ImageResult:
        return await self.run(UpscaleFastParams(image=image, **options))

    async def upscale_conservative(self, image: str, **options: Any) -> ImageResult:
        return await self.run(UpscaleConservativeParams(image=image, **options))

    async def upscale_creative(
        self,
        image: str,
        *,
        wait: bool = True,
        **options: Any,
    ) -> ImageResult | TaskHandle:
        """Creative upscale (asynchronous endpoint).

        With ``wait=True`` the task is polled to completion and the image is
        returned; with ``wait=False`` the :class:`TaskHandle` is returned for
        a later :meth:`wait_for_result` or :meth:`get_result`.
        """
        return await self.run(UpscaleCreativeParams(image=image, **options), wait=wait)

    # ------------------------------------------------------------------
    # Edit
    # ------------------------------------------------------------------

    async def erase(self, image: str, **options: Any) -> ImageResult:
        return await self.run(EraseParams(image=image, **options))

    async def inpaint(self, image: str, prompt: str, **options: Any) -> ImageResult:
        return await self.run(InpaintParams(image=image, prompt=prompt, **options))

    async def outpaint(self, image: str, **options: Any) -> ImageResult:
        return await self.run(OutpaintParams(image=image, **options))

    async def search_and_replace(
        self, image: str, prompt: str, search_prompt: str, **options: Any,
    ) -> ImageResult:
        return await self.run(SearchAndReplaceParams(
            image=image, prompt=prompt, search_prompt=search_prompt, **options,
        ))

    async def search_and_recolor(
        self, image: str, prompt: str, select_prompt: str, **options: Any,
    ) -> ImageResult:
        return await self.run(SearchAndRecolorParams(
            image=image, prompt=prompt, select_prompt=select_prompt, **options,
        ))

    async def remove_background(self, image: str, **options: Any) -> ImageResult:
        return await self.run(RemoveBackgroundParams(image=image, **options))

    async def replace_background_and_relight(
        self,
        subject_image: str,
        *,
        wait: bool = True,
        **options: Any,
    ) -> ImageResult | TaskHandle:
        """Replace the background and relight the subject (asynchronous endpoint).

        See :meth:`upscale_creative` for the meaning of *wait*.
        """
        return await self.run(
            ReplaceBackgroundParams(subject_image=subject_image, **options), wait=wait,
        )

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def control_sketch(self, image: str, prompt: str, **options: Any) -> ImageResult:
        return await self.run(ControlSketchParams(image=image, prompt=prompt, **options))

    async def control_structure(self, image: str, prompt: str, **options: Any) -> ImageResult:
        return await self.run(ControlStructureParams(image=image, prompt=prompt, **options))

    async def control_style(self, image: str, prompt: str, **options: Any) -> ImageResult:
        return await self.run(ControlStyleParams(image=image, prompt=prompt, **options))

    async def control_style_transfer(
        self, init_image: str, style_image: str, **options: Any,
    ) -> ImageResult:
        return await self.run(ControlStyleTransferParams(
            init_image=init_image, style_image=style_image, **options,
        ))

    # ------------------------------------------------------------------
    # Generic dispatch
    # ------------------------------------------------------------------

    async def run(self, params: OperationParams, *, wait: bool = True) -> Any:
        """Validate and send one operation.

        Parameters
        ----------
        params:
            Any :class:`OperationParams` subclass instance.
        wait:
            For asynchronous operations, whether to poll to completion.

        Returns
        -------
        ImageResult | TaskHandle
            The image for synchronous operations (and for asynchronous ones
            when *wait* is true); otherwise the task handle.

        Raises
        ------
        StableImageInvalidParametersError
            If *params* violates its constraints.
        StableImageSourceError
            If an image reference fails validation.  Raised before any
            request is sent.
        StableImageAPIError
            On any error reported by the service.
        """
        operation = params.OPERATION
        params.validate()
        images = await self._validate_images(params.image_fields())

        self._log.info(
            "Running operation",
            extra={"extra_fields": {
                "op": operation,
                "images": sorted(images),
            }},
        )
        form = await build_form(
            params.form_fields(),
            images,
            downloader=self._get_downloader() if _has_remote(images) else None,
            logger=self._log,
        )

        expects_task = is_async_operation(operation)
        outcome = await self._transport.request(
            "POST",
            endpoint_path(operation),
            form=form,
            accept=ACCEPT_IMAGE,
            expects_task=expects_task,
        )

        if isinstance(outcome, ImageResult):
            return outcome
        if isinstance(outcome, TaskHandle):
            if not wait:
                return outcome
            self._log.info(
                "Got task id, waiting for result",
                extra={"extra_fields": {"op": operation, "task_id": outcome.id}},
            )
            return await self.wait_for_result(outcome.id)

        if self._config.production:
            raise StableImageUnknownUpstreamError(
                message=GENERIC_ERROR_MESSAGE,
                context={"operation": operation},
            )
        raise StableImageUnknownUpstreamError(
            message=f"Expected an image from {operation}, got a JSON response",
            context={"operation": operation, "body": outcome.data},
        )

    # ------------------------------------------------------------------
    # Tasks and account
    # ------------------------------------------------------------------

    async def get_result(self, task_id: str) -> Outcome:
        """Query the status of an asynchronous task once.

        Returns an :class:`ImageResult` when the task is done, otherwise the
        service's in-progress body (:class:`TaskHandle` or :class:`JsonBody`).
        """
        return await self._transport.request(
            "GET",
            f"{endpoint_path('results')}/{task_id}",
            accept=ACCEPT_ANY,
        )

    async def wait_for_result(
        self,
        task_id: str,
        *,
        poll_interval: float | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ImageResult:
        """Poll *task_id* until it yields an image.

        *poll_interval* and *timeout* default to
        ``config.poll_interval_seconds`` and ``config.poll_timeout_seconds``.
        See :meth:`TaskPoller.wait_for_result` for the timing guarantees.
        """
        return await self._poller.wait_for_result(
            task_id,
            poll_interval if poll_interval is not None else self._config.poll_interval_seconds,
            timeout if timeout is not None else self._config.poll_timeout_seconds,
            cancel_event=cancel_event,
        )

    async def get_balance(self) -> BalanceResult:
        """Return the account's remaining credits."""
        outcome = await self._transport.request(
            "GET", endpoint_path("balance"), accept=ACCEPT_JSON,
        )
        credits = outcome.data.get("credits") if isinstance(outcome, JsonBody) else None
        if not isinstance(credits, (int, float)) or isinstance(credits, bool):
            raise StableImageUnknownUpstreamError(
                message="Balance response did not include a credits value",
                context={"endpoint": endpoint_path("balance")},
            )
        self._log.info(
            "Account balance",
            extra={"extra_fields": {"op": "get_balance", "credits": credits}},
        )
        return BalanceResult(credits=float(credits))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP transport and the image downloader, if any."""
        await self._transport.close()
        if self._downloader is not None:
            await self._downloader.aclose()
            self._downloader = None

    async def __aenter__(self) -> AsyncStabilityClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _validate_images(self, refs: dict[str, str]) -> dict[str, ValidatedImageSource]:
        validated: dict[str, ValidatedImageSource] = {}
        for field_name, ref in refs.items():
            validated[field_name] = await validate_source(
                ref, resolver=self._resolver, logger=self._log,
            )
        return validated

    def _get_downloader(self) -> ImageDownloader:
        if self._downloader is None:
            self._downloader = ImageDownloader(
                timeout_seconds=self._config.download_timeout_seconds,
                max_bytes=self._config.max_download_bytes,
                max_redirects=self._config.max_redirects,
                resolver=self._resolver,
                logger=self._log,
            )
        return self._downloader


def _has_remote(images: dict[str, ValidatedImageSource]) -> bool:
    return any(isinstance(v.source, RemoteUrl) for v in images.values())
