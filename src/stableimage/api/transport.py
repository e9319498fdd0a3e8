"""Async HTTP transport for the image-generation API.

Each request goes through the same lifecycle:

1. Attach the bearer credential and the ``accept`` header.
2. Send the (optionally multipart) request.
3. On ``2xx`` -- interpret the response into an :data:`Outcome`:
   ``200`` + ``image/*`` is an :class:`ImageResult`; ``202`` is a
   :class:`TaskHandle`; ``200`` + JSON with an ``id`` is a
   :class:`TaskHandle` only for endpoints declared asynchronous; anything
   else is a :class:`JsonBody`.
4. On an error status -- parse the body as JSON (bodies negotiated as
   binary still carry JSON errors) and raise the mapped error.
5. On a network failure -- raise :class:`StableImageUnknownUpstreamError`.

Requests are never retried here; the task poller owns retry decisions.
"""

from __future__ import annotations

import json as _json
import logging
import time
from typing import Any

import httpx

from stableimage.config import StableImageConfig
from stableimage.errors import (
    StableImageAuthError,
    StableImageContentModeratedError,
    StableImageInvalidParametersError,
    StableImagePayloadTooLargeError,
    StableImageRateLimitError,
    StableImageTransientError,
    StableImageUnknownUpstreamError,
)
from stableimage.form import MultipartForm
from stableimage.models import ImageResult, JsonBody, Outcome, TaskHandle
from stableimage.observability import NoopMetricsHook, get_logger
from stableimage.utils.redact import redact, redact_api_key

from .retries import is_transient_status

GENERIC_ERROR_MESSAGE = "An error occurred while processing your request"

ACCEPT_IMAGE = "image/*"
ACCEPT_ANY = "*/*"
ACCEPT_JSON = "application/json"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, whatever its declared content type.

    Returns ``{}`` for an empty body and the (truncated) text when the body
    is not JSON.
    """
    if not response.content:
        return {}
    try:
        return _json.loads(response.content)
    except (ValueError, UnicodeDecodeError):
        return response.text[:500]


def _error_detail(body: Any) -> str:
    if isinstance(body, str):
        return body
    return _json.dumps(body, default=str)


def _raise_for_status(
    response: httpx.Response,
    method: str,
    endpoint: str,
    *,
    production: bool = False,
    key_hint: str | None = None,
) -> None:
    """Raise the :class:`StableImageAPIError` subclass for an error response.

    401, 403, 413 and 429 carry a fixed sentence in every mode.  Outside
    production mode every other status keeps the upstream detail; in
    production mode it is replaced by :data:`GENERIC_ERROR_MESSAGE` and the
    body is left out of the context.  The exception class never changes.
    A 401 carries *key_hint* (already redacted) when one is given.
    """
    status = response.status_code
    body = _parse_body(response)

    ctx: dict[str, Any] = {"status_code": status, "method": method, "endpoint": endpoint}
    if not production:
        ctx["body"] = body

    if status == 401:
        raise StableImageAuthError(
            message="Authentication failed. Check your API key.",
            context={**ctx, "key_hint": key_hint} if key_hint else ctx,
        )
    if status == 403:
        raise StableImageContentModeratedError(
            message="Content moderation flagged your request.",
            context=ctx,
        )
    if status == 413:
        raise StableImagePayloadTooLargeError(
            message="Request payload too large (max 10MB).",
            context=ctx,
        )
    if status == 429:
        raise StableImageRateLimitError(
            message="Rate limit exceeded. Please wait before retrying.",
            context=ctx,
        )
    if status == 400:
        errors = body.get("errors") if isinstance(body, dict) else None
        if isinstance(errors, list) and errors:
            detail = ", ".join(str(e) for e in errors)
        else:
            detail = _error_detail(body)
        if production:
            raise StableImageInvalidParametersError(message=GENERIC_ERROR_MESSAGE, context=ctx)
        raise StableImageInvalidParametersError(
            message=f"Invalid parameters: {detail}",
            context={**ctx, "errors": errors if isinstance(errors, list) else [detail]},
        )

    detail = f"Request failed with status code {status}: {_error_detail(body)}"
    if is_transient_status(status):
        raise StableImageTransientError(
            message=GENERIC_ERROR_MESSAGE if production else detail,
            context=ctx,
        )
    raise StableImageUnknownUpstreamError(
        message=GENERIC_ERROR_MESSAGE if production else detail,
        context=ctx,
    )


def _interpret(response: httpx.Response, *, expects_task: bool) -> Outcome:
    """Map a successful response to its :data:`Outcome` variant."""
    status = response.status_code
    content_type = response.headers.get("content-type", "").lower()

    if status == 200 and content_type.startswith("image/"):
        return ImageResult(
            image=response.content,
            finish_reason=response.headers.get("finish-reason"),
            seed=response.headers.get("seed"),
            content_type=content_type,
        )

    body = _parse_body(response)

    if status == 202:
        task_id = body.get("id") if isinstance(body, dict) else None
        if not task_id:
            raise StableImageUnknownUpstreamError(
                message="Task accepted (HTTP 202) but the response carried no task id",
                context={"status_code": status},
            )
        return TaskHandle(id=str(task_id), status=body.get("status"))

    if (
        expects_task
        and status == 200
        and "application/json" in content_type
        and isinstance(body, dict)
        and body.get("id")
    ):
        return TaskHandle(id=str(body["id"]), status=body.get("status"))

    if isinstance(body, dict):
        return JsonBody(data=body)
    return JsonBody(data={"data": body})


# ---------------------------------------------------------------------------
# Async transport
# ---------------------------------------------------------------------------

class AsyncStabilityTransport:
    """Asynchronous HTTP transport with auth, outcome interpretation and
    error mapping.

    Parameters
    ----------
    config:
        A :class:`StableImageConfig` controlling base URL, timeouts, proxy,
        production mode and metrics.
    logger:
        Logger for request/response diagnostics.  Defaults to
        ``stableimage.transport``.

    Raises
    ------
    StableImageAuthError
        If ``config.api_key`` is empty.
    """

    def __init__(
        self,
        config: StableImageConfig,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        if not config.api_key:
            raise StableImageAuthError(
                message="API key is required. Please provide STABILITY_API_KEY.",
            )
        self._config = config
        self._log = logger or get_logger("stableimage.transport")
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        self._key_hint = redact_api_key(config.api_key)

        proxy: httpx.URL | str | None = config.http_proxy
        self._client = httpx.AsyncClient(
            base_url=config.base_url,
            headers={"authorization": f"Bearer {config.api_key}"},
            timeout=httpx.Timeout(config.timeout_seconds),
            proxy=proxy,
            follow_redirects=False,
        )

    # -- public API --------------------------------------------------------

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        form: MultipartForm | None = None,
        accept: str = ACCEPT_IMAGE,
        expects_task: bool = False,
        headers: dict[str, str] | None = None,
    ) -> Outcome:
        """Send one request and interpret the response.

        Parameters
        ----------
        method:
            HTTP method (``GET`` or ``POST``).
        endpoint:
            Path relative to ``base_url``.
        form:
            Multipart body for ``POST`` requests.
        accept:
            Requested representation: ``image/*`` for generation endpoints,
            ``*/*`` for the results endpoint, ``application/json`` for
            account endpoints.
        expects_task:
            Whether the endpoint is asynchronous, i.e. whether a ``200``
            JSON body carrying an ``id`` is a task handle.
        headers:
            Extra per-request headers.

        Returns
        -------
        Outcome
            :class:`ImageResult`, :class:`TaskHandle` or :class:`JsonBody`.

        Raises
        ------
        StableImageAuthError
            On 401.
        StableImageContentModeratedError
            On 403.
        StableImagePayloadTooLargeError
            On 413.
        StableImageRateLimitError
            On 429.
        StableImageInvalidParametersError
            On 400.
        StableImageTransientError
            On 502 and 503.
        StableImageUnknownUpstreamError
            On network failures and any other status.
        """
        method = method.upper()
        request_headers = {"accept": accept, **(headers or {})}
        kwargs: dict[str, Any] = {"headers": request_headers}
        if form is not None and method == "POST":
            kwargs.update(form.as_httpx_kwargs())

        self._log.debug(
            "Sending request",
            extra={"extra_fields": redact({
                "op": "request",
                "method": method,
                "endpoint": endpoint,
                "api_key": self._key_hint,
                "headers": request_headers,
                "form": form.describe() if form is not None else None,
            }, self._config.api_key)},
        )

        t0 = time.monotonic()
        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as exc:
            self._metrics.increment(
                "stableimage.requests_total",
                tags={"method": method, "endpoint": endpoint, "status": "error"},
            )
            self._log.error(
                "Request failed",
                extra={"extra_fields": {
                    "op": "request", "method": method, "endpoint": endpoint,
                    "error": f"{type(exc).__name__}: {exc}",
                }},
            )
            message = (
                GENERIC_ERROR_MESSAGE
                if self._config.production
                else f"Network error on {method} {endpoint}: {exc}"
            )
            raise StableImageUnknownUpstreamError(
                message=message,
                context={"method": method, "endpoint": endpoint},
                cause=exc,
            ) from exc
        elapsed_ms = (time.monotonic() - t0) * 1000

        status = response.status_code
        tags = {"method": method, "endpoint": endpoint, "status": str(status)}
        self._metrics.increment("stableimage.requests_total", tags=tags)
        self._metrics.timing("stableimage.request_duration_ms", elapsed_ms, tags=tags)
        self._log.debug(
            "Response received",
            extra={"extra_fields": {
                "op": "request",
                "method": method,
                "endpoint": endpoint,
                "status_code": status,
                "content_type": response.headers.get("content-type"),
                "elapsed_ms": round(elapsed_ms, 1),
            }},
        )

        if 200 <= status < 300:
            outcome = _interpret(response, expects_task=expects_task)
            if isinstance(outcome, ImageResult):
                self._log.info(
                    "Received image response",
                    extra={"extra_fields": {"op": "request", "size_bytes": len(outcome.image)}},
                )
            elif isinstance(outcome, TaskHandle):
                self._log.info(
                    "Received async task id",
                    extra={"extra_fields": {"op": "request", "task_id": outcome.id}},
                )
            return outcome

        self._log.error(
            f"HTTP {status}",
            extra={"extra_fields": {
                "op": "request",
                "method": method,
                "endpoint": endpoint,
                "status_code": status,
                "body": _parse_body(response),
            }},
        )
        _raise_for_status(
            response, method, endpoint,
            production=self._config.production, key_hint=self._key_hint,
        )
        raise AssertionError("unreachable")  # pragma: no cover

    async def close(self) -> None:
        """Close the underlying async HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> AsyncStabilityTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
