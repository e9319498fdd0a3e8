"""Full error hierarchy for the stableimage client.

Every public error class inherits from StableImageError. Each carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, an optional structured ``context`` dict, and an optional
``cause`` (chained exception).

The taxonomy is closed.  Image-source problems derive from
:class:`StableImageSourceError`; everything reported by (or on the way to)
the remote service derives from :class:`StableImageAPIError`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar

# ---------------------------------------------------------------------------
# Error code enum
# ---------------------------------------------------------------------------

class ErrorCode(str, Enum):
    """Machine-readable error codes for every error the client can raise."""

    INVALID_SOURCE = "INVALID_SOURCE"
    UNSAFE_SOURCE = "UNSAFE_SOURCE"
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    SOURCE_UNREADABLE = "SOURCE_UNREADABLE"
    SOURCE_NOT_AN_IMAGE = "SOURCE_NOT_AN_IMAGE"
    UNAUTHORIZED = "UNAUTHORIZED"
    CONTENT_MODERATED = "CONTENT_MODERATED"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    RATE_LIMITED = "RATE_LIMITED"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    TIMEOUT = "TIMEOUT"
    TRANSIENT_UPSTREAM = "TRANSIENT_UPSTREAM"
    UNKNOWN_UPSTREAM = "UNKNOWN_UPSTREAM"


# ---------------------------------------------------------------------------
# Base error
# ---------------------------------------------------------------------------

class StableImageError(Exception):
    """Base exception for all stableimage errors.

    Parameters
    ----------
    code:
        A value from :class:`ErrorCode` (or any string) identifying the
        error category.
    message:
        A developer-friendly description of what went wrong.
    context:
        Arbitrary structured data providing extra diagnostic detail.
        Keys and expected types are documented per subclass.
    cause:
        The underlying exception, if this error wraps another.
    """

    def __init__(
        self,
        code: str,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.code: str = code
        self.message: str = message
        self.context: dict[str, Any] = context or {}
        self.cause: Exception | None = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Image source errors
# ---------------------------------------------------------------------------

class StableImageSourceError(StableImageError):
    """Base class for errors raised while validating an image source.

    Always raised before any request is sent to the remote service.
    Subclasses only set :attr:`default_code`.
    """

    default_code: ClassVar[str] = ErrorCode.INVALID_SOURCE

    def __init__(
        self,
        message: str = "Image source error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=self.default_code,
            message=message,
            context=context,
            cause=cause,
        )


class StableImageInvalidSourceError(StableImageSourceError):
    """The URL is malformed, uses a scheme other than ``https``, or its host
    cannot be resolved.

    Context keys: ``src``, ``reason`` (``invalid_url``, ``scheme_not_https``,
    ``dns_not_found``, ``dns_lookup_failed``).
    """

    default_code = ErrorCode.INVALID_SOURCE


class StableImageUnsafeSourceError(StableImageSourceError):
    """The URL points (literally or after DNS resolution) at a blocked target.

    Context keys: ``src``, ``host``, ``reason``, and ``resolved_address``
    when the block came from a DNS lookup.
    """

    default_code = ErrorCode.UNSAFE_SOURCE


class StableImageSourceNotFoundError(StableImageSourceError):
    """The referenced local image file does not exist.

    Context keys: ``src``.
    """

    default_code = ErrorCode.SOURCE_NOT_FOUND


class StableImageSourceUnreadableError(StableImageSourceError):
    """The image bytes cannot be read: a local file without permission, or a
    remote fetch that failed or exceeded its limits.

    Context keys: ``src``, ``reason`` (``permission_denied``,
    ``unreadable``); for remote fetches ``download_failed``, ``too_large``,
    ``too_many_redirects``.
    """

    default_code = ErrorCode.SOURCE_UNREADABLE


class StableImageSourceNotAnImageError(StableImageSourceError):
    """The bytes do not start with a PNG, JPEG, WebP or GIF signature.

    Context keys: ``src``, ``size_bytes``.
    """

    default_code = ErrorCode.SOURCE_NOT_AN_IMAGE


# ---------------------------------------------------------------------------
# API / transport errors
# ---------------------------------------------------------------------------

class StableImageAPIError(StableImageError):
    """Base class for errors reported by, or on the way to, the remote API.

    Context keys: ``status_code`` when a response was received, ``method``,
    ``endpoint``.  ``body`` is only present outside production mode.
    """

    default_code: ClassVar[str] = ErrorCode.UNKNOWN_UPSTREAM

    def __init__(
        self,
        message: str = "API error",
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            code=self.default_code,
            message=message,
            context=context,
            cause=cause,
        )


class StableImageAuthError(StableImageAPIError):
    """API returned 401, or no API key was configured.

    Context keys: ``key_hint`` (redacted, last 4 characters only).
    """

    default_code = ErrorCode.UNAUTHORIZED


class StableImageContentModeratedError(StableImageAPIError):
    """API returned 403: the request was flagged by content moderation."""

    default_code = ErrorCode.CONTENT_MODERATED


class StableImagePayloadTooLargeError(StableImageAPIError):
    """API returned 413: the multipart payload exceeded the upload limit."""

    default_code = ErrorCode.PAYLOAD_TOO_LARGE


class StableImageRateLimitError(StableImageAPIError):
    """API returned 429: rate limit exceeded.

    Treated as transient while polling a task.
    """

    default_code = ErrorCode.RATE_LIMITED


class StableImageInvalidParametersError(StableImageAPIError):
    """The request parameters were rejected.

    Raised by the API on 400, and locally by parameter validation before
    any request is sent.

    Context keys: ``errors`` (list of human-readable violations).
    """

    default_code = ErrorCode.INVALID_PARAMETERS


class StableImageTimeoutError(StableImageAPIError):
    """An async task did not complete within the polling budget.

    The remote task is not cancelled and may still complete server-side.

    Context keys: ``task_id``, ``timeout_seconds``, ``attempts``,
    ``elapsed_seconds``, ``reason`` (``timeout`` or ``cancelled``).
    """

    default_code = ErrorCode.TIMEOUT


class StableImageTransientError(StableImageAPIError):
    """A gateway condition (502/503) expected to clear on retry.

    Retried silently by the task poller; propagates from single requests.
    """

    default_code = ErrorCode.TRANSIENT_UPSTREAM


class StableImageUnknownUpstreamError(StableImageAPIError):
    """Any other failure: network error or unmapped HTTP status."""

    default_code = ErrorCode.UNKNOWN_UPSTREAM
