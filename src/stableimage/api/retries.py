"""Transient-versus-permanent error classification.

The task poller keeps polling through transient failures and aborts on
anything else.  Classification is by error kind; a fallback on the message
text covers errors raised outside this package (for example by a custom
fetch function) that still mention a rate limit or a gateway status.
"""

from __future__ import annotations

import re

from stableimage.errors import (
    StableImageError,
    StableImageRateLimitError,
    StableImageTransientError,
)

# HTTP statuses that indicate a gateway condition expected to clear.
TRANSIENT_STATUSES: frozenset[int] = frozenset({502, 503})

_TRANSIENT_KINDS: tuple[type[StableImageError], ...] = (
    StableImageRateLimitError,
    StableImageTransientError,
)

_TRANSIENT_MESSAGE_RE = re.compile(r"rate limit|\b50[23]\b", re.IGNORECASE)


def is_transient_status(status_code: int | None) -> bool:
    """Return ``True`` for gateway statuses that should be retried."""
    return status_code in TRANSIENT_STATUSES


def is_transient(exc: BaseException) -> bool:
    """Decide whether *exc* should be retried by the poller.

    Parameters
    ----------
    exc:
        The exception raised by a status query.

    Returns
    -------
    bool
        ``True`` for rate limiting and 502/503 gateway errors;
        ``False`` for every other error, which must propagate.
    """
    if isinstance(exc, _TRANSIENT_KINDS):
        return True
    if isinstance(exc, StableImageError):
        return False
    return bool(_TRANSIENT_MESSAGE_RE.search(str(exc)))
