"""stableimage.api -- HTTP transport and task polling.

This sub-package provides:

* :mod:`.retries` -- Transient-versus-permanent error classification.
* :mod:`.transport` -- HTTP transport with auth, outcome interpretation and
  error mapping.
* :mod:`.poller` -- Polling an asynchronous task until it yields an image.
"""

from __future__ import annotations

from .poller import TaskPoller
from .retries import TRANSIENT_STATUSES, is_transient, is_transient_status
from .transport import GENERIC_ERROR_MESSAGE, AsyncStabilityTransport

__all__ = [
    "GENERIC_ERROR_MESSAGE",
    "TRANSIENT_STATUSES",
    "AsyncStabilityTransport",
    "TaskPoller",
    "is_transient",
    "is_transient_status",
]
