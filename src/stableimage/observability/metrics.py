"""Metrics hook protocol and no-op default implementation.

The transport and the task poller emit counters and timings.  By default a
:class:`NoopMetricsHook` discards them; pass any object satisfying
:class:`MetricsHook` as ``StableImageConfig.metrics`` to route them to a
real backend.

Emitted metric names:

* ``stableimage.requests_total``               -- counter (tags: method, endpoint, status)
* ``stableimage.request_duration_ms``          -- timing
* ``stableimage.poll_attempts_total``          -- counter
* ``stableimage.poll_transient_errors_total``  -- counter
* ``stableimage.poll_duration_ms``             -- timing (tags: outcome)
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class MetricsHook(Protocol):
    """Protocol that any metrics backend must satisfy.

    *tags* keys and values are strings; backends translate them into
    whatever labelling scheme they support.
    """

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Increment a counter metric."""
        ...

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a duration in milliseconds."""
        ...


class NoopMetricsHook:
    """Metrics implementation that silently discards all data points."""

    __slots__ = ()

    def increment(
        self,
        name: str,
        value: int = 1,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass

    def timing(
        self,
        name: str,
        ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        pass
