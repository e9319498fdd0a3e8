"""Task completion polling.

:class:`TaskPoller` waits for one asynchronous task to finish by querying
its status until an image comes back, a permanent error occurs, or the
wall-clock budget runs out.

Valid transitions::

    PENDING -> PENDING | COMPLETED | FAILED | TIMED_OUT
    COMPLETED, FAILED, TIMED_OUT -> (terminal)

Termination: every pass through the loop either reaches a terminal state or
suspends for ``poll_interval > 0`` seconds, and a query is only issued while
it can start before the deadline.  A task that never completes therefore
sees at most ``ceil(timeout / poll_interval)`` queries, and the call ends
within ``timeout + poll_interval + one round trip``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from stableimage.errors import StableImageTimeoutError
from stableimage.models import ImageResult, Outcome, PollSession, TaskState
from stableimage.observability import MetricsHook, NoopMetricsHook, get_logger

from .retries import is_transient

FetchResult = Callable[[str], Awaitable[Outcome]]
Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[object]]


def _is_set(event: asyncio.Event | None) -> bool:
    return event is not None and event.is_set()


class TaskPoller:
    """Poll a remote task until it completes.

    Parameters
    ----------
    fetch:
        ``async (task_id) -> Outcome`` -- one status query.  An
        :class:`ImageResult` means the task is done; any other outcome means
        it is still processing.
    logger:
        Logger for progress messages.  Defaults to ``stableimage.poller``.
    metrics:
        Metrics hook.  Defaults to :class:`NoopMetricsHook`.
    clock:
        Monotonic clock in seconds.
    sleep:
        Coroutine used to suspend between queries.

    A single poller may serve concurrent ``wait_for_result`` calls: all
    per-call state lives in a :class:`PollSession` local to the call.
    """

    VALID_TRANSITIONS: dict[TaskState, set[TaskState]] = {
        TaskState.PENDING: {
            TaskState.PENDING,
            TaskState.COMPLETED,
            TaskState.FAILED,
            TaskState.TIMED_OUT,
        },
        TaskState.COMPLETED: set(),
        TaskState.FAILED: set(),
        TaskState.TIMED_OUT: set(),
    }

    def __init__(
        self,
        fetch: FetchResult,
        *,
        logger: logging.Logger | None = None,
        metrics: MetricsHook | None = None,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._fetch = fetch
        self._log = logger or get_logger("stableimage.poller")
        self._metrics = metrics if metrics is not None else NoopMetricsHook()
        self._clock = clock
        self._sleep = sleep

    def _transition(self, session: PollSession, new_state: TaskState) -> None:
        allowed = self.VALID_TRANSITIONS[session.state]
        if new_state not in allowed:
            raise ValueError(
                f"Invalid task state transition: {session.state.value} -> "
                f"{new_state.value} for task {session.task_id}"
            )
        session.state = new_state

    async def wait_for_result(
        self,
        task_id: str,
        poll_interval: float,
        timeout: float,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> ImageResult:
        """Poll *task_id* until it yields an image.

        Status queries are strictly sequential.  Elapsed time is measured
        from a monotonic reading taken before the first query and is never
        reset by retries.  The timeout is checked after each completed
        query: when the next query could not start before the deadline the
        poller waits out the remaining budget and raises.  An in-flight
        query is never aborted, so the call may overrun *timeout* by up to
        one *poll_interval* plus one network round trip.  Timing out only
        stops the wait: the remote task is not cancelled.

        Parameters
        ----------
        task_id:
            Identifier returned by an asynchronous endpoint.
        poll_interval:
            Seconds to wait between queries.
        timeout:
            Wall-clock budget in seconds.
        cancel_event:
            Optional event.  Setting it interrupts the current wait and
            ends the call with :class:`StableImageTimeoutError`
            (``reason="cancelled"``) at the next timeout check.

        Returns
        -------
        ImageResult
            The first image observed.

        Raises
        ------
        StableImageTimeoutError
            If no image arrived within *timeout*.  The message names the
            task id and the timeout so the task can be fetched later.
        StableImageError
            Any permanent error from a status query, unchanged.
        ValueError
            If *poll_interval* or *timeout* is not positive.
        """
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")
        if timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {timeout}")

        session = PollSession(task_id=task_id, started_at=self._clock())
        self._log.info(
            "Polling for task",
            extra={"extra_fields": {
                "op": "wait_for_result",
                "task_id": task_id,
                "poll_interval": poll_interval,
                "timeout": timeout,
            }},
        )

        while session.state is TaskState.PENDING:
            session.attempts += 1
            self._metrics.increment("stableimage.poll_attempts_total")
            self._log.debug(
                "Polling attempt",
                extra={"extra_fields": {
                    "op": "wait_for_result",
                    "task_id": task_id,
                    "attempt": session.attempts,
                    "elapsed": round(session.observe(self._clock()), 3),
                }},
            )

            result = await self._query(session)
            if result is not None:
                self._transition(session, TaskState.COMPLETED)
                self._finish(session, "completed")
                return result

            elapsed = session.observe(self._clock())
            if _is_set(cancel_event) or elapsed + poll_interval >= timeout:
                await self._expire(session, timeout, cancel_event)

            self._transition(session, TaskState.PENDING)
            await self._suspend(poll_interval, cancel_event)
            if _is_set(cancel_event):
                await self._expire(session, timeout, cancel_event)

        # Only reachable if a transition left PENDING without returning.
        raise AssertionError(f"poll loop exited in state {session.state.value}")

    async def _expire(
        self,
        session: PollSession,
        timeout: float,
        cancel_event: asyncio.Event | None,
    ) -> None:
        """Wait out the rest of the budget, then raise the timeout error.

        Reached when the next query could not start before the deadline, or
        when *cancel_event* is set (in which case there is no wait).
        """
        if not _is_set(cancel_event):
            remaining = timeout - session.observe(self._clock())
            if remaining > 0:
                await self._suspend(remaining, cancel_event)
        cancelled = _is_set(cancel_event)
        session.observe(self._clock())
        self._transition(session, TaskState.TIMED_OUT)
        self._finish(session, "cancelled" if cancelled else "timeout")
        raise self._timeout_error(session, timeout, cancelled=cancelled)

    async def _query(self, session: PollSession) -> ImageResult | None:
        """Run one status query; return the image, ``None`` if still pending."""
        try:
            outcome = await self._fetch(session.task_id)
        except Exception as exc:
            if not is_transient(exc):
                self._transition(session, TaskState.FAILED)
                self._finish(session, "failed")
                raise
            session.transient_errors += 1
            self._metrics.increment("stableimage.poll_transient_errors_total")
            self._log.warning(
                "Transient error, will retry",
                extra={"extra_fields": {
                    "op": "wait_for_result",
                    "task_id": session.task_id,
                    "attempt": session.attempts,
                    "error": str(exc),
                }},
            )
            return None

        if isinstance(outcome, ImageResult) and outcome.image:
            return outcome

        self._log.debug(
            "Task still in progress",
            extra={"extra_fields": {"op": "wait_for_result", "task_id": session.task_id}},
        )
        return None

    async def _suspend(self, seconds: float, cancel_event: asyncio.Event | None) -> None:
        if cancel_event is None:
            await self._sleep(seconds)
            return
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    def _finish(self, session: PollSession, outcome: str) -> None:
        elapsed = session.observe(self._clock())
        self._metrics.timing(
            "stableimage.poll_duration_ms", elapsed * 1000, tags={"outcome": outcome},
        )
        log_fn = self._log.info if outcome == "completed" else self._log.warning
        log_fn(
            f"Task {outcome}",
            extra={"extra_fields": {
                "op": "wait_for_result",
                "task_id": session.task_id,
                "attempts": session.attempts,
                "transient_errors": session.transient_errors,
                "elapsed": round(elapsed, 3),
            }},
        )

    @staticmethod
    def _timeout_error(
        session: PollSession,
        timeout: float,
        *,
        cancelled: bool,
    ) -> StableImageTimeoutError:
        if cancelled:
            message = (
                f"Stopped waiting for task {session.task_id} after "
                f"{session.elapsed:.1f} seconds (timeout {timeout:g} seconds): cancelled"
            )
        else:
            message = f"Timeout waiting for task {session.task_id} after {timeout:g} seconds"
        return StableImageTimeoutError(
            message=message,
            context={
                "task_id": session.task_id,
                "timeout_seconds": timeout,
                "attempts": session.attempts,
                "elapsed_seconds": session.elapsed,
                "reason": "cancelled" if cancelled else "timeout",
            },
        )
