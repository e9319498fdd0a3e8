"""Public data models for the stableimage client.

This module contains the image-source types, the request outcome variants,
the task-polling state, and the result types returned by the client.  All
types are plain dataclasses with no behaviour beyond what is needed for
structural equality and hashing (where frozen).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ImageSourceType(str, Enum):
    """Classification of a user-supplied image reference."""

    LOCAL_PATH = "local_path"
    """A path to a file on the local filesystem."""

    REMOTE_URL = "remote_url"
    """An ``http://`` or ``https://`` URL."""


class TaskState(str, Enum):
    """States of the task-polling state machine."""

    PENDING = "pending"
    """The remote task is still processing."""

    COMPLETED = "completed"
    """An image was returned."""

    FAILED = "failed"
    """A permanent error aborted polling."""

    TIMED_OUT = "timed_out"
    """The wall-clock budget ran out before the task completed."""


# ---------------------------------------------------------------------------
# Image sources
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LocalPath:
    """An image referenced by a local filesystem path."""

    path: str

    source_type = ImageSourceType.LOCAL_PATH

    def __str__(self) -> str:
        return self.path


@dataclass(frozen=True)
class RemoteUrl:
    """An image referenced by URL."""

    url: str

    source_type = ImageSourceType.REMOTE_URL

    def __str__(self) -> str:
        return self.url


ImageSource = Union[LocalPath, RemoteUrl]


@dataclass(frozen=True)
class ValidatedImageSource:
    """An :data:`ImageSource` together with proof that it passed validation.

    Only the functions in :mod:`stableimage.source.validate` construct
    instances.  For local paths ``data`` holds the bytes that were
    magic-byte checked, so the file is read exactly once; for remote URLs
    ``data`` is ``None`` and ``resolved_address`` records the address the
    hostname resolved to at validation time (informational only: it is
    never pinned, each fetch re-resolves).
    """

    source: ImageSource
    mime_type: str | None = None
    data: bytes | None = field(default=None, repr=False)
    resolved_address: str | None = None

    @property
    def source_type(self) -> ImageSourceType:
        return self.source.source_type


# ---------------------------------------------------------------------------
# Request outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImageResult:
    """A synchronous image response (or a completed async task)."""

    image: bytes = field(repr=False)
    finish_reason: str | None = None
    seed: str | None = None
    content_type: str | None = None

    def __repr__(self) -> str:
        return (
            f"ImageResult(image=<{len(self.image)}_bytes>, "
            f"finish_reason={self.finish_reason!r}, seed={self.seed!r})"
        )


@dataclass(frozen=True)
class TaskHandle:
    """Identifier of an accepted asynchronous task."""

    id: str
    status: str | None = None


@dataclass(frozen=True)
class JsonBody:
    """Any other structured response body."""

    data: dict[str, Any]


Outcome = Union[ImageResult, TaskHandle, JsonBody]
"""What a single dispatched request resolves to."""


# ---------------------------------------------------------------------------
# Task polling
# ---------------------------------------------------------------------------

@dataclass
class PollSession:
    """Mutable state for one ``wait_for_result`` call.

    Owned exclusively by the poller for the duration of a single call and
    never shared between concurrent polls.
    """

    task_id: str
    started_at: float
    attempts: int = 0
    transient_errors: int = 0
    elapsed: float = 0.0
    state: TaskState = TaskState.PENDING

    def observe(self, now: float) -> float:
        """Record elapsed time at *now*; elapsed never decreases."""
        self.elapsed = max(self.elapsed, now - self.started_at)
        return self.elapsed


# ---------------------------------------------------------------------------
# Other results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BalanceResult:
    """Account credit balance."""

    credits: float
