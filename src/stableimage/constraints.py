"""Endpoints and parameter constraint tables.

Read-only data consulted by :mod:`stableimage.params` before a request is
built.  Values mirror the service's published limits.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_OUTPUT_FORMAT = "png"

PROMPT_MAX_LENGTH = 10000

SEED_MIN = 0
SEED_MAX = 4294967294

ASPECT_RATIOS: tuple[str, ...] = (
    "21:9", "16:9", "3:2", "5:4", "1:1", "4:5", "2:3", "9:16", "9:21",
)

OUTPUT_FORMATS: tuple[str, ...] = ("jpeg", "png", "webp")

STYLE_PRESETS: tuple[str, ...] = (
    "enhance", "anime", "photographic", "digital-art", "comic-book",
    "fantasy-art", "line-art", "analog-film", "neon-punk", "isometric",
    "low-poly", "origami", "modeling-compound", "cinematic", "3d-model",
    "pixel-art", "tile-texture",
)

SD3_MODELS: tuple[str, ...] = ("sd3.5-large", "sd3.5-medium", "sd3.5-large-turbo")

LIGHT_SOURCE_DIRECTIONS: tuple[str, ...] = ("left", "right", "above", "below")


@dataclass(frozen=True)
class Range:
    """Inclusive numeric range."""

    min: float
    max: float

    def __contains__(self, value: object) -> bool:
        return isinstance(value, (int, float)) and self.min <= value <= self.max

    def __str__(self) -> str:
        return f"between {_number(self.min)} and {_number(self.max)}"


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


SEED_RANGE = Range(SEED_MIN, SEED_MAX)
UNIT_RANGE = Range(0, 1)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

ENDPOINTS: dict[str, str] = {
    # Generate
    "stable-image-ultra": "/v2beta/stable-image/generate/ultra",
    "stable-image-core": "/v2beta/stable-image/generate/core",
    "sd3": "/v2beta/stable-image/generate/sd3",
    # Upscale
    "upscale-fast": "/v2beta/stable-image/upscale/fast",
    "upscale-conservative": "/v2beta/stable-image/upscale/conservative",
    "upscale-creative": "/v2beta/stable-image/upscale/creative",
    # Edit
    "erase": "/v2beta/stable-image/edit/erase",
    "inpaint": "/v2beta/stable-image/edit/inpaint",
    "outpaint": "/v2beta/stable-image/edit/outpaint",
    "search-and-replace": "/v2beta/stable-image/edit/search-and-replace",
    "search-and-recolor": "/v2beta/stable-image/edit/search-and-recolor",
    "remove-background": "/v2beta/stable-image/edit/remove-background",
    "replace-background-and-relight":
        "/v2beta/stable-image/edit/replace-background-and-relight",
    # Control
    "sketch": "/v2beta/stable-image/control/sketch",
    "structure": "/v2beta/stable-image/control/structure",
    "style": "/v2beta/stable-image/control/style",
    "style-transfer": "/v2beta/stable-image/control/style-transfer",
    # Tasks and account
    "results": "/v2beta/results",
    "balance": "/v1/user/balance",
}

ASYNC_ENDPOINTS: frozenset[str] = frozenset({
    "upscale-creative",
    "replace-background-and-relight",
})
"""Operations that answer with a task id and must be polled.

For these, and only these, a ``200`` JSON body with an ``id`` is treated as
a task handle."""


def endpoint_path(operation: str) -> str:
    """Return the API path for *operation*."""
    try:
        return ENDPOINTS[operation]
    except KeyError:
        raise ValueError(f"Unknown operation: {operation}") from None


def is_async_operation(operation: str) -> bool:
    return operation in ASYNC_ENDPOINTS
