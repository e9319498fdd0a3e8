"""Per-operation request parameters.

One frozen dataclass per operation.  Each class is closed: it only accepts
the fields its endpoint understands, and :meth:`OperationParams.validate`
checks them against :mod:`stableimage.constraints` before anything is sent
(an invalid request still costs credits).

Image fields hold raw references (a local path or an ``https`` URL).  They
are returned separately by :meth:`OperationParams.image_fields` so the
client can run them through source validation.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar

from stableimage.constraints import (
    ASPECT_RATIOS,
    DEFAULT_OUTPUT_FORMAT,
    LIGHT_SOURCE_DIRECTIONS,
    OUTPUT_FORMATS,
    PROMPT_MAX_LENGTH,
    SD3_MODELS,
    SEED_RANGE,
    STYLE_PRESETS,
    UNIT_RANGE,
    Range,
)
from stableimage.errors import StableImageInvalidParametersError

DEFAULT_ASPECT_RATIO = "1:1"
DEFAULT_SD3_MODEL = "sd3.5-large"
DEFAULT_CREATIVITY = 0.3

STRENGTH_RANGE = UNIT_RANGE
UPSCALE_CREATIVITY_RANGE = Range(0.1, 0.5)
OUTPAINT_CREATIVITY_RANGE = UNIT_RANGE
OUTPAINT_DIRECTION_RANGE = Range(0, 2000)
ERASE_GROW_MASK_RANGE = Range(0, 20)
INPAINT_GROW_MASK_RANGE = Range(0, 100)
SEARCH_GROW_MASK_RANGE = Range(0, 20)
CHANGE_STRENGTH_RANGE = Range(0.1, 1)

REMOVE_BACKGROUND_FORMATS: tuple[str, ...] = ("png", "webp")


# ---------------------------------------------------------------------------
# Violation collector
# ---------------------------------------------------------------------------

class _Checks:
    """Accumulates constraint violations for one operation."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self.errors: list[str] = []

    def add(self, message: str) -> None:
        self.errors.append(message)

    def required(self, label: str, value: str | None) -> None:
        if not value:
            self.add(f"{label} is required for {self.operation}")

    def text(self, label: str, value: str | None) -> None:
        if value and len(value) > PROMPT_MAX_LENGTH:
            self.add(
                f"{label} exceeds maximum length of {PROMPT_MAX_LENGTH} "
                f"characters for {self.operation}"
            )

    def choice(
        self,
        name: str,
        value: str | None,
        options: tuple[str, ...],
        noun: str,
    ) -> None:
        if value is not None and value not in options:
            self.add(
                f'Invalid {name} "{value}" for {self.operation}. '
                f"Valid {noun}: {', '.join(options)}"
            )

    def within(self, label: str, value: float | None, bounds: Range) -> None:
        if value is not None and value not in bounds:
            self.add(f"{label} must be {bounds} for {self.operation}")

    def seed(self, value: int | None) -> None:
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            self.add(f"Seed must be an integer for {self.operation}")
            return
        self.within("Seed", value, SEED_RANGE)

    def output_format(self, value: str | None, options: tuple[str, ...] = OUTPUT_FORMATS) -> None:
        self.choice("output_format", value, options, "formats")

    def style_preset(self, value: str | None) -> None:
        self.choice("style_preset", value, STYLE_PRESETS, "presets")

    def aspect_ratio(self, value: str | None) -> None:
        self.choice("aspect_ratio", value, ASPECT_RATIOS, "ratios")


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class OperationParams:
    """Behaviour shared by every parameter dataclass.

    Subclasses set :attr:`OPERATION` (a key of
    :data:`stableimage.constraints.ENDPOINTS`) and :attr:`IMAGE_FIELDS`, and
    implement :meth:`_check`.
    """

    OPERATION: ClassVar[str] = ""
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ()

    def _check(self, checks: _Checks) -> None:
        raise NotImplementedError

    def validate(self) -> None:
        """Check every field against the operation's constraints.

        Raises
        ------
        StableImageInvalidParametersError
            Listing every violation found, not just the first.
        """
        checks = _Checks(self.OPERATION)
        self._check(checks)
        if checks.errors:
            raise StableImageInvalidParametersError(
                message=f"Invalid parameters: {', '.join(checks.errors)}",
                context={"operation": self.OPERATION, "errors": list(checks.errors)},
            )

    def form_fields(self) -> dict[str, Any]:
        """Scalar form fields.  ``None`` means "not sent"."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)  # type: ignore[arg-type]
            if f.name not in self.IMAGE_FIELDS
        }

    def image_fields(self) -> dict[str, str]:
        """Image references by form field name, omitting unset ones."""
        refs = {name: getattr(self, name) for name in self.IMAGE_FIELDS}
        return {name: ref for name, ref in refs.items() if ref}


# ---------------------------------------------------------------------------
# Generate
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UltraParams(OperationParams):
    """Stable Image Ultra text-to-image (or image-to-image with ``image``)."""

    OPERATION: ClassVar[str] = "stable-image-ultra"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    prompt: str
    negative_prompt: str | None = None
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None
    image: str | None = None
    strength: float | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("Prompt", self.prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.aspect_ratio(self.aspect_ratio)
        checks.output_format(self.output_format)
        checks.seed(self.seed)
        checks.style_preset(self.style_preset)
        checks.within("Strength", self.strength, STRENGTH_RANGE)


@dataclass(frozen=True)
class CoreParams(OperationParams):
    """Stable Image Core text-to-image."""

    OPERATION: ClassVar[str] = "stable-image-core"

    prompt: str
    negative_prompt: str | None = None
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("Prompt", self.prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.aspect_ratio(self.aspect_ratio)
        checks.output_format(self.output_format)
        checks.seed(self.seed)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class SD3Params(OperationParams):
    """Stable Diffusion 3.5 text-to-image."""

    OPERATION: ClassVar[str] = "sd3"

    prompt: str
    model: str = DEFAULT_SD3_MODEL
    negative_prompt: str | None = None
    aspect_ratio: str = DEFAULT_ASPECT_RATIO
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("Prompt", self.prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.choice("model", self.model, SD3_MODELS, "models")
        checks.aspect_ratio(self.aspect_ratio)
        checks.output_format(self.output_format)
        checks.seed(self.seed)
        checks.style_preset(self.style_preset)


# ---------------------------------------------------------------------------
# Upscale
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UpscaleFastParams(OperationParams):
    OPERATION: ClassVar[str] = "upscale-fast"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.output_format(self.output_format)


@dataclass(frozen=True)
class UpscaleConservativeParams(OperationParams):
    OPERATION: ClassVar[str] = "upscale-conservative"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    prompt: str | None = None
    negative_prompt: str | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.output_format(self.output_format)
        checks.seed(self.seed)


@dataclass(frozen=True)
class UpscaleCreativeParams(OperationParams):
    """Creative upscale.  Asynchronous: the service answers with a task id."""

    OPERATION: ClassVar[str] = "upscale-creative"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    prompt: str | None = None
    negative_prompt: str | None = None
    creativity: float = DEFAULT_CREATIVITY
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("Creativity", self.creativity, UPSCALE_CREATIVITY_RANGE)
        checks.output_format(self.output_format)
        checks.seed(self.seed)
        checks.style_preset(self.style_preset)


# ---------------------------------------------------------------------------
# Edit
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EraseParams(OperationParams):
    """Erase masked regions.  Without ``mask`` the image's alpha channel is used."""

    OPERATION: ClassVar[str] = "erase"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image", "mask")

    image: str
    mask: str | None = None
    grow_mask: float | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.within("grow_mask", self.grow_mask, ERASE_GROW_MASK_RANGE)
        checks.seed(self.seed)
        checks.output_format(self.output_format)


@dataclass(frozen=True)
class InpaintParams(OperationParams):
    OPERATION: ClassVar[str] = "inpaint"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image", "mask")

    image: str
    prompt: str
    mask: str | None = None
    negative_prompt: str | None = None
    grow_mask: float | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.required("Prompt", self.prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("grow_mask", self.grow_mask, INPAINT_GROW_MASK_RANGE)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class OutpaintParams(OperationParams):
    """Extend the canvas by up to 2000 pixels per side."""

    OPERATION: ClassVar[str] = "outpaint"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    left: int | None = None
    right: int | None = None
    up: int | None = None
    down: int | None = None
    creativity: float | None = None
    prompt: str | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        directions = {"left": self.left, "right": self.right, "up": self.up, "down": self.down}
        for name, value in directions.items():
            checks.within(name, value, OUTPAINT_DIRECTION_RANGE)
        if not any(value is not None and value > 0 for value in directions.values()):
            checks.add(
                "At least one direction (left, right, up, down) must be greater "
                "than 0 for outpaint"
            )
        checks.within("Creativity", self.creativity, OUTPAINT_CREATIVITY_RANGE)
        checks.text("Prompt", self.prompt)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class SearchAndReplaceParams(OperationParams):
    OPERATION: ClassVar[str] = "search-and-replace"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    prompt: str
    search_prompt: str
    negative_prompt: str | None = None
    grow_mask: float | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.required("Prompt", self.prompt)
        checks.required("Search prompt", self.search_prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Search prompt", self.search_prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("grow_mask", self.grow_mask, SEARCH_GROW_MASK_RANGE)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class SearchAndRecolorParams(OperationParams):
    OPERATION: ClassVar[str] = "search-and-recolor"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    prompt: str
    select_prompt: str
    negative_prompt: str | None = None
    grow_mask: float | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.required("Prompt", self.prompt)
        checks.required("Select prompt", self.select_prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Select prompt", self.select_prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("grow_mask", self.grow_mask, SEARCH_GROW_MASK_RANGE)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class RemoveBackgroundParams(OperationParams):
    """Background removal.  The result needs transparency, so no ``jpeg``."""

    OPERATION: ClassVar[str] = "remove-background"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        if self.output_format == "jpeg":
            checks.add(
                "Remove background does not support jpeg output format "
                "(requires transparency). Use png or webp."
            )
        else:
            checks.output_format(self.output_format, REMOVE_BACKGROUND_FORMATS)


@dataclass(frozen=True)
class ReplaceBackgroundParams(OperationParams):
    """Replace the background and relight the subject.  Asynchronous.

    Needs ``background_prompt`` or ``background_reference``;
    ``light_source_strength`` only applies together with ``light_reference``
    or ``light_source_direction``.
    """

    OPERATION: ClassVar[str] = "replace-background-and-relight"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = (
        "subject_image", "background_reference", "light_reference",
    )

    subject_image: str
    background_prompt: str | None = None
    background_reference: str | None = None
    foreground_prompt: str | None = None
    negative_prompt: str | None = None
    preserve_original_subject: float | None = None
    original_background_depth: float | None = None
    keep_original_background: bool | None = None
    light_source_direction: str | None = None
    light_reference: str | None = None
    light_source_strength: float | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def _check(self, checks: _Checks) -> None:
        checks.required("subject_image", self.subject_image)
        if not self.background_prompt and not self.background_reference:
            checks.add(
                "Either background_prompt or background_reference is required "
                "for replace-background-and-relight"
            )
        if (
            self.light_source_strength is not None
            and not self.light_reference
            and not self.light_source_direction
        ):
            checks.add(
                "light_source_strength requires either light_reference or "
                "light_source_direction"
            )
        checks.text("Background prompt", self.background_prompt)
        checks.text("Foreground prompt", self.foreground_prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within(
            "preserve_original_subject", self.preserve_original_subject, UNIT_RANGE,
        )
        checks.within(
            "original_background_depth", self.original_background_depth, UNIT_RANGE,
        )
        checks.within("light_source_strength", self.light_source_strength, UNIT_RANGE)
        checks.choice(
            "light_source_direction",
            self.light_source_direction,
            LIGHT_SOURCE_DIRECTIONS,
            "directions",
        )
        checks.seed(self.seed)
        checks.output_format(self.output_format)


# ---------------------------------------------------------------------------
# Control
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ControlSketchParams(OperationParams):
    OPERATION: ClassVar[str] = "sketch"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    prompt: str
    control_strength: float | None = None
    negative_prompt: str | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.required("Prompt", self.prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("control_strength", self.control_strength, UNIT_RANGE)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class ControlStructureParams(ControlSketchParams):
    OPERATION: ClassVar[str] = "structure"


@dataclass(frozen=True)
class ControlStyleParams(OperationParams):
    OPERATION: ClassVar[str] = "style"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)

    image: str
    prompt: str
    fidelity: float | None = None
    aspect_ratio: str | None = None
    negative_prompt: str | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT
    style_preset: str | None = None

    def _check(self, checks: _Checks) -> None:
        checks.required("image", self.image)
        checks.required("Prompt", self.prompt)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("fidelity", self.fidelity, UNIT_RANGE)
        checks.aspect_ratio(self.aspect_ratio)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
        checks.style_preset(self.style_preset)


@dataclass(frozen=True)
class ControlStyleTransferParams(OperationParams):
    """Apply the look of ``style_image`` to ``init_image``."""

    OPERATION: ClassVar[str] = "style-transfer"
    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("init_image", "style_image")

    init_image: str
    style_image: str
    prompt: str | None = None
    negative_prompt: str | None = None
    style_strength: float | None = None
    composition_fidelity: float | None = None
    change_strength: float | None = None
    seed: int | None = None
    output_format: str = DEFAULT_OUTPUT_FORMAT

    def _check(self, checks: _Checks) -> None:
        checks.required("init_image", self.init_image)
        checks.required("style_image", self.style_image)
        checks.text("Prompt", self.prompt)
        checks.text("Negative prompt", self.negative_prompt)
        checks.within("style_strength", self.style_strength, UNIT_RANGE)
        checks.within("composition_fidelity", self.composition_fidelity, UNIT_RANGE)
        checks.within("change_strength", self.change_strength, CHANGE_STRENGTH_RANGE)
        checks.seed(self.seed)
        checks.output_format(self.output_format)
