"""Data model for the generation request pipeline.

Request-side types are frozen Pydantic models: a :class:`GenerationRequest`
is validated once at the edge of the system and never mutated afterwards.
Everything derived during a call (compiled prompt, content payload, attempt
results, batch result) is a plain frozen dataclass that lives only for the
duration of one invocation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

AspectRatio = Literal["1:1", "3:4", "4:5", "9:16", "16:9"]
Quality = Literal["standard", "high"]
CameraStyle = Literal["pro", "natural"]


# ---------------------------------------------------------------------------
# Request-side models.
# ---------------------------------------------------------------------------


class ImageRef(BaseModel):
    """A reference image: inline ``data:`` URI or an already-hosted URL.

    Attributes:
        url: ``data:image/...;base64,...`` or ``http(s)://...``.
        id: Optional identifier of the referenced product/model/scene row,
            recorded in the generation log.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    id: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("data:image/", "http://", "https://")):
            raise ValueError("image reference must be a data:image URI or an http(s) URL")
        return v

    @property
    def is_inline(self) -> bool:
        return self.url.startswith("data:")


class References(BaseModel):
    """The up-to-three reference images of a request."""

    model_config = ConfigDict(frozen=True)

    product: ImageRef | None = None
    model: ImageRef | None = None
    scene: ImageRef | None = None

    @property
    def count(self) -> int:
        return sum(ref is not None for ref in (self.product, self.model, self.scene))


class BrandContext(BaseModel):
    """Brand style context.

    ``tone`` and ``color_feel`` are usually keys of the lookup tables in
    :mod:`studioshot.core.prompt_builder`; unknown values are used verbatim.
    """

    model_config = ConfigDict(frozen=True)

    tone: str = ""
    color_feel: str = ""
    do_not_rules: tuple[str, ...] = ()
    brand_keywords: tuple[str, ...] = ()
    color_palette: tuple[str, ...] = ()
    target_audience: str | None = None


class GenerationRequest(BaseModel):
    """One creative request, immutable for the life of a call.

    Attributes:
        raw_prompt: Free-text prompt; may be empty if a reference is present.
        references: Product / model / scene reference images.
        aspect_ratio: Output aspect ratio.
        requested_count: Number of independent output images desired.
        quality: ``standard`` or ``high``.
        polish: Run the full composition engine (``True``) or the minimal
            pass-through (``False``).
        model_text_context: Descriptors (gender, body type, ethnicity) that
            only reinforce identity matching.
        style_preset_keywords: Style preset names chosen by the user.
        brand_context: Optional brand style context.
        user_negatives: User-supplied exclusion terms.
        camera_style: ``pro`` (studio look) or ``natural`` (phone look).
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    raw_prompt: str = ""
    references: References = Field(default_factory=References)
    aspect_ratio: AspectRatio = "1:1"
    requested_count: int = Field(default=1, ge=1)
    quality: Quality = "standard"
    polish: bool = True
    model_text_context: str | None = None
    style_preset_keywords: tuple[str, ...] = ()
    brand_context: BrandContext | None = None
    user_negatives: tuple[str, ...] = ()
    camera_style: CameraStyle = "pro"

    @property
    def has_input(self) -> bool:
        """Whether there is any prompt text or at least one reference."""
        return bool(self.raw_prompt.strip()) or self.references.count > 0


# ---------------------------------------------------------------------------
# Derived, per-invocation types.
# ---------------------------------------------------------------------------


class CompositionMode(str, enum.Enum):
    """Prompt strategy resolved for a request."""

    SELFIE = "selfie"
    CONDENSED = "condensed-multi-ref"
    LAYERED = "layered-single-ref"


@dataclass(frozen=True)
class CompiledPrompt:
    """The final instruction text plus the mode that produced it."""

    text: str
    mode: CompositionMode
    polished: bool = True


@dataclass(frozen=True)
class ContentPart:
    """One element of the multimodal content payload."""

    kind: Literal["text", "image"]
    value: str

    def to_message_part(self) -> dict:
        """Serialise to the chat-completions multimodal content format."""
        if self.kind == "text":
            return {"type": "text", "text": self.value}
        return {"type": "image_url", "image_url": {"url": self.value}}


@dataclass(frozen=True)
class CallContext:
    """Who is calling and how.

    Attributes:
        user_id: Resolved caller identity (storage namespace).
        job_id: Identifier of this invocation; groups the stored images.
        is_queue_internal: ``True`` for queue-relayed calls.
    """

    user_id: str
    job_id: str
    is_queue_internal: bool = False


@dataclass(frozen=True)
class AttemptSuccess:
    image_url: str


@dataclass(frozen=True)
class AttemptBlocked:
    reason: str


@dataclass(frozen=True)
class AttemptFailed:
    error: str


AttemptResult = Union[AttemptSuccess, AttemptBlocked, AttemptFailed]


class BatchOutcome(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass
class BatchResult:
    """Aggregated result of all attempts of one request.

    If ``blocked`` is set while ``images`` is non-empty, the block occurred
    after at least one success (attempts stop at the first block).
    """

    requested_count: int
    images: list[str] = field(default_factory=list)
    blocked: bool = False
    block_reason: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.images)

    @property
    def partial_success(self) -> bool:
        """Some, but not all, of the requested images were produced."""
        return 0 < self.generated_count < self.requested_count

    @property
    def outcome(self) -> BatchOutcome:
        if not self.images:
            return BatchOutcome.BLOCKED if self.blocked else BatchOutcome.FAILED
        if self.partial_success:
            return BatchOutcome.PARTIAL
        return BatchOutcome.SUCCESS
