"""Pydantic request and response models for the StudioShot API.

These models define the JSON schema for every API endpoint.  FastAPI uses
them for automatic request validation, serialisation, and OpenAPI
documentation generation.

Models
------
BrandProfile
    Brand style context nested inside a generation request.
GenerateRequest
    Payload for ``POST /api/generate`` and ``POST /api/prompt/compile``.
    Converted to the core :class:`~studioshot.core.models.GenerationRequest`
    via :meth:`GenerateRequest.to_generation_request`.
GenerateResponse
    Success body of ``POST /api/generate`` (camelCase keys).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studioshot.core.models import (
    AspectRatio,
    BatchResult,
    BrandContext,
    CameraStyle,
    GenerationRequest,
    ImageRef,
    Quality,
    References,
)


class BrandProfile(BaseModel):
    """Brand style context supplied with a request.

    Attributes:
        tone: Brand tone key (e.g. ``"luxury"``, ``"playful"``) or free text.
        color_feel: Colour feel key (e.g. ``"warm"``, ``"muted"``) or free text.
        do_not_rules: Brand-level exclusions, merged with the user's negatives.
        brand_keywords: Keywords describing the brand.
        color_palette: Brand colours (names or hex codes).
        target_audience: Optional audience description.
    """

    tone: str = ""
    color_feel: str = ""
    do_not_rules: list[str] = Field(default_factory=list)
    brand_keywords: list[str] = Field(default_factory=list)
    color_palette: list[str] = Field(default_factory=list)
    target_audience: str | None = None

    def to_context(self) -> BrandContext:
        return BrandContext(
            tone=self.tone,
            color_feel=self.color_feel,
            do_not_rules=tuple(self.do_not_rules),
            brand_keywords=tuple(self.brand_keywords),
            color_palette=tuple(self.color_palette),
            target_audience=self.target_audience,
        )


def _ref(url: str | None, ref_id: str | None) -> ImageRef | None:
    if url is None:
        return None
    return ImageRef(url=url, id=ref_id)


class GenerateRequest(BaseModel):
    """Request body for the ``POST /api/generate`` endpoint.

    Attributes:
        prompt: Free-text prompt.  May be empty when a reference is given.
        product_image: Product reference (``data:`` URI or http(s) URL).
        model_image: Model/person reference.
        scene_image: Scene/environment reference.
        product_image_id: Identifier of the product row, for the log.
        model_image_id: Identifier of the model row, for the log.
        scene_image_id: Identifier of the scene row, for the log.
        aspect_ratio: Output aspect ratio.
        image_count: Number of images requested (capped server-side).
        quality: ``"standard"`` or ``"high"``.
        polish_prompt: ``False`` sends a minimal prompt without the
            composition engine.
        model_context: Model descriptors (gender, body type, ethnicity).
        style_presets: Style preset names.
        brand_profile: Optional brand style context.
        negatives: User-supplied exclusion terms.
        camera_style: ``"pro"`` or ``"natural"``.
        user_id: Caller identity; queue-relayed calls only.
        job_id: Job identifier; queue-relayed calls only.
    """

    model_config = ConfigDict(protected_namespaces=())

    prompt: str = Field(default="", description="Free-text prompt.")
    product_image: str | None = Field(default=None, description="Product reference image.")
    model_image: str | None = Field(default=None, description="Model reference image.")
    scene_image: str | None = Field(default=None, description="Scene reference image.")
    product_image_id: str | None = None
    model_image_id: str | None = None
    scene_image_id: str | None = None
    aspect_ratio: AspectRatio = Field(default="1:1", description="Output aspect ratio.")
    image_count: int = Field(default=1, ge=1, description="Number of images requested.")
    quality: Quality = "standard"
    polish_prompt: bool = Field(
        default=True,
        description="Run the full prompt composition engine.",
    )
    model_context: str | None = Field(
        default=None,
        description="Model descriptors, e.g. 'female, athletic build'.",
    )
    style_presets: list[str] = Field(default_factory=list)
    brand_profile: BrandProfile | None = None
    negatives: list[str] = Field(default_factory=list)
    camera_style: CameraStyle = "pro"
    user_id: str | None = Field(
        default=None,
        description="Caller identity (queue-relayed calls only).",
    )
    job_id: str | None = Field(
        default=None,
        description="Job identifier (queue-relayed calls only).",
    )

    @field_validator("product_image", "model_image", "scene_image")
    @classmethod
    def validate_image(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not v.startswith(("data:image/", "http://", "https://")):
            raise ValueError("must be a data:image URI or an http(s) URL")
        return v

    def to_generation_request(self) -> GenerationRequest:
        """Convert the wire body into the immutable core request."""
        return GenerationRequest(
            raw_prompt=self.prompt,
            references=References(
                product=_ref(self.product_image, self.product_image_id),
                model=_ref(self.model_image, self.model_image_id),
                scene=_ref(self.scene_image, self.scene_image_id),
            ),
            aspect_ratio=self.aspect_ratio,
            requested_count=self.image_count,
            quality=self.quality,
            polish=self.polish_prompt,
            model_text_context=self.model_context,
            style_preset_keywords=tuple(self.style_presets),
            brand_context=self.brand_profile.to_context() if self.brand_profile else None,
            user_negatives=tuple(self.negatives),
            camera_style=self.camera_style,
        )


class GenerateResponse(BaseModel):
    """Success body of ``POST /api/generate``.

    Optional flags are omitted from the JSON when unset.
    """

    model_config = ConfigDict(populate_by_name=True)

    images: list[str]
    generated_count: int = Field(alias="generatedCount")
    requested_count: int = Field(alias="requestedCount")
    partial_success: bool | None = Field(default=None, alias="partialSuccess")
    content_blocked: bool | None = Field(default=None, alias="contentBlocked")
    block_reason: str | None = Field(default=None, alias="blockReason")
    errors: list[str] | None = None

    @classmethod
    def from_result(cls, result: BatchResult) -> GenerateResponse:
        return cls(
            images=result.images,
            generated_count=result.generated_count,
            requested_count=result.requested_count,
            partial_success=True if result.partial_success else None,
            content_blocked=True if result.blocked else None,
            block_reason=result.block_reason if result.blocked else None,
            errors=result.errors or None,
        )

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
