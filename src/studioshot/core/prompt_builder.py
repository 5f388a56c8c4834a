"""Mode-aware prompt compilation for the generation pipeline.

The composition engine turns a loosely specified :class:`GenerationRequest`
into one fully specified instruction string for the image backend.  The
strategy is chosen first, by :func:`select_mode`:

1. **Selfie** when the prompt carries selfie/UGC vocabulary (regardless of
   how many references are present).
2. **Condensed** when two or more references are present.
3. **Layered** otherwise (zero or one reference).

Layered Structure (selfie uses the same layers with a selfie base)::

    [a] Professional photography: <prompt>  +  photography DNA
    [b] BRAND STYLE GUIDE                  (brand context present)
    [c] PRODUCT (+ interaction, framing)   (product reference present)
    [d] MODEL IDENTITY + PORTRAIT (+ framing)  (model reference present)
    [e] ENVIRONMENT                        (scene reference present)
    [f] CAMERA RENDERING STYLE: NATURAL    (camera_style == "natural")
    DO NOT INCLUDE block (+ "- No <term>" lines)

Layer order never changes; presence of a reference only toggles inclusion.

Condensed Structure::

    Create one photorealistic commercial photograph: <prompt>

    Requirements:
    1. PRODUCT ...    (numbered only over the references present)
    2. MODEL ...
    3. SCENE ...

    QUALITY ...
    BRAND ...         (optional)
    CAMERA ...        (optional, natural style)
    DO NOT INCLUDE block
    Also avoid: ...   (only when exclusions were supplied)

When ``polish`` is off, none of the above runs: the prompt only gets a
one-line brand suffix, a flat ``Do NOT include:`` line and the natural-camera
one-liner.

Sections are separated by double newlines.  Compilation is deterministic:
the same request always yields byte-identical text.
"""

from __future__ import annotations

from collections.abc import Callable
from types import MappingProxyType

from studioshot.core.intent import detect_selfie_intent
from studioshot.core.models import (
    AspectRatio,
    BrandContext,
    CameraStyle,
    CompiledPrompt,
    CompositionMode,
    GenerationRequest,
)
from studioshot.core.negatives import build_negative_block, dedupe_exclusions

# ---------------------------------------------------------------------------
# Lookup tables.  Unknown keys fall back to the key itself.
# ---------------------------------------------------------------------------

TONE_DESCRIPTIONS = MappingProxyType(
    {
        "luxury": "premium, sophisticated, elegant with refined details",
        "clean": "minimalist, uncluttered, modern and professional",
        "bold": "striking, high-contrast, attention-grabbing",
        "minimal": "extremely simple, lots of negative space, zen-like",
        "playful": "vibrant, energetic, fun with dynamic composition",
    }
)

COLOR_FEEL_DESCRIPTIONS = MappingProxyType(
    {
        "warm-earthy": "warm earth tones, natural warmth, amber and terracotta accents",
        "cool-crisp": "cool tones, clean whites, blue and silver undertones",
        "neutral-natural": "true-to-life colors, balanced exposure, no heavy grading",
        "rich-saturated": "deep saturated colors, bold and vivid palette, high color impact",
        "muted-soft": "desaturated pastels, soft muted tones, dreamy and gentle palette",
        "vibrant-bold": "high energy colors, bright and punchy, strong contrast",
    }
)

ASPECT_DIMENSIONS = MappingProxyType(
    {
        "1:1": "1024x1024",
        "3:4": "768x1024",
        "4:5": "816x1020",
        "9:16": "576x1024",
        "16:9": "1024x576",
    }
)

FALLBACK_PROMPT = "Professional commercial photography of the provided subject"

# ---------------------------------------------------------------------------
# Fixed text fragments.
# ---------------------------------------------------------------------------

PHOTOGRAPHY_DNA = (
    "Photography DNA: 50mm prime lens perspective, soft directional key light with gentle fill, "
    "subtle natural grain, ultra high resolution, sharp focus, commercial-grade color accuracy."
)

NATURAL_CAMERA_LINE = (
    "CAMERA: Natural iPhone look, deep depth of field with everything sharp, "
    "true-to-life colors, no color grading, natural ambient light."
)

_NATURAL_CAMERA_BLOCK = (
    "CAMERA RENDERING STYLE: NATURAL (iPhone). Shot on a latest-generation iPhone main camera, "
    "26mm equivalent wide lens. Deep depth of field: everything in focus from foreground to "
    "background, no Portrait Mode. True-to-life, unedited color science with no color grading "
    "and no warm or cool push. Natural smartphone dynamic range, natural ambient light only. "
    "Real-world texture level: visible skin pores, fabric weave and surface detail, no smoothing "
    "or retouching. The image should feel authentic and unprocessed."
)

_NATURAL_SELFIE_OVERRIDE = (
    "SELFIE OVERRIDE: Front-camera perspective at arm's length; keep the whole frame sharp even "
    "if an earlier instruction asked for background blur."
)

_SELFIE_DEPTH = MappingProxyType(
    {
        "pro": "Soft natural background bokeh.",
        "natural": (
            "Deep focus: face and background equally sharp, no Portrait Mode. "
            "This overrides any depth-of-field request elsewhere in this prompt."
        ),
    }
)

_PORTRAIT_QUALITY = MappingProxyType(
    {
        "pro": (
            "PORTRAIT: Natural skin texture, soft flattering light, accurate proportions, "
            "natural pose."
        ),
        "natural": (
            "PORTRAIT: Natural skin texture, ambient light, true-to-life skin tones, "
            "no color grading, accurate proportions, natural pose."
        ),
    }
)

_QUALITY_CLAUSE = (
    "QUALITY: Photorealistic, sharp focus, natural proportions, one single coherent photograph."
)

_BATCH_CONSISTENCY = (
    "BATCH CONSISTENCY: Maintain the same color palette, lighting direction, overall mood, and "
    "visual style. Only vary composition, angle, and framing."
)

# (condition, thunk) pairs evaluated in a fixed order.
_Layer = tuple[bool, Callable[[], str]]


# ---------------------------------------------------------------------------
# Lookups and input preparation.
# ---------------------------------------------------------------------------


def describe_tone(tone: str) -> str:
    """Return the description for a brand tone key, or the key itself."""
    return TONE_DESCRIPTIONS.get(tone, tone)


def describe_color_feel(color_feel: str) -> str:
    """Return the description for a colour-feel key, or the key itself."""
    return COLOR_FEEL_DESCRIPTIONS.get(color_feel, color_feel)


def prepare_prompt_text(request: GenerationRequest) -> str:
    """Resolve the prompt text that every composition strategy starts from.

    An empty prompt is replaced by :data:`FALLBACK_PROMPT`.  Model text
    context and style presets are appended as labelled paragraphs.

    Args:
        request: The generation request.

    Returns:
        The enriched prompt text.
    """
    text = request.raw_prompt.strip() or FALLBACK_PROMPT
    if request.model_text_context:
        text = f"{text}\n\nModel reference: {request.model_text_context}"
    if request.style_preset_keywords:
        text = f"{text}\n\nStyle direction: {', '.join(request.style_preset_keywords)}"
    return text


def _collect_exclusions(request: GenerationRequest) -> list[str]:
    brand_rules = request.brand_context.do_not_rules if request.brand_context else ()
    return dedupe_exclusions(brand_rules, request.user_negatives)


def select_mode(request: GenerationRequest) -> CompositionMode:
    """Pick the composition strategy for *request*.

    Selfie intent is decided from the raw prompt alone, so identical prompt
    text always selects the selfie strategy independently of references.
    """
    if detect_selfie_intent(request.raw_prompt):
        return CompositionMode.SELFIE
    if request.references.count >= 2:
        return CompositionMode.CONDENSED
    return CompositionMode.LAYERED


# ---------------------------------------------------------------------------
# Condensed strategy (2+ references).
# ---------------------------------------------------------------------------


def _condensed_brand_clause(brand: BrandContext) -> str:
    parts: list[str] = []
    if brand.tone:
        parts.append(describe_tone(brand.tone))
    if brand.color_feel:
        parts.append(describe_color_feel(brand.color_feel))
    return f"BRAND: {'; '.join(parts)}." if parts else ""


def _build_condensed(text: str, request: GenerationRequest) -> str:
    refs = request.references
    identity = f" ({request.model_text_context})" if request.model_text_context else ""

    clauses: list[str] = []
    if refs.product:
        clauses.append(
            "PRODUCT: Reproduce the product from [PRODUCT IMAGE] exactly: shape, color, texture, "
            "label and branding. Skip any person or mannequin shown in the product photo."
        )
    if refs.model:
        model_clause = (
            f"MODEL: Use the exact individual from [MODEL IMAGE]{identity}: same face, skin tone, "
            "hair and body."
        )
        if refs.product:
            model_clause += " Ignore any person appearing in the product photo."
        clauses.append(model_clause)
    if refs.scene:
        clauses.append(
            "SCENE: Use [SCENE IMAGE] as the environment, keeping lighting direction, color "
            "temperature and perspective consistent with it."
        )

    numbered = "\n".join(f"{n}. {clause}" for n, clause in enumerate(clauses, start=1))
    sections = [
        f"Create one photorealistic commercial photograph: {text}",
        f"Requirements:\n{numbered}",
        _QUALITY_CLAUSE,
    ]

    if request.brand_context:
        brand_clause = _condensed_brand_clause(request.brand_context)
        if brand_clause:
            sections.append(brand_clause)

    if request.camera_style == "natural":
        sections.append(NATURAL_CAMERA_LINE)

    negative_block = build_negative_block(request.camera_style)
    exclusions = _collect_exclusions(request)
    if exclusions:
        negative_block += f"\nAlso avoid: {', '.join(exclusions)}."
    sections.append(negative_block)

    return "\n\n".join(sections)


# ---------------------------------------------------------------------------
# Layered strategy (0-1 references, and selfie).
# ---------------------------------------------------------------------------


def _selfie_base(text: str, camera_style: CameraStyle) -> str:
    return (
        f"Authentic selfie taken with a smartphone front camera: {text}. "
        "Ultra-sharp, natural lighting.\n\n"
        "SELFIE: Shot from the phone's point of view at arm's length. Direct eye contact into "
        "the lens, slight wide-angle perspective. The hand holding the phone is visible at the "
        "frame edge; the phone itself is never visible. Full head and hair visible with "
        "headroom, frame from mid-chest up, face in the upper third. Candid expression. "
        f"{_SELFIE_DEPTH[camera_style]}"
    )


def _professional_base(text: str) -> str:
    return f"Professional photography: {text}\n\n{PHOTOGRAPHY_DNA}"


def _brand_style_guide(brand: BrandContext) -> str:
    parts: list[str] = []
    if brand.tone:
        parts.append(f"Visual tone: {describe_tone(brand.tone)}")
    if brand.color_feel:
        parts.append(f"Color direction: {describe_color_feel(brand.color_feel)}")
    if brand.brand_keywords:
        parts.append(f"Brand DNA keywords: {', '.join(brand.brand_keywords)}")
    if brand.color_palette:
        parts.append(f"Brand accent colors: {', '.join(brand.color_palette)}")
    if brand.target_audience:
        parts.append(f"Target audience: {brand.target_audience}")
    if not parts:
        return ""
    return f"BRAND STYLE GUIDE:\n{'. '.join(parts)}."


def _product_layer(selfie: bool, has_model: bool) -> str:
    lines = [
        "PRODUCT: Reproduce the product from the [PRODUCT IMAGE] with 100% fidelity: identical "
        "shape, color, texture, label and branding. Do not modify or stylize it."
    ]
    if selfie:
        lines.append(
            "PRODUCT INTERACTION: Hold or display the product naturally near the face or chest "
            "with a casual grip. Not floating, not catalog-posed."
        )
    if not has_model:
        lines.append("FRAMING: Center the product, filling 50-70% of the frame, no cropping.")
    return "\n".join(lines)


def _model_layer(model_text_context: str | None, camera_style: CameraStyle, selfie: bool) -> str:
    identity = f" ({model_text_context})" if model_text_context else ""
    lines = [
        f"MODEL IDENTITY: Generate the EXACT person from the [MODEL IMAGE]{identity}: same face, "
        "features, skin tone, hair and body. Not a similar person, the same individual.",
        _PORTRAIT_QUALITY[camera_style],
    ]
    if not selfie:
        lines.append(
            "FRAMING: Full head and hair visible with headroom, subject placed on the rule of "
            "thirds."
        )
    return "\n".join(lines)


def _scene_layer() -> str:
    return (
        "ENVIRONMENT: Place the subject in the EXACT location from the [SCENE IMAGE]: same "
        "background, architecture, lighting direction, color temperature, and atmosphere. "
        "Do not invent a different setting."
    )


def _natural_camera_layer(selfie: bool) -> str:
    if selfie:
        return f"{_NATURAL_CAMERA_BLOCK}\n{_NATURAL_SELFIE_OVERRIDE}"
    return _NATURAL_CAMERA_BLOCK


def _build_layered(text: str, request: GenerationRequest, *, selfie: bool) -> str:
    refs = request.references
    brand = request.brand_context
    style = request.camera_style

    layers: list[_Layer] = [
        # (a) base line; selfie swaps in the first-person camera description
        (selfie, lambda: _selfie_base(text, style)),
        (not selfie, lambda: _professional_base(text)),
        # (b)
        (brand is not None, lambda: _brand_style_guide(brand)),
        # (c)
        (refs.product is not None, lambda: _product_layer(selfie, refs.model is not None)),
        # (d)
        (refs.model is not None, lambda: _model_layer(request.model_text_context, style, selfie)),
        # (e)
        (refs.scene is not None, _scene_layer),
        # (f)
        (style == "natural", lambda: _natural_camera_layer(selfie)),
    ]

    sections = [build() for include, build in layers if include]

    negative_block = build_negative_block(style)
    exclusions = _collect_exclusions(request)
    if exclusions:
        negative_block += "".join(f"\n- No {term}" for term in exclusions)
    sections.append(negative_block)

    return "\n\n".join(section for section in sections if section)


# ---------------------------------------------------------------------------
# Unpolished pass-through.
# ---------------------------------------------------------------------------


def _build_unpolished(text: str, request: GenerationRequest) -> str:
    compiled = text

    brand = request.brand_context
    if brand:
        parts: list[str] = []
        if brand.tone:
            parts.append(brand.tone)
        if brand.color_feel:
            parts.append(describe_color_feel(brand.color_feel))
        if parts:
            compiled += f"\n\nBrand style: {', '.join(parts)}"

    exclusions = _collect_exclusions(request)
    if exclusions:
        compiled += f"\n\nDo NOT include: {', '.join(exclusions)}"

    if request.camera_style == "natural":
        compiled += f"\n\n{NATURAL_CAMERA_LINE}"

    return compiled


# ---------------------------------------------------------------------------
# Public entry points.
# ---------------------------------------------------------------------------


def compile_prompt(request: GenerationRequest) -> CompiledPrompt:
    """Compile *request* into the final instruction string.

    Args:
        request: The generation request.

    Returns:
        The compiled prompt and the resolved composition mode.  With
        ``polish`` off the mode is still resolved (for logging) but the
        minimal pass-through text is returned.
    """
    text = prepare_prompt_text(request)
    mode = select_mode(request)

    if not request.polish:
        return CompiledPrompt(text=_build_unpolished(text, request), mode=mode, polished=False)

    match mode:
        case CompositionMode.CONDENSED:
            compiled = _build_condensed(text, request)
        case CompositionMode.SELFIE:
            compiled = _build_layered(text, request, selfie=True)
        case _:
            compiled = _build_layered(text, request, selfie=False)

    return CompiledPrompt(text=compiled, mode=mode)


def build_output_directive(aspect_ratio: AspectRatio) -> str:
    """Return the aspect-ratio enforcement line appended to every attempt."""
    dims = ASPECT_DIMENSIONS.get(aspect_ratio, "1024x1024")
    return (
        f"OUTPUT: Exactly {aspect_ratio} ({dims}). "
        "No borders/padding/margins. Fill entire frame."
    )


def build_variation_suffix(index: int, count: int) -> str:
    """Return the per-attempt suffix for attempt *index* (0-based) of *count*.

    The first attempt only carries the batch-consistency note (and only when
    more than one image is requested); later attempts add a variation line.
    """
    suffix = f"\n\n{_BATCH_CONSISTENCY}" if count > 1 else ""
    if index > 0:
        suffix += (
            f"\n\nVariation {index + 1}: Create a different composition and angle while keeping "
            "the same subject, style, and lighting."
        )
    return suffix


def build_attempt_text(
    compiled: CompiledPrompt, aspect_ratio: AspectRatio, index: int, count: int
) -> str:
    """Assemble the instruction text sent for one attempt."""
    return (
        f"{compiled.text}\n\n{build_output_directive(aspect_ratio)}"
        f"{build_variation_suffix(index, count)}"
    )
