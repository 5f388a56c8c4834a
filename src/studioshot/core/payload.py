"""Multimodal content payload assembly.

The payload is an ordered list of text and image parts: the instruction text
first, then each present reference as a label token immediately followed by
the image.  Order is always product, model, scene.  Absent references are
omitted entirely; the backend resolves which image is which from adjacency
and from the label tokens already used inside the instruction text.
"""

from __future__ import annotations

from studioshot.core.models import ContentPart, ImageRef

PRODUCT_LABEL = "[PRODUCT IMAGE]"
MODEL_LABEL = "[MODEL IMAGE]"
SCENE_LABEL = "[SCENE IMAGE]"


def assemble_payload(
    text: str,
    product: ImageRef | None = None,
    model: ImageRef | None = None,
    scene: ImageRef | None = None,
) -> list[ContentPart]:
    """Build the ordered content payload for one backend call.

    Args:
        text: The instruction text for this attempt.
        product: Product reference image, if any.
        model: Model (person) reference image, if any.
        scene: Scene reference image, if any.

    Returns:
        List of :class:`ContentPart` in send order.
    """
    parts = [ContentPart(kind="text", value=text)]
    for label, ref in ((PRODUCT_LABEL, product), (MODEL_LABEL, model), (SCENE_LABEL, scene)):
        if ref is None:
            continue
        parts.append(ContentPart(kind="text", value=label))
        parts.append(ContentPart(kind="image", value=ref.url))
    return parts


def to_message_content(parts: list[ContentPart]) -> list[dict]:
    """Serialise a payload to the chat-completions ``content`` array."""
    return [part.to_message_part() for part in parts]
