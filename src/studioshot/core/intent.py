"""Selfie / UGC intent detection.

The classifier is a plain case-insensitive substring match against a fixed
vocabulary.  There is no stemming and no negation handling: a prompt that
says "this is not a selfie" is still classified as selfie intent.  That is a
known limitation of the keyword approach and is kept as-is.
"""

from __future__ import annotations

SELFIE_KEYWORDS: tuple[str, ...] = (
    "selfie",
    "self-portrait",
    "self portrait",
    "front-facing",
    "front facing",
    "ugc",
    "phone camera",
    "mirror shot",
    "mirror selfie",
    "phone selfie",
    "casual selfie",
    "social media selfie",
    "influencer selfie",
    "vlog",
    "arm-length",
    "arm length",
    "front camera",
    "facecam",
)


def detect_selfie_intent(prompt: str) -> bool:
    """Return ``True`` if *prompt* contains any selfie/UGC keyword.

    Args:
        prompt: The raw user prompt.

    Returns:
        Whether the prompt asks for a first-person phone-camera shot.
    """
    lower = prompt.lower()
    return any(keyword in lower for keyword in SELFIE_KEYWORDS)
