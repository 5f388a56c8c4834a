"""Negative-constraint ("do not include") block construction.

The block is a fixed list of exclusions that every polished prompt ends with.
Only the blur rule depends on the camera-rendering style:

- ``natural``: blur is prohibited outright (no bokeh, everything sharp).
- ``pro``: only unintentional blur is excluded.

User and brand exclusion terms are merged in afterwards, deduplicated
case-insensitively in first-seen order.
"""

from __future__ import annotations

from collections.abc import Iterable

from studioshot.core.models import CameraStyle

NEGATIVE_HEADER = "DO NOT INCLUDE:"

_FIXED_EXCLUSIONS: tuple[str, ...] = (
    "No text, watermarks, or logos",
    "No malformed hands, fingers, or limbs",
    "No compositing artifacts, visible seams, or pasted-in edges",
    "No plastic, waxy, or over-smoothed skin",
    "No collage, grid, or split-screen layouts",
)

NATURAL_BLUR_RULE = "No blur anywhere, no bokeh, everything sharp from foreground to background"
PRO_BLUR_RULE = "No unintentional blur"


def blur_rule(camera_style: CameraStyle) -> str:
    """Return the blur exclusion for *camera_style*."""
    return NATURAL_BLUR_RULE if camera_style == "natural" else PRO_BLUR_RULE


def build_negative_block(camera_style: CameraStyle) -> str:
    """Build the fixed multi-line negative-constraint block.

    Args:
        camera_style: ``"pro"`` or ``"natural"``.

    Returns:
        The header line followed by one ``- No ...`` line per exclusion.
    """
    lines = [NEGATIVE_HEADER]
    lines.extend(f"- {clause}" for clause in _FIXED_EXCLUSIONS)
    lines.append(f"- {blur_rule(camera_style)}")
    return "\n".join(lines)


def dedupe_exclusions(*groups: Iterable[str] | None) -> list[str]:
    """Merge exclusion term groups into one case-insensitive, ordered list.

    Terms are lower-cased and stripped before insertion; empty terms are
    dropped.  The first occurrence of a term fixes its position, so
    ``["Watermarks", "watermarks", "WATERMARKS"]`` collapses to
    ``["watermarks"]``.

    Args:
        *groups: Iterables of terms (``None`` groups are skipped).

    Returns:
        The deduplicated terms in first-seen order.
    """
    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for term in group or ():
            normalized = term.strip().lower()
            if normalized and normalized not in seen:
                seen.add(normalized)
                merged.append(normalized)
    return merged
