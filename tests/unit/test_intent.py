"""Tests for studioshot.core.intent — selfie/UGC intent detection."""

from __future__ import annotations

import pytest

from studioshot.core.intent import SELFIE_KEYWORDS, detect_selfie_intent


class TestDetectSelfieIntent:
    """Keyword matching over the raw prompt."""

    @pytest.mark.parametrize(
        "prompt",
        [
            "a selfie with the new lipstick",
            "UGC style review of the serum",
            "Mirror shot in a gym locker room",
            "front-facing camera, holding the bottle",
            "vlog intro with the headphones",
            "arm length shot at the beach",
        ],
    )
    def test_selfie_prompts_detected(self, prompt):
        assert detect_selfie_intent(prompt) is True

    @pytest.mark.parametrize(
        "prompt",
        [
            "girl holding coffee cup",
            "studio packshot of a perfume bottle on marble",
            "",
        ],
    )
    def test_other_prompts_not_detected(self, prompt):
        assert detect_selfie_intent(prompt) is False

    def test_case_insensitive(self):
        assert detect_selfie_intent("SELFIE") is True
        assert detect_selfie_intent("FaceCam reaction") is True

    def test_negation_is_not_understood(self):
        """The classifier is keyword-only: a negated keyword still matches."""
        assert detect_selfie_intent("this is NOT a selfie") is True

    def test_every_keyword_matches(self):
        for keyword in SELFIE_KEYWORDS:
            assert detect_selfie_intent(f"photo, {keyword}, daylight"), keyword

    def test_deterministic(self):
        prompt = "casual selfie with sunglasses"
        assert detect_selfie_intent(prompt) == detect_selfie_intent(prompt)
