"""StudioShot - generation request pipeline for AI product photography."""

__version__ = "0.3.0"

from studioshot.core.config import StudioShotConfig, config
from studioshot.core.models import GenerationRequest
from studioshot.core.pipeline import GenerationPipeline
from studioshot.core.prompt_builder import compile_prompt

__all__ = [
    "GenerationPipeline",
    "GenerationRequest",
    "StudioShotConfig",
    "compile_prompt",
    "config",
]
