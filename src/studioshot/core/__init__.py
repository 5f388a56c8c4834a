"""Core of the StudioShot generation request pipeline.

Architecture Overview
---------------------
Leaf-first:

1. **Intent Classifier** (intent.py): selfie/UGC keyword detection.
2. **Negative-Constraint Builder** (negatives.py): the "do not include"
   block and case-insensitive exclusion dedup.
3. **Prompt Composition Engine** (prompt_builder.py): selfie, condensed and
   layered strategies, plus the unpolished pass-through.
4. **Content Payload Assembler** (payload.py): instruction text followed by
   labelled reference images.
5. **Generation Backend** (backend.py): HTTPX client for the
   chat-completions image gateway, with block detection.
6. **Generation Orchestrator** (orchestrator.py): sequential attempts,
   retries, early exit on content blocks, batch results.
7. **Output Persistence** (storage.py): file storage plus the SQLite
   generation log.

:class:`~studioshot.core.pipeline.GenerationPipeline` wires them together
for one request; configuration comes from :mod:`studioshot.core.config`.

Usage Example
-------------
::

    from studioshot.core import GenerationRequest, compile_prompt

    compiled = compile_prompt(GenerationRequest(raw_prompt="girl holding coffee cup"))
    print(compiled.mode, compiled.text)
"""

from studioshot.core.config import StudioShotConfig, config
from studioshot.core.models import (
    BatchResult,
    CallContext,
    CompiledPrompt,
    CompositionMode,
    GenerationRequest,
)
from studioshot.core.pipeline import GenerationPipeline
from studioshot.core.prompt_builder import compile_prompt

__all__ = [
    "BatchResult",
    "CallContext",
    "CompiledPrompt",
    "CompositionMode",
    "GenerationPipeline",
    "GenerationRequest",
    "StudioShotConfig",
    "compile_prompt",
    "config",
]
