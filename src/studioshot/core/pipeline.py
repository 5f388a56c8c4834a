"""End-to-end generation pipeline for one request."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from studioshot.core.backend import GenerationBackend
from studioshot.core.config import StudioShotConfig
from studioshot.core.errors import BackendNotConfiguredError, InvalidRequestError
from studioshot.core.models import BatchResult, CallContext, GenerationRequest
from studioshot.core.orchestrator import GenerationOrchestrator, select_model_variant
from studioshot.core.prompt_builder import compile_prompt
from studioshot.core.storage import OutputPersistence

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = (
    "Please provide a prompt or select at least one reference (product, model, or scene)"
)


class GenerationPipeline:
    """Request → compiled prompt → orchestrated batch.

    Args:
        config: Pipeline configuration.
        backend: Generation backend client.  ``None`` means the backend is
            not configured and every call fails with a 500.
        persistence: Output persistence adapter.
        sleep: Sleep function handed to the orchestrator.
    """

    def __init__(
        self,
        config: StudioShotConfig,
        backend: GenerationBackend | None,
        persistence: OutputPersistence,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config
        self.backend = backend
        self.persistence = persistence
        self._sleep = sleep

    def effective_count(self, request: GenerationRequest, context: CallContext) -> int:
        """Number of attempts actually issued for *request*.

        Queue-relayed calls are capped to one image; direct calls to
        ``config.max_images_per_request``.
        """
        if context.is_queue_internal:
            return 1
        return min(request.requested_count, self.config.max_images_per_request)

    def generate(self, request: GenerationRequest, context: CallContext) -> BatchResult:
        """Run the full pipeline for one request.

        Raises:
            BackendNotConfiguredError: If no backend is available.
            InvalidRequestError: If there is neither prompt text nor a reference.
            FatalBackendError: On rate-limit / exhausted-credits responses.
        """
        if self.backend is None:
            raise BackendNotConfiguredError("AI service not configured")
        if not request.has_input:
            raise InvalidRequestError(MISSING_INPUT_MESSAGE)

        compiled = compile_prompt(request)
        count = self.effective_count(request, context)
        model = select_model_variant(
            request, is_queue_internal=context.is_queue_internal, config=self.config
        )
        max_retries = (
            self.config.queue_max_retries if context.is_queue_internal else self.config.max_retries
        )

        refs = request.references
        logger.info(
            "Generation request: %s",
            {
                "job_id": context.job_id,
                "queue_internal": context.is_queue_internal,
                "prompt_length": len(request.raw_prompt),
                "has_product": refs.product is not None,
                "has_model": refs.model is not None,
                "has_scene": refs.scene is not None,
                "has_model_context": bool(request.model_text_context),
                "style_presets": list(request.style_preset_keywords),
                "has_brand": request.brand_context is not None,
                "negatives": len(request.user_negatives),
                "camera_style": request.camera_style,
                "aspect_ratio": request.aspect_ratio,
                "count": count,
                "quality": request.quality,
                "model": model,
                "polished": compiled.polished,
                "mode": compiled.mode.value,
            },
        )

        orchestrator = GenerationOrchestrator(
            self.backend,
            self.persistence,
            model=model,
            max_retries=max_retries,
            retry_delay_s=self.config.retry_delay_s,
            attempt_pause_s=self.config.attempt_pause_s,
            sleep=self._sleep,
        )
        result = orchestrator.run(request, compiled, context, count=count)

        logger.info(
            "Job %s finished: %s (%d/%d images, %d errors).",
            context.job_id,
            result.outcome.value,
            result.generated_count,
            result.requested_count,
            len(result.errors),
        )
        return result
