"""Generation orchestration: attempts, retries, blocks and batch results.

The orchestrator produces ``requested_count`` independent images from one
compiled prompt.  Attempts run strictly sequentially:

1. Build the attempt text (compiled prompt + output directive + variation
   suffix) and the content payload.
2. Call the backend with the selected model variant and an aspect-ratio
   hint, retrying transient failures and image-less responses a fixed number
   of times with a fixed pause.
3. A content-policy refusal marks the attempt blocked and stops the batch.
4. A success is handed to the persistence adapter; a persistence failure is
   logged and the backend's image is kept.
5. Pause briefly before the next attempt.

Rate-limit (429) and exhausted-credits (402) responses propagate as
:class:`~studioshot.core.errors.FatalBackendError` and abort the batch.

Model variant policy
--------------------
- model reference present        → high-capability variant, always
- queue-relayed call             → fast variant
- ``quality == "high"`` and < 2 refs → high-capability variant
- otherwise                      → fast variant
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from studioshot.core.backend import GenerationBackend
from studioshot.core.config import StudioShotConfig
from studioshot.core.errors import PersistenceError, TransientBackendError
from studioshot.core.models import (
    AttemptBlocked,
    AttemptFailed,
    AttemptResult,
    AttemptSuccess,
    BatchResult,
    CallContext,
    CompiledPrompt,
    GenerationRequest,
)
from studioshot.core.payload import assemble_payload
from studioshot.core.prompt_builder import build_attempt_text
from studioshot.core.storage import OutputPersistence

logger = logging.getLogger(__name__)


def select_model_variant(
    request: GenerationRequest,
    *,
    is_queue_internal: bool,
    config: StudioShotConfig,
) -> str:
    """Choose the backend model variant for *request*.

    A lone model photo cannot tolerate identity drift, so a model reference
    always escalates to the high-capability variant.
    """
    refs = request.references
    if refs.model is not None:
        return config.pro_model
    if is_queue_internal:
        return config.fast_model
    if request.quality == "high" and refs.count < 2:
        return config.pro_model
    return config.fast_model


class GenerationOrchestrator:
    """Drives the backend through one batch of sequential attempts.

    Args:
        backend: Generation backend client.
        persistence: Output persistence adapter.
        model: Backend model variant for every attempt of this batch.
        max_retries: Retries per attempt (tries = ``max_retries + 1``).
        retry_delay_s: Fixed pause between tries of one attempt.
        attempt_pause_s: Pause between consecutive attempts.
        sleep: Sleep function; injectable for tests.
    """

    def __init__(
        self,
        backend: GenerationBackend,
        persistence: OutputPersistence,
        *,
        model: str,
        max_retries: int = 2,
        retry_delay_s: float = 0.5,
        attempt_pause_s: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.persistence = persistence
        self.model = model
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.attempt_pause_s = attempt_pause_s
        self._sleep = sleep

    def run_attempt(
        self,
        request: GenerationRequest,
        compiled: CompiledPrompt,
        index: int,
        count: int,
    ) -> AttemptResult:
        """Run one attempt with its retry budget.

        Raises:
            FatalBackendError: On rate-limit or exhausted-credits responses.
        """
        text = build_attempt_text(compiled, request.aspect_ratio, index, count)
        refs = request.references
        parts = assemble_payload(text, refs.product, refs.model, refs.scene)

        last_error = "No image returned"
        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                self._sleep(self.retry_delay_s)

            try:
                response = self.backend.generate(parts, self.model, request.aspect_ratio)
            except TransientBackendError as exc:
                last_error = exc.message
                logger.warning(
                    "Image %d try %d/%d failed: %s",
                    index + 1,
                    attempt + 1,
                    self.max_retries + 1,
                    exc.message,
                )
                continue

            if response.image_url:
                return AttemptSuccess(image_url=response.image_url)

            if response.is_blocked:
                reason = response.block_reason
                logger.warning("Image %d blocked by content safety filter: %s", index + 1, reason)
                return AttemptBlocked(reason=reason)

            last_error = "No image returned"
            logger.warning(
                "Image %d try %d/%d returned no image (finish_reason=%r).",
                index + 1,
                attempt + 1,
                self.max_retries + 1,
                response.finish_reason,
            )

        return AttemptFailed(error=f"Image {index + 1}: {last_error}")

    def _persist(
        self, image_url: str, request: GenerationRequest, context: CallContext, index: int
    ) -> str:
        try:
            return self.persistence.persist(image_url, request, context, index)
        except PersistenceError:
            logger.exception("Failed to persist image %d of job %s.", index + 1, context.job_id)
            return image_url

    def run(
        self,
        request: GenerationRequest,
        compiled: CompiledPrompt,
        context: CallContext,
        count: int | None = None,
    ) -> BatchResult:
        """Run the whole batch.

        Args:
            request: The generation request.
            compiled: The compiled prompt, reused for every attempt.
            context: Caller identity and call mode.
            count: Number of attempts; defaults to ``request.requested_count``.

        Returns:
            The aggregated :class:`BatchResult`.

        Raises:
            FatalBackendError: Propagated from the backend; aborts the batch.
        """
        count = count if count is not None else request.requested_count
        result = BatchResult(requested_count=count)

        for index in range(count):
            attempt = self.run_attempt(request, compiled, index, count)

            match attempt:
                case AttemptSuccess(image_url=image_url):
                    result.images.append(self._persist(image_url, request, context, index))
                    logger.info("Generated image %d/%d.", index + 1, count)
                case AttemptBlocked(reason=reason):
                    result.blocked = True
                    result.block_reason = reason
                case AttemptFailed(error=error):
                    result.errors.append(error)

            if result.blocked:
                break

            if index < count - 1:
                self._sleep(self.attempt_pause_s)

        return result
