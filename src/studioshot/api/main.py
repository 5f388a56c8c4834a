"""StudioShot Generation API — FastAPI Application.

This module is the single entry point for the web service.  It defines the
FastAPI ``app`` instance, all REST API routes, and the ``main()`` CLI
function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~studioshot.core.config.config`
  (``STUDIOSHOT_*`` environment variables).
- **Generation** is performed by
  :class:`~studioshot.core.pipeline.GenerationPipeline`, built per request
  from the backend client and persistence adapter created in the lifespan.
- **Stored images** are served from ``outputs_dir`` by FastAPI's
  ``StaticFiles`` at ``/outputs``.
- **Errors** raised as :class:`~studioshot.core.errors.PipelineError` are
  rendered as ``{"error": ..., "details": [...]}`` with the error's status.

Endpoints
---------
========  ============================  ====================================
Method    Path                          Purpose
========  ============================  ====================================
GET       ``/api/config``               Aspect ratios, model variants, caps
POST      ``/api/generate``             Generate an image batch
POST      ``/api/prompt/compile``       Preview the compiled prompt
GET       ``/api/generations``          Paginated generation log
========  ============================  ====================================

Identity
--------
Direct calls authenticate with ``Authorization: Bearer <token>``; tokens are
mapped to user ids by ``config.auth_tokens``.  Queue-relayed calls send
``x-queue-internal: true`` and carry ``user_id`` (and ``job_id``) in the
body; when ``config.queue_secret`` is set they must also send a matching
``x-queue-secret`` header.

Usage
-----
CLI (installed entry point)::

    studioshot

Direct invocation::

    python -m studioshot.api.main
"""

from __future__ import annotations

import hmac
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from studioshot import __version__
from studioshot.api.models import GenerateRequest, GenerateResponse
from studioshot.core.backend import GenerationBackend
from studioshot.core.config import StudioShotConfig, config
from studioshot.core.errors import AuthenticationError, PipelineError
from studioshot.core.models import BatchOutcome, CallContext
from studioshot.core.pipeline import GenerationPipeline
from studioshot.core.prompt_builder import (
    ASPECT_DIMENSIONS,
    build_output_directive,
    compile_prompt,
)
from studioshot.core.storage import OutputPersistence

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Application lifecycle: backend client and persistence setup.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Creates the :class:`OutputPersistence` adapter and, when an API key
        is configured, the :class:`GenerationBackend` client.  Both are
        stored on ``app.state``.

    On shutdown:
        Closes the backend's HTTP connection pool.
    """
    # --- Startup -----------------------------------------------------------
    app.state.persistence = OutputPersistence.from_config(config)
    app.state.backend = GenerationBackend.from_config(config) if config.backend_api_key else None
    if app.state.backend is None:
        logger.warning("STUDIOSHOT_BACKEND_API_KEY is not set; generation is disabled.")
    else:
        logger.info("Generation backend ready at %s.", config.backend_base_url)

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    if app.state.backend is not None:
        app.state.backend.close()
        logger.info("Generation backend closed on shutdown.")


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="StudioShot Generation API",
    description="Prompt composition and image generation for product photography.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/outputs", StaticFiles(directory=str(config.outputs_dir)), name="outputs")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Render a :class:`PipelineError` as ``{"error", "details"?}``."""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning(
            "%s %s rejected (%d): %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.message,
        )
    body: dict = {"error": exc.message}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


# ---------------------------------------------------------------------------
# Dependencies.
# ---------------------------------------------------------------------------


def get_settings() -> StudioShotConfig:
    return config


def get_backend(request: Request) -> GenerationBackend | None:
    return request.app.state.backend


def get_persistence(request: Request) -> OutputPersistence:
    return request.app.state.persistence


def get_pipeline(
    settings: StudioShotConfig = Depends(get_settings),
    backend: GenerationBackend | None = Depends(get_backend),
    persistence: OutputPersistence = Depends(get_persistence),
) -> GenerationPipeline:
    return GenerationPipeline(settings, backend, persistence)


# ---------------------------------------------------------------------------
# Identity helpers.
# ---------------------------------------------------------------------------


def _bearer_user(authorization: str | None, settings: StudioShotConfig) -> str:
    """Resolve a bearer token to a user id.

    Raises:
        AuthenticationError: If the header is missing or the token is unknown.
    """
    if not authorization:
        raise AuthenticationError("Unauthorized")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthenticationError("Unauthorized")
    user_id = settings.auth_tokens.get(token.strip())
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return user_id


def _resolve_context(
    req: GenerateRequest,
    settings: StudioShotConfig,
    *,
    authorization: str | None,
    queue_internal: str | None,
    queue_secret: str | None,
) -> CallContext:
    """Build the :class:`CallContext` for a generation call.

    Raises:
        AuthenticationError: If the caller identity cannot be resolved.
    """
    if (queue_internal or "").lower() == "true":
        if settings.queue_secret and not hmac.compare_digest(
            queue_secret or "", settings.queue_secret
        ):
            raise AuthenticationError("Invalid queue secret")
        if not req.user_id:
            raise AuthenticationError("Missing user_id for queue request")
        return CallContext(
            user_id=req.user_id,
            job_id=req.job_id or uuid.uuid4().hex,
            is_queue_internal=True,
        )

    return CallContext(
        user_id=_bearer_user(authorization, settings),
        job_id=uuid.uuid4().hex,
    )


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/api/config")
async def get_config(settings: StudioShotConfig = Depends(get_settings)) -> dict:
    """Return the public service configuration for the frontend.

    Returns:
        Dictionary with keys ``version``, ``aspect_ratios`` (id plus pixel
        dimensions), ``models`` (fast and pro variants), and
        ``max_images_per_request``.
    """
    return {
        "version": __version__,
        "aspect_ratios": [
            {"id": ratio, "dimensions": dims} for ratio, dims in ASPECT_DIMENSIONS.items()
        ],
        "models": {"fast": settings.fast_model, "pro": settings.pro_model},
        "max_images_per_request": settings.max_images_per_request,
    }


@app.post("/api/generate")
def generate_images(
    req: GenerateRequest,
    settings: StudioShotConfig = Depends(get_settings),
    pipeline: GenerationPipeline = Depends(get_pipeline),
    authorization: str | None = Header(default=None),
    x_queue_internal: str | None = Header(default=None),
    x_queue_secret: str | None = Header(default=None),
) -> dict:
    """Generate a batch of product photographs.

    This endpoint is synchronous: FastAPI runs it on its worker threadpool,
    so the blocking backend calls never stall the event loop.

    1. Resolves the caller identity (bearer token or queue relay).
    2. Compiles the prompt and selects the model variant.
    3. Runs the attempts sequentially, stopping at the first content block.
    4. Stores every image under the caller's namespace.

    Returns:
        ``{images, generatedCount, requestedCount}`` plus ``partialSuccess``,
        ``contentBlocked``, ``blockReason`` and ``errors`` when they apply.

    Raises:
        AuthenticationError: 401 when the caller cannot be identified.
        InvalidRequestError: 400 when there is neither prompt nor reference.
        FatalBackendError: 429 / 402 passed through from the backend.
        PipelineError: 500 when the backend is not configured or no image
            could be produced for reasons other than a content block.
    """
    context = _resolve_context(
        req,
        settings,
        authorization=authorization,
        queue_internal=x_queue_internal,
        queue_secret=x_queue_secret,
    )

    result = pipeline.generate(req.to_generation_request(), context)

    if result.outcome is BatchOutcome.FAILED:
        raise PipelineError("Failed to generate any images", details=result.errors)

    return GenerateResponse.from_result(result).to_body()


@app.post("/api/prompt/compile")
async def compile_prompt_preview(req: GenerateRequest) -> dict:
    """Preview the compiled prompt without calling the backend.

    Returns:
        Dictionary with ``compiled_prompt``, ``mode``, ``polished`` and the
        ``output_directive`` appended to every attempt.
    """
    compiled = compile_prompt(req.to_generation_request())
    return {
        "compiled_prompt": compiled.text,
        "mode": compiled.mode.value,
        "polished": compiled.polished,
        "output_directive": build_output_directive(req.aspect_ratio),
    }


@app.get("/api/generations")
async def list_generations(
    page: int = 1,
    per_page: int = 20,
    settings: StudioShotConfig = Depends(get_settings),
    persistence: OutputPersistence = Depends(get_persistence),
    authorization: str | None = Header(default=None),
) -> dict:
    """Return the caller's generation log, newest first.

    Args:
        page: Page number (1-indexed); clamped to the available pages.
        per_page: Entries per page (1–100).

    Returns:
        Dictionary with ``total``, ``page``, ``per_page``, ``pages`` and
        ``generations``.
    """
    user_id = _bearer_user(authorization, settings)
    per_page = min(max(per_page, 1), 100)
    return persistence.log.page_for_user(user_id, page, per_page)


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from
    :data:`~studioshot.core.config.config` (``STUDIOSHOT_SERVER_HOST``,
    ``STUDIOSHOT_SERVER_PORT``, ``STUDIOSHOT_LOG_LEVEL``).

    This function is registered as the ``studioshot`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "studioshot.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
