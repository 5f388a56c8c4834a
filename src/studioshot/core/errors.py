"""Exception taxonomy for the generation pipeline.

Content-policy blocks are *not* exceptions: they are a first-class attempt
outcome (see :class:`studioshot.core.models.AttemptBlocked`).  Everything
else that can go wrong is one of the classes below.  Each carries the HTTP
status the API layer should answer with.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str, *, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidRequestError(PipelineError):
    """The request cannot be processed (e.g. no prompt and no references)."""

    status_code = 400


class AuthenticationError(PipelineError):
    """The caller identity could not be resolved."""

    status_code = 401


class BackendNotConfiguredError(PipelineError):
    """No API key is configured for the generation backend."""

    status_code = 500


class FatalBackendError(PipelineError):
    """Rate-limit or exhausted-credits response; aborts the whole batch.

    The backend status is passed straight through to the caller so the UI can
    react (wait, or prompt for a top-up).
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientBackendError(PipelineError):
    """A retryable backend failure (5xx, timeout, network error)."""

    status_code = 502


class PersistenceError(PipelineError):
    """Storing an image or recording its log entry failed.

    Raised by the persistence adapter and always swallowed (and logged) by
    the orchestrator: the image was already produced.
    """
