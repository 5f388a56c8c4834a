"""HTTP client for the multimodal image-generation backend.

The backend is an OpenAI-compatible chat-completions gateway.  One call
carries the content payload, the model variant and an aspect-ratio hint;
the response carries either an image (as a URL or ``data:`` URI) or a
refusal, inspectable through ``finish_reason`` and the text content.

Status handling
---------------
- 2xx: parsed into a :class:`BackendResponse`.
- 429 / 402: :class:`FatalBackendError` (rate limit / exhausted credits);
  never retried, aborts the whole batch.
- anything else, timeouts, network errors, undecodable bodies:
  :class:`TransientBackendError`, retried by the orchestrator.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from studioshot.core.config import StudioShotConfig
from studioshot.core.errors import FatalBackendError, TransientBackendError
from studioshot.core.models import ContentPart
from studioshot.core.payload import to_message_content

logger = logging.getLogger(__name__)

_BLOCK_FINISH_REASON = re.compile(r"PROHIBIT|BLOCK|SAFETY|RECITATION", re.IGNORECASE)
_REFUSAL_TEXT = re.compile(
    r"I cannot fulfill|I('m| am) unable to|violates .* policy|inappropriate|not able to generate",
    re.IGNORECASE,
)

GENERIC_BLOCK_REASON = (
    "This prompt was flagged by our content safety system. Try rephrasing with different terms."
)

_FATAL_STATUS_MESSAGES = {
    429: "Rate limit exceeded. Please wait and try again.",
    402: "Credits exhausted. Please add more credits.",
}


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _first(value: Any) -> Any:
    """First element of a JSON array, else ``None``."""
    if isinstance(value, list) and value:
        return value[0]
    return None


def _image_url(message: dict[str, Any]) -> str | None:
    image = _as_dict(_first(message.get("images")))
    ref = image.get("image_url")
    if isinstance(ref, str):
        # Some gateways flatten ``{"url": ...}`` to the bare string.
        return ref or None
    url = _as_dict(ref).get("url")
    return url if isinstance(url, str) and url else None


def _message_text(message: dict[str, Any]) -> str:
    content = message.get("content") or ""
    if isinstance(content, list):
        # Some gateways return content as a list of typed parts.
        return " ".join(
            str(part.get("text", "")) for part in content if isinstance(part, dict)
        ).strip()
    return str(content).strip()


@dataclass(frozen=True)
class BackendResponse:
    """The parts of a completion response the pipeline inspects.

    Parsing never raises: any level of the response that is missing or has
    an unexpected JSON type is treated as absent.
    """

    image_url: str | None
    finish_reason: str
    text: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> BackendResponse:
        choice = _as_dict(_first(_as_dict(data).get("choices")))
        message = _as_dict(choice.get("message"))

        return cls(
            image_url=_image_url(message),
            finish_reason=str(choice.get("finish_reason") or ""),
            text=_message_text(message),
        )

    @property
    def is_blocked(self) -> bool:
        """Whether the response is a content-policy refusal."""
        if _BLOCK_FINISH_REASON.search(self.finish_reason):
            return True
        return bool(_REFUSAL_TEXT.search(self.text))

    @property
    def block_reason(self) -> str:
        """The backend's own refusal text when plausible, else a generic message."""
        if 10 < len(self.text) < 300:
            return self.text
        return GENERIC_BLOCK_REASON


class GenerationBackend:
    """Thin synchronous client for the chat-completions image endpoint.

    Args:
        base_url: Gateway base URL (``.../v1``).
        api_key: Bearer token.
        timeout_s: Wall-clock deadline for one call, checked while the body
            streams in. Each read, write and pool wait is bounded by the same
            value; connecting is capped at 10s.
        transport: Optional HTTPX transport (tests use ``httpx.MockTransport``).
        clock: Monotonic clock used for the deadline (injectable for tests).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_s: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timeout_s = timeout_s
        self._clock = clock
        self._client = httpx.Client(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_s, connect=10.0),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            transport=transport,
        )

    @classmethod
    def from_config(
        cls, config: StudioShotConfig, transport: httpx.BaseTransport | None = None
    ) -> GenerationBackend:
        return cls(
            config.backend_base_url,
            config.backend_api_key or "",
            timeout_s=config.backend_timeout_s,
            transport=transport,
        )

    def generate(
        self,
        parts: list[ContentPart],
        model: str,
        aspect_ratio: str | None = None,
    ) -> BackendResponse:
        """Issue one generation call.

        Args:
            parts: The assembled content payload.
            model: Backend model variant identifier.
            aspect_ratio: Optional aspect-ratio hint (e.g. ``"4:5"``).

        Returns:
            The parsed :class:`BackendResponse`.

        Raises:
            FatalBackendError: On 429 or 402.
            TransientBackendError: On any other failure.
        """
        body: dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": to_message_content(parts)}],
            "modalities": ["image", "text"],
        }
        if aspect_ratio:
            body["image_config"] = {"aspect_ratio": aspect_ratio}

        deadline = self._clock() + self.timeout_s
        try:
            with self._client.stream("POST", "/chat/completions", json=body) as response:
                status_code = response.status_code
                raw = self._read_before_deadline(response, deadline)
        except httpx.TimeoutException as exc:
            raise TransientBackendError("Generation timed out") from exc
        except httpx.HTTPError as exc:
            raise TransientBackendError(f"Network error: {exc}") from exc

        if status_code in _FATAL_STATUS_MESSAGES:
            raise FatalBackendError(status_code, _FATAL_STATUS_MESSAGES[status_code])

        if status_code >= 400:
            logger.error(
                "AI gateway error %d: %s",
                status_code,
                raw[:500].decode("utf-8", errors="replace"),
            )
            raise TransientBackendError(f"AI gateway error: {status_code}")

        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise TransientBackendError("AI gateway returned a non-JSON body") from exc

        if not isinstance(data, dict):
            raise TransientBackendError("AI gateway returned an unexpected body")

        return BackendResponse.from_json(data)

    def _read_before_deadline(self, response: httpx.Response, deadline: float) -> bytes:
        """Read the streamed body, giving up once the call's deadline passes."""
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            self._check_deadline(deadline)
        self._check_deadline(deadline)
        return b"".join(chunks)

    def _check_deadline(self, deadline: float) -> None:
        if self._clock() > deadline:
            logger.warning("Generation call exceeded %.1fs; abandoning it.", self.timeout_s)
            raise TransientBackendError("Generation timed out")

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GenerationBackend:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
