"""Shared pytest fixtures for StudioShot tests."""

from __future__ import annotations

import base64
import shutil
import tempfile
from collections.abc import Generator
from io import BytesIO
from pathlib import Path
from types import SimpleNamespace

import pytest
from PIL import Image

from studioshot.core.backend import BackendResponse
from studioshot.core.config import StudioShotConfig
from studioshot.core.models import ContentPart, GenerationRequest, ImageRef, References
from studioshot.core.storage import OutputPersistence


class ScriptedBackend:
    """Stand-in for :class:`GenerationBackend` that replays a script.

    Each script item is either a :class:`BackendResponse` (returned) or an
    exception instance (raised).  The list is read at call time, so it can be
    extended after construction; once it runs out the last item is replayed.
    Every call is recorded in ``calls``.
    """

    def __init__(self, script: list) -> None:
        self.script = script
        self.calls: list[dict] = []

    def generate(
        self, parts: list[ContentPart], model: str, aspect_ratio: str | None = None
    ) -> BackendResponse:
        self.calls.append({"parts": parts, "model": model, "aspect_ratio": aspect_ratio})
        index = min(len(self.calls) - 1, len(self.script) - 1)
        item = self.script[index]
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        pass


def image_response(url: str) -> BackendResponse:
    return BackendResponse(image_url=url, finish_reason="stop", text="")


def blocked_response(text: str = "", finish_reason: str = "SAFETY") -> BackendResponse:
    return BackendResponse(image_url=None, finish_reason=finish_reason, text=text)


def empty_response() -> BackendResponse:
    return BackendResponse(image_url=None, finish_reason="stop", text="Here is your image.")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> StudioShotConfig:
    """Create a test configuration with temporary directories and no delays.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        StudioShotConfig instance for testing
    """
    return StudioShotConfig(
        backend_api_key="test-key",
        backend_base_url="https://gateway.test/v1",
        outputs_dir=temp_dir / "outputs",
        data_dir=temp_dir / "data",
        retry_delay_s=0.0,
        attempt_pause_s=0.0,
        auth_tokens={"test-token": "user-1", "other-token": "user-2"},
        _env_file=None,
    )


@pytest.fixture
def persistence(test_config: StudioShotConfig) -> OutputPersistence:
    """Output persistence rooted in the temporary directories."""
    return OutputPersistence.from_config(test_config)


@pytest.fixture
def png_data_uri() -> str:
    """A tiny valid PNG encoded as a ``data:image/png;base64`` URI."""
    buffer = BytesIO()
    Image.new("RGB", (8, 8), (200, 40, 40)).save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode("ascii")


@pytest.fixture
def product_ref(png_data_uri: str) -> ImageRef:
    return ImageRef(url=png_data_uri, id="product-1")


@pytest.fixture
def model_ref() -> ImageRef:
    return ImageRef(url="https://cdn.test/models/ava.jpg", id="model-1")


@pytest.fixture
def scene_ref() -> ImageRef:
    return ImageRef(url="https://cdn.test/scenes/cafe.jpg", id="scene-1")


@pytest.fixture
def all_references(product_ref: ImageRef, model_ref: ImageRef, scene_ref: ImageRef) -> References:
    return References(product=product_ref, model=model_ref, scene=scene_ref)


@pytest.fixture
def coffee_request() -> GenerationRequest:
    """The plain text-only request used across the prompt tests."""
    return GenerationRequest(raw_prompt="girl holding coffee cup")


@pytest.fixture
def scripted_backend():
    """Factory fixture: ``scripted_backend([...])`` builds a :class:`ScriptedBackend`."""
    return ScriptedBackend


@pytest.fixture
def responses() -> SimpleNamespace:
    """Builders for canned backend responses: ``image``, ``blocked``, ``empty``."""
    return SimpleNamespace(image=image_response, blocked=blocked_response, empty=empty_response)
