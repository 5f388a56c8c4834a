"""Integration tests for studioshot.api.main — FastAPI REST API endpoints.

All tests use the FastAPI TestClient with the settings, backend and
persistence dependencies overridden, so no real gateway is contacted and
all files land in a temporary directory.  Tests cover every endpoint:

- ``GET /api/config`` — Public configuration.
- ``POST /api/generate`` — Batch generation, identity and error shapes.
- ``POST /api/prompt/compile`` — Prompt preview.
- ``GET /api/generations`` — Paginated generation log.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from studioshot.api.main import app, get_backend, get_persistence, get_settings
from studioshot.core.errors import FatalBackendError, TransientBackendError

AUTH = {"Authorization": "Bearer test-token"}
QUEUE = {"x-queue-internal": "true"}


@pytest.fixture
def backend_script() -> list:
    """Mutable script shared with the backend fixture; tests append to it."""
    return []


@pytest.fixture
def fake_backend(scripted_backend, backend_script):
    return scripted_backend(backend_script)


@pytest.fixture
def test_client(test_config, persistence, fake_backend):
    """TestClient with dependency overrides; lifespan is not started."""
    app.dependency_overrides[get_settings] = lambda: test_config
    app.dependency_overrides[get_backend] = lambda: fake_backend
    app.dependency_overrides[get_persistence] = lambda: persistence
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Configuration endpoint tests.
# ---------------------------------------------------------------------------


class TestGetConfig:
    """Test GET /api/config — public configuration."""

    def test_config_returns_version(self, test_client):
        resp = test_client.get("/api/config")
        assert resp.status_code == 200
        assert "version" in resp.json()

    def test_config_aspect_ratios(self, test_client):
        data = test_client.get("/api/config").json()
        ratios = {item["id"]: item["dimensions"] for item in data["aspect_ratios"]}
        assert ratios["1:1"] == "1024x1024"
        assert ratios["9:16"] == "576x1024"

    def test_config_models_and_cap(self, test_client, test_config):
        data = test_client.get("/api/config").json()
        assert data["models"] == {"fast": test_config.fast_model, "pro": test_config.pro_model}
        assert data["max_images_per_request"] == 4


# ---------------------------------------------------------------------------
# Generation endpoint tests.
# ---------------------------------------------------------------------------


class TestGenerate:
    """Test POST /api/generate — image generation."""

    def test_generate_success(self, test_client, backend_script, responses, png_data_uri):
        """A single successful image is stored and returned by URL."""
        backend_script.append(responses.image(png_data_uri))
        resp = test_client.post("/api/generate", json={"prompt": "hat"}, headers=AUTH)

        assert resp.status_code == 200
        data = resp.json()
        assert data["generatedCount"] == 1
        assert data["requestedCount"] == 1
        assert "partialSuccess" not in data
        assert data["images"][0].startswith("/outputs/user-1/")
        assert data["images"][0].endswith("/0.png")

    def test_generate_batch(self, test_client, backend_script, responses, fake_backend):
        backend_script.append(responses.image("https://cdn.test/x.png"))
        resp = test_client.post(
            "/api/generate", json={"prompt": "hat", "image_count": 3}, headers=AUTH
        )
        assert resp.status_code == 200
        assert resp.json()["generatedCount"] == 3
        assert len(fake_backend.calls) == 3

    def test_generate_count_capped(self, test_client, backend_script, responses, fake_backend):
        backend_script.append(responses.image("https://cdn.test/x.png"))
        resp = test_client.post(
            "/api/generate", json={"prompt": "hat", "image_count": 10}, headers=AUTH
        )
        assert resp.json()["requestedCount"] == 4
        assert len(fake_backend.calls) == 4

    def test_generate_missing_input(self, test_client, fake_backend):
        """Empty prompt with no references is a 400 and never calls the backend."""
        resp = test_client.post("/api/generate", json={"prompt": "  "}, headers=AUTH)
        assert resp.status_code == 400
        assert "error" in resp.json()
        assert fake_backend.calls == []

    def test_generate_invalid_image_reference(self, test_client):
        resp = test_client.post(
            "/api/generate", json={"prompt": "hat", "scene_image": "scene.png"}, headers=AUTH
        )
        assert resp.status_code == 422

    def test_generate_blocked(self, test_client, backend_script, responses):
        """A content block with no images is a 200 carrying contentBlocked."""
        backend_script.append(responses.blocked("I cannot fulfill this request."))
        resp = test_client.post(
            "/api/generate", json={"prompt": "hat", "image_count": 2}, headers=AUTH
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["images"] == []
        assert data["contentBlocked"] is True
        assert data["blockReason"] == "I cannot fulfill this request."
        assert "partialSuccess" not in data

    def test_generate_partial_success(self, test_client, backend_script, responses):
        backend_script.extend(
            [
                responses.image("https://cdn.test/1.png"),
                TransientBackendError("AI gateway error: 500"),
            ]
        )
        resp = test_client.post(
            "/api/generate", json={"prompt": "hat", "image_count": 2}, headers=AUTH
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["images"] == ["https://cdn.test/1.png"]
        assert data["partialSuccess"] is True
        assert data["errors"] == ["Image 2: AI gateway error: 500"]

    def test_generate_all_failed(self, test_client, backend_script):
        """Infrastructure failure is a 500, distinct from a content block."""
        backend_script.append(TransientBackendError("Generation timed out"))
        resp = test_client.post("/api/generate", json={"prompt": "hat"}, headers=AUTH)

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "Failed to generate any images",
            "details": ["Image 1: Generation timed out"],
        }

    @pytest.mark.parametrize(
        "status,message",
        [(429, "Rate limit exceeded."), (402, "Credits exhausted.")],
    )
    def test_generate_fatal_passthrough(self, test_client, backend_script, status, message):
        backend_script.append(FatalBackendError(status, message))
        resp = test_client.post("/api/generate", json={"prompt": "hat"}, headers=AUTH)
        assert resp.status_code == status
        assert resp.json() == {"error": message}

    def test_generate_backend_not_configured(self, test_client):
        app.dependency_overrides[get_backend] = lambda: None
        resp = test_client.post("/api/generate", json={"prompt": "hat"}, headers=AUTH)
        assert resp.status_code == 500
        assert resp.json() == {"error": "AI service not configured"}


class TestGenerateIdentity:
    """Bearer tokens for direct calls, body user_id for queue relays."""

    def test_missing_token(self, test_client, fake_backend):
        resp = test_client.post("/api/generate", json={"prompt": "hat"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}
        assert fake_backend.calls == []

    def test_unknown_token(self, test_client):
        resp = test_client.post(
            "/api/generate",
            json={"prompt": "hat"},
            headers={"Authorization": "Bearer nope"},
        )
        assert resp.status_code == 401

    def test_queue_requires_user_id(self, test_client):
        resp = test_client.post("/api/generate", json={"prompt": "hat"}, headers=QUEUE)
        assert resp.status_code == 401

    def test_queue_call(self, test_client, backend_script, responses, persistence, png_data_uri):
        """Queue relays are capped to one image and logged under the body user."""
        backend_script.append(responses.image(png_data_uri))
        resp = test_client.post(
            "/api/generate",
            json={"prompt": "hat", "image_count": 3, "user_id": "user-7", "job_id": "job-42"},
            headers=QUEUE,
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["requestedCount"] == 1
        assert data["images"] == ["/outputs/user-7/job-42/0.png"]
        rows = persistence.log.list_for_user("user-7", limit=10)
        assert [row["job_id"] for row in rows] == ["job-42"]

    def test_queue_secret_enforced(
        self, test_client, test_config, backend_script, responses
    ):
        backend_script.append(responses.image("https://cdn.test/x.png"))
        secured = test_config.model_copy(update={"queue_secret": "s3cret"})
        app.dependency_overrides[get_settings] = lambda: secured
        body = {"prompt": "hat", "user_id": "user-7"}

        denied = test_client.post("/api/generate", json=body, headers=QUEUE)
        allowed = test_client.post(
            "/api/generate", json=body, headers={**QUEUE, "x-queue-secret": "s3cret"}
        )

        assert denied.status_code == 401
        assert allowed.status_code == 200


# ---------------------------------------------------------------------------
# Prompt preview tests.
# ---------------------------------------------------------------------------


class TestCompilePrompt:
    """Test POST /api/prompt/compile — prompt preview."""

    def test_compile_layered(self, test_client, fake_backend):
        resp = test_client.post("/api/prompt/compile", json={"prompt": "girl holding coffee cup"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["mode"] == "layered-single-ref"
        assert data["polished"] is True
        assert data["compiled_prompt"].startswith("Professional photography:")
        assert data["output_directive"].startswith("OUTPUT: Exactly 1:1 (1024x1024).")
        assert fake_backend.calls == []

    def test_compile_selfie(self, test_client):
        resp = test_client.post("/api/prompt/compile", json={"prompt": "mirror selfie"})
        assert resp.json()["mode"] == "selfie"

    def test_compile_condensed(self, test_client):
        resp = test_client.post(
            "/api/prompt/compile",
            json={
                "product_image": "https://cdn.test/p.jpg",
                "scene_image": "https://cdn.test/s.jpg",
            },
        )
        data = resp.json()
        assert data["mode"] == "condensed-multi-ref"
        assert "1. PRODUCT:" in data["compiled_prompt"]
        assert "2. SCENE:" in data["compiled_prompt"]

    def test_compile_unpolished(self, test_client):
        resp = test_client.post(
            "/api/prompt/compile", json={"prompt": "red shoes", "polish_prompt": False}
        )
        data = resp.json()
        assert data["compiled_prompt"] == "red shoes"
        assert data["polished"] is False


# ---------------------------------------------------------------------------
# Generation log tests.
# ---------------------------------------------------------------------------


class TestGenerations:
    """Test GET /api/generations — paginated generation log."""

    def _queue_generate(self, client, user_id: str, job_id: str) -> None:
        resp = client.post(
            "/api/generate",
            json={"prompt": "hat", "user_id": user_id, "job_id": job_id},
            headers=QUEUE,
        )
        assert resp.status_code == 200

    def test_requires_auth(self, test_client):
        assert test_client.get("/api/generations").status_code == 401

    def test_lists_only_own_entries(self, test_client, backend_script, responses):
        backend_script.append(responses.image("https://cdn.test/x.png"))
        self._queue_generate(test_client, "user-1", "job-a")
        self._queue_generate(test_client, "user-1", "job-b")
        self._queue_generate(test_client, "user-2", "job-c")

        data = test_client.get("/api/generations", headers=AUTH).json()
        assert data["total"] == 2
        assert {entry["job_id"] for entry in data["generations"]} == {"job-a", "job-b"}

    def test_pagination_clamped(self, test_client, backend_script, responses):
        backend_script.append(responses.image("https://cdn.test/x.png"))
        for i in range(3):
            self._queue_generate(test_client, "user-1", f"job-{i}")

        data = test_client.get(
            "/api/generations", params={"page": 50, "per_page": 2}, headers=AUTH
        ).json()
        assert data["pages"] == 2
        assert data["page"] == 2
        assert len(data["generations"]) == 1

    def test_empty(self, test_client):
        data = test_client.get("/api/generations", headers=AUTH).json()
        assert data["total"] == 0
        assert data["generations"] == []
