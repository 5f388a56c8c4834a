"""Configuration management for the StudioShot generation pipeline.

All settings are loaded with Pydantic Settings from environment variables
carrying the ``STUDIOSHOT_`` prefix, falling back to a ``.env`` file and then
to the defaults declared on :class:`StudioShotConfig`.

Environment Variable Loading
-----------------------------
Priority order:

1. Environment variables (``STUDIOSHOT_*``)
2. ``.env`` file in the working directory
3. Default values defined below

Example .env file::

    STUDIOSHOT_BACKEND_API_KEY=sk-...
    STUDIOSHOT_BACKEND_TIMEOUT_S=45
    STUDIOSHOT_OUTPUTS_DIR=/srv/studioshot/outputs
    STUDIOSHOT_AUTH_TOKENS={"dev-token": "user-123"}

Global Configuration Instance
------------------------------
A module-level ``config`` instance is created at import time and is the
single source of truth for the API layer.  Tests build their own instances
pointing at temporary directories.

Model Variants
--------------
Two backend model variants are configured: ``fast_model`` (low latency) and
``pro_model`` (higher capability, used whenever identity fidelity matters).
The selection policy lives in :mod:`studioshot.core.orchestrator`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StudioShotConfig(BaseSettings):
    """Main configuration for the StudioShot pipeline.

    Attributes
    ----------
    Backend Settings:
        backend_base_url : str
            Base URL of the OpenAI-compatible generation gateway
        backend_api_key : str | None
            Bearer token for the gateway (``None`` = not configured)
        fast_model : str
            Identifier of the fast model variant
        pro_model : str
            Identifier of the high-capability model variant
        backend_timeout_s : float
            Hard wall-clock timeout for a single backend call

    Retry Settings:
        max_retries : int
            Retries per attempt for direct calls (3 tries total by default)
        queue_max_retries : int
            Reduced retry budget for queue-relayed calls
        retry_delay_s : float
            Fixed pause between tries of one attempt
        attempt_pause_s : float
            Pause between consecutive attempts of a batch
        max_images_per_request : int
            Hard cap applied to the requested image count

    Storage Settings:
        outputs_dir : Path
            Root directory for stored images (per-user subdirectories)
        public_base_url : str
            URL prefix under which ``outputs_dir`` is served
        data_dir : Path
            Directory holding the generation-log SQLite database

    Access Settings:
        auth_tokens : dict[str, str]
            Bearer token → user id map for direct calls
        queue_secret : str | None
            Shared secret required from queue-relayed calls when set

    Server Settings:
        server_host, server_port, log_level
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STUDIOSHOT_",
        case_sensitive=False,
    )

    # Generation backend
    backend_base_url: str = Field(
        default="https://ai.gateway.lovable.dev/v1",
        description="Base URL of the OpenAI-compatible generation gateway",
    )
    backend_api_key: str | None = Field(
        default=None,
        description="Bearer token for the generation gateway",
    )
    fast_model: str = Field(
        default="google/gemini-2.5-flash-image",
        description="Fast, latency-bounded model variant",
    )
    pro_model: str = Field(
        default="google/gemini-3-pro-image-preview",
        description="High-capability model variant (identity fidelity)",
    )
    backend_timeout_s: float = Field(
        default=60.0,
        description="Per-call wall-clock timeout in seconds",
        gt=0.0,
        le=300.0,
    )

    # Retry and pacing
    max_retries: int = Field(default=2, ge=0, le=5)
    queue_max_retries: int = Field(default=1, ge=0, le=5)
    retry_delay_s: float = Field(default=0.5, ge=0.0)
    attempt_pause_s: float = Field(default=0.5, ge=0.0)
    max_images_per_request: int = Field(default=4, ge=1, le=16)

    # Storage
    outputs_dir: Path = Field(
        default=Path("outputs"),
        description="Directory where generated images are stored",
    )
    public_base_url: str = Field(
        default="/outputs",
        description="URL prefix under which outputs_dir is served",
    )
    data_dir: Path = Field(
        default=Path("data"),
        description="Directory for the generation log database",
    )

    # Access
    auth_tokens: dict[str, str] = Field(
        default_factory=dict,
        description="Bearer token to user id map for direct calls",
    )
    queue_secret: str | None = Field(
        default=None,
        description="Shared secret expected in x-queue-secret for queue-relayed calls",
    )

    # Server
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=7860, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialise configuration and create the storage directories."""
        super().__init__(**kwargs)

        self.outputs_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def generation_db(self) -> Path:
        """Path of the SQLite generation log."""
        return self.data_dir / "generations.db"


# Global configuration instance, loaded from STUDIOSHOT_* variables and .env.
config = StudioShotConfig()
