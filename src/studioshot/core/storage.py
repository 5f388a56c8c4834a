"""Output persistence: image storage and the generation log.

Two collaborators live here:

- :class:`OutputStore` writes generated images to disk under a per-user
  namespace (``<outputs_dir>/<user_id>/<job_id>/<index>.png``) and returns the
  public URL they are served from.  Inline ``data:`` images are decoded and
  verified with Pillow; images the backend already hosts are returned as-is.
- :class:`GenerationLog` is a small SQLite table with one row per successful
  image generated through a queue-relayed call, so the scheduler's users can
  retrieve their results later.

:class:`OutputPersistence` combines both behind the single call the
orchestrator makes.  Every failure surfaces as
:class:`~studioshot.core.errors.PersistenceError`; the orchestrator logs it
and keeps the image it already has.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from studioshot.core.config import StudioShotConfig
from studioshot.core.errors import PersistenceError
from studioshot.core.models import CallContext, GenerationRequest

logger = logging.getLogger(__name__)

_DATA_URI = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.+)$", re.DOTALL)
_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]")

# Pillow modes that can be written to PNG without conversion.
_PNG_MODES = {"1", "L", "LA", "P", "RGB", "RGBA", "I", "I;16"}


def _safe_segment(value: str) -> str:
    """Reduce *value* to a single safe path segment."""
    return _UNSAFE_SEGMENT.sub("_", value) or "anonymous"


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Split a ``data:image/...;base64,`` URI into mime type and raw bytes.

    Raises:
        PersistenceError: If the URI is malformed or not valid base64.
    """
    match = _DATA_URI.match(uri)
    if not match:
        raise PersistenceError("Image is not a base64 data URI")
    try:
        raw = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise PersistenceError("Image data is not valid base64") from exc
    return match.group("mime"), raw


class OutputStore:
    """File-backed image storage with per-user namespacing."""

    def __init__(self, outputs_dir: Path, public_base_url: str) -> None:
        self.outputs_dir = Path(outputs_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.outputs_dir.mkdir(parents=True, exist_ok=True)

    def save(self, image_url: str, user_id: str, job_id: str, index: int) -> str:
        """Store one generated image and return its fetchable URL.

        Args:
            image_url: ``data:`` URI or hosted URL returned by the backend.
            user_id: Caller identity; the top-level storage namespace.
            job_id: Invocation identifier; groups images of one batch.
            index: Attempt index within the batch.

        Returns:
            Public URL of the stored file, or *image_url* unchanged when the
            backend already hosts the image.

        Raises:
            PersistenceError: If the image cannot be decoded or written.
        """
        if not image_url.startswith("data:"):
            return image_url

        _, raw = decode_data_uri(image_url)

        try:
            image = Image.open(BytesIO(raw))
            image.load()
            if image.mode not in _PNG_MODES:
                image = image.convert("RGB")
        except (
            UnidentifiedImageError,
            Image.DecompressionBombError,
            OSError,
            ValueError,
            SyntaxError,
        ) as exc:
            # Pillow reports corrupt input through several unrelated types.
            raise PersistenceError("Backend returned unreadable image data") from exc

        user_segment = _safe_segment(user_id)
        job_segment = _safe_segment(job_id)
        filename = f"{index}.png"
        target_dir = self.outputs_dir / user_segment / job_segment
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            image.save(target_dir / filename, format="PNG")
        except (OSError, ValueError) as exc:
            raise PersistenceError(f"Could not write image: {exc}") from exc

        logger.info("Stored image %s/%s/%s.", user_segment, job_segment, filename)
        return f"{self.public_base_url}/{user_segment}/{job_segment}/{filename}"


@dataclass
class GenerationEntry:
    """One row of the generation log."""

    user_id: str
    job_id: str
    image_url: str
    prompt: str
    aspect_ratio: str
    quality: str
    product_id: str | None = None
    model_id: str | None = None
    scene_id: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class GenerationLog:
    """SQLite-backed generation log."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()

    def _initialize_db(self) -> None:
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS generations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    job_id TEXT NOT NULL,
                    image_url TEXT NOT NULL,
                    prompt TEXT NOT NULL,
                    aspect_ratio TEXT NOT NULL,
                    quality TEXT NOT NULL,
                    product_id TEXT,
                    model_id TEXT,
                    scene_id TEXT,
                    created_at TEXT NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_generations_user
                ON generations(user_id, created_at DESC)
                """)
            conn.commit()

    def record(self, entry: GenerationEntry) -> None:
        """Insert one generation row.

        Raises:
            PersistenceError: If the insert fails.
        """
        row = asdict(entry)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    f"INSERT INTO generations ({columns}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not record generation: {exc}") from exc

    def count_for_user(self, user_id: str) -> int:
        with sqlite3.connect(self.db_path) as conn:
            result = conn.execute(
                "SELECT COUNT(*) FROM generations WHERE user_id = ?", (user_id,)
            ).fetchone()
        return result[0] if result else 0

    def list_for_user(self, user_id: str, *, limit: int, offset: int = 0) -> list[dict]:
        """Return a user's entries, newest first."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                """
                SELECT * FROM generations WHERE user_id = ?
                ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?
                """,
                (user_id, limit, offset),
            ).fetchall()
        return [dict(row) for row in rows]

    def page_for_user(self, user_id: str, page: int, per_page: int) -> dict:
        """Paginate a user's entries, clamping *page* to valid bounds.

        Returns:
            Dictionary with ``total``, ``page``, ``per_page``, ``pages`` and
            ``generations``.
        """
        total = self.count_for_user(user_id)
        pages = (total + per_page - 1) // per_page if total > 0 else 1
        resolved_page = min(max(page, 1), pages)
        entries = self.list_for_user(
            user_id, limit=per_page, offset=(resolved_page - 1) * per_page
        )
        return {
            "total": total,
            "page": resolved_page,
            "per_page": per_page,
            "pages": pages,
            "generations": entries,
        }


class OutputPersistence:
    """The single persistence call the orchestrator makes per success."""

    def __init__(self, store: OutputStore, log: GenerationLog) -> None:
        self.store = store
        self.log = log

    @classmethod
    def from_config(cls, config: StudioShotConfig) -> OutputPersistence:
        return cls(
            OutputStore(config.outputs_dir, config.public_base_url),
            GenerationLog(config.generation_db),
        )

    def persist(
        self,
        image_url: str,
        request: GenerationRequest,
        context: CallContext,
        index: int,
    ) -> str:
        """Store an accepted image and, for queue-relayed calls, log it.

        A failed log insert is logged here and does not affect the returned
        URL: the file is already stored.

        Returns:
            The stable URL of the stored image.

        Raises:
            PersistenceError: If the image itself could not be stored.
        """
        stored_url = self.store.save(image_url, context.user_id, context.job_id, index)

        if context.is_queue_internal:
            refs = request.references
            entry = GenerationEntry(
                user_id=context.user_id,
                job_id=context.job_id,
                image_url=stored_url,
                prompt=request.raw_prompt,
                aspect_ratio=request.aspect_ratio,
                quality=request.quality,
                product_id=refs.product.id if refs.product else None,
                model_id=refs.model.id if refs.model else None,
                scene_id=refs.scene.id if refs.scene else None,
            )
            try:
                self.log.record(entry)
            except PersistenceError:
                logger.exception("Failed to record generation for job %s.", context.job_id)

        return stored_url
