"""Persist sessions (transcript + working memory) as JSON files, one folder per working directory."""

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import (
    Any,
    Dict,
    List,
)

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

from praxis.core.schema import _now_ms

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return f"session_{int(time.time() * 1000)}"


class SessionRecord(BaseModel):
    """Everything stored for one session."""

    id: str
    title: str = "New session"
    work_directory: str | None = None
    history: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)
    created_at: int = Field(default_factory=_now_ms)
    updated_at: int = Field(default_factory=_now_ms)


class SessionSummary(BaseModel):
    """Listing entry (no transcript payload)."""

    id: str
    title: str
    created_at: int
    updated_at: int
    message_count: int = 0


class SessionStore:
    """
    JSON-file session storage rooted at ``<data_dir>/sessions``.

    Sessions are grouped by working directory: ``sessions/<md5(work_dir)[:8]>/<id>.json``.
    """

    def __init__(self, data_dir: str | Path):
        self.root = Path(data_dir) / "sessions"

    def _folder(self, work_directory: str | None) -> Path:
        key = hashlib.md5((work_directory or "").encode("utf-8")).hexdigest()[:8]
        return self.root / key

    def _path(self, work_directory: str | None, session_id: str) -> Path:
        if not session_id or "/" in session_id or "\\" in session_id or session_id.startswith("."):
            raise ValueError(f"Invalid session id: {session_id!r}")
        return self._folder(work_directory) / f"{session_id}.json"

    def save(self, record: SessionRecord) -> SessionRecord:
        """Write *record*, preserving ``created_at`` of an existing file and bumping ``updated_at``."""
        path = self._path(record.work_directory, record.id)
        existing = self.load(record.work_directory, record.id)
        if existing is not None:
            record.created_at = existing.created_at
        record.updated_at = _now_ms()

        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        tmp_path.replace(path)
        logger.debug("Saved session %s to %s", record.id, path)
        return record

    def load(self, work_directory: str | None, session_id: str) -> SessionRecord | None:
        """Return the stored record, or ``None`` when it does not exist or is unreadable."""
        path = self._path(work_directory, session_id)
        if not path.exists():
            return None
        try:
            return SessionRecord.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as exc:
            logger.error("Failed to load session %s: %s", path, exc)
            return None

    def list(self, work_directory: str | None) -> List[SessionSummary]:
        """Sessions of *work_directory*, most recently updated first."""
        folder = self._folder(work_directory)
        if not folder.is_dir():
            return []
        summaries: List[SessionSummary] = []
        for path in folder.glob("*.json"):
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.warning("Skipping unreadable session file %s: %s", path, exc)
                continue
            summaries.append(
                SessionSummary(
                    id=raw.get("id") or path.stem,
                    title=raw.get("title") or "New session",
                    created_at=raw.get("created_at") or 0,
                    updated_at=raw.get("updated_at") or 0,
                    message_count=len((raw.get("history") or {}).get("history") or []),
                )
            )
        summaries.sort(key=lambda s: s.updated_at, reverse=True)
        return summaries

    def delete(self, work_directory: str | None, session_id: str) -> bool:
        path = self._path(work_directory, session_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info("Deleted session %s", session_id)
        return True
