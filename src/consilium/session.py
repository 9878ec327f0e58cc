"""Per-project record of the elicitation transcript and gathered answers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Sequence

from pydantic import Field, ValidationError

from .config import ProjectContext, SettingsModel
from .errors import PersistenceError
from .structured import Message

__all__ = ["SESSION_FILE", "SessionRecord", "load_session_record", "write_session_record"]

LOGGER = logging.getLogger(__name__)

SESSION_FILE = ".ai-consilium.json"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionRecord(SettingsModel):
    """Snapshot written next to the generated documentation."""

    project_name: str
    context: ProjectContext = Field(default_factory=ProjectContext)
    messages: List[Dict[str, str]] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)

    def transcript(self) -> List[Message]:
        return [Message(entry["role"], entry["content"]) for entry in self.messages]  # type: ignore[arg-type]


def write_session_record(
    project_dir: Path,
    project_name: str,
    context: ProjectContext,
    messages: Sequence[Message],
) -> Path:
    """Write ``.ai-consilium.json`` into ``project_dir`` and return its path."""
    record = SessionRecord(
        project_name=project_name,
        context=context,
        messages=[message.to_dict() for message in messages],
    )
    path = Path(project_dir) / SESSION_FILE
    payload = json.dumps(record.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload + "\n", encoding="utf-8")
    except OSError as error:
        raise PersistenceError(f"Unable to write session record {path}: {error}", path=path) from error
    LOGGER.debug("Wrote session record to %s", path)
    return path


def load_session_record(path: Path) -> SessionRecord:
    """Read a session record, accepting either the file or its project directory."""
    path = Path(path)
    if path.is_dir():
        path = path / SESSION_FILE
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as error:
        raise PersistenceError(f"Unable to read session record {path}: {error}", path=path) from error
    except json.JSONDecodeError as error:
        raise PersistenceError(f"Session record {path} is not valid JSON: {error}", path=path) from error
    try:
        return SessionRecord.model_validate(raw)
    except ValidationError as error:
        raise PersistenceError(f"Session record {path} is invalid: {error}", path=path) from error
