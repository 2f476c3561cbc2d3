"""JSON persistence of the active session under a worktree."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from pydantic import ValidationError

from ..session.models import Session

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = ".cadence/session.json"


class SessionStoreError(RuntimeError):
    """Raised when session state cannot be written or removed."""


class SessionStore:
    """Load, save and remove the single session document of a worktree.

    The document is the only source of truth for a session. Writes go through
    a temporary sibling file and an atomic rename so that a reader never sees
    a half-written document; there is no cross-process locking.
    """

    def __init__(self, state_file: str | Path = DEFAULT_STATE_FILE) -> None:
        relative = Path(state_file)
        if relative.is_absolute():
            raise ValueError("state_file must be relative to the worktree")
        self._state_file = relative
        self._write_lock = threading.Lock()

    @property
    def state_file(self) -> Path:
        return self._state_file

    def path_for(self, worktree: Path | str) -> Path:
        return Path(worktree) / self._state_file

    def load(self, worktree: Path | str) -> Session | None:
        """Return the persisted session, or ``None`` when absent or unreadable."""

        path = self.path_for(worktree)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.error("Failed to read session state", extra={"path": str(path), "error": str(exc)})
            return None
        except UnicodeDecodeError as exc:
            logger.error("Session state is not valid UTF-8", extra={"path": str(path), "error": str(exc)})
            return None

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.error("Session state is not valid JSON", extra={"path": str(path), "error": str(exc)})
            return None

        try:
            return Session.model_validate(document)
        except ValidationError as exc:
            logger.error(
                "Session state failed validation",
                extra={"path": str(path), "errors": exc.error_count()},
            )
            return None

    def save(self, worktree: Path | str, session: Session) -> None:
        path = self.path_for(worktree)
        payload = json.dumps(session.to_document(), indent=2)
        with self._write_lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as handle:
                        handle.write(payload)
                    os.replace(tmp_name, path)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as exc:
                raise SessionStoreError(f"Failed to write session state to {path}: {exc}") from exc

        logger.info(
            "Saved session state",
            extra={"tasks": len(session.tasks), "current": session.current_task_index},
        )

    def remove(self, worktree: Path | str) -> None:
        path = self.path_for(worktree)
        with self._write_lock:
            try:
                path.unlink()
            except FileNotFoundError:
                return
            except OSError as exc:
                raise SessionStoreError(f"Failed to remove session state at {path}: {exc}") from exc
        logger.info("Removed session state", extra={"path": str(path)})


__all__ = ["DEFAULT_STATE_FILE", "SessionStore", "SessionStoreError"]
