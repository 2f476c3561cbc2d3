"""Persisting wrapper around the session transitions."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from ..storage import SessionStore, SessionStoreError
from . import progression
from .models import Session

logger = logging.getLogger(__name__)


class ProgressionEngine:
    """Apply transitions to a session and persist each result before returning it."""

    def __init__(
        self,
        store: SessionStore,
        worktree: Path,
        *,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._store = store
        self._worktree = Path(worktree)
        self._clock = clock or progression.now_ms
        self._persist_error: SessionStoreError | None = None

    @property
    def worktree(self) -> Path:
        return self._worktree

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def persist_error(self) -> SessionStoreError | None:
        """Last persistence failure; reset by the next successful save."""

        return self._persist_error

    def now(self) -> int:
        return self._clock()

    def commit(self, session: Session) -> Session:
        """Persist ``session``; on failure log and still hand the snapshot back."""

        try:
            self._store.save(self._worktree, session)
        except SessionStoreError as exc:
            logger.error(
                "Failed to persist session; on-disk state is stale",
                extra={"worktree": str(self._worktree), "error": str(exc)},
            )
            self._persist_error = exc
        else:
            self._persist_error = None
        return session

    def mark_in_progress(self, session: Session, task_id: str) -> Session:
        return self.commit(progression.mark_in_progress(session, task_id, now=self._clock()))

    def mark_complete(self, session: Session, task_id: str, summary: str | None = None) -> Session:
        return self.commit(progression.mark_complete(session, task_id, summary, now=self._clock()))

    def mark_failed(self, session: Session, task_id: str, error: str | None = None) -> Session:
        return self.commit(progression.mark_failed(session, task_id, error, now=self._clock()))

    def pause(self, session: Session) -> Session:
        return self.commit(progression.pause(session))

    def resume(self, session: Session) -> Session:
        if session.status != "paused":
            return session
        return self.commit(progression.resume(session))


__all__ = ["ProgressionEngine"]
