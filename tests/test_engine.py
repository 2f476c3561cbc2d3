from __future__ import annotations

from pathlib import Path

from cadence_mcp.session import create_session
from cadence_mcp.session.engine import ProgressionEngine
from cadence_mcp.storage import SessionStore, SessionStoreError


class FlakyStore(SessionStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = True
        self.saved = []

    def save(self, worktree, session) -> None:  # type: ignore[override]
        if self.fail:
            raise SessionStoreError("disk full")
        self.saved.append(session)


def _session():
    return create_session([{"id": "a", "title": "A"}, {"id": "b", "title": "B"}], "PRD.md")


def test_transitions_are_persisted(tmp_path: Path) -> None:
    store = SessionStore()
    engine = ProgressionEngine(store, tmp_path, clock=lambda: 42)

    session = engine.mark_in_progress(_session(), "a")
    session = engine.mark_complete(session, "a", "done")

    persisted = store.load(tmp_path)
    assert persisted == session
    assert persisted.tasks[0].time.completed == 42
    assert persisted.current_task_index == 1
    assert engine.persist_error is None


def test_persist_failure_keeps_in_memory_result(tmp_path: Path) -> None:
    store = FlakyStore()
    engine = ProgressionEngine(store, tmp_path, clock=lambda: 7)

    session = engine.mark_in_progress(_session(), "a")

    assert session.tasks[0].status == "in_progress"
    assert isinstance(engine.persist_error, SessionStoreError)

    store.fail = False
    engine.mark_failed(session, "a", "flaky")
    assert engine.persist_error is None
    assert store.saved[-1].tasks[0].error == "flaky"


def test_resume_without_pause_does_not_write(tmp_path: Path) -> None:
    store = FlakyStore()
    store.fail = False
    engine = ProgressionEngine(store, tmp_path)

    session = _session()
    assert engine.resume(session) is session
    assert store.saved == []

    paused = engine.pause(session)
    assert engine.resume(paused).status == "running"
    assert len(store.saved) == 2
