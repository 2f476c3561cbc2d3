from __future__ import annotations

import json
from pathlib import Path

import pytest

from cadence_mcp.session import SessionConfig, create_session, mark_in_progress
from cadence_mcp.storage import DEFAULT_STATE_FILE, SessionStore, SessionStoreError


def _sample_session():
    session = create_session(
        [
            {"id": "t1", "title": "Write parser", "body": "Handle nested lists."},
            {"id": "t2", "title": "Add CLI"},
        ],
        "docs/PRD.md",
        SessionConfig(max_retries=2, test_command="pytest -q"),
    )
    return mark_in_progress(session, "t1", now=1_700_000_000_000)


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    store = SessionStore()
    session = _sample_session()

    store.save(tmp_path, session)
    loaded = store.load(tmp_path)

    assert loaded == session
    assert (tmp_path / DEFAULT_STATE_FILE).exists()


def test_document_uses_camel_case_keys(tmp_path: Path) -> None:
    store = SessionStore()
    store.save(tmp_path, _sample_session())

    document = json.loads((tmp_path / ".cadence" / "session.json").read_text(encoding="utf-8"))

    assert document["currentTaskIndex"] == 0
    assert document["prdPath"] == "docs/PRD.md"
    assert document["config"]["maxRetries"] == 2
    assert document["config"]["testCommand"] == "pytest -q"
    assert document["tasks"][0]["time"]["started"] == 1_700_000_000_000
    assert "error" not in document["tasks"][0]


def test_load_missing_returns_none(tmp_path: Path) -> None:
    assert SessionStore().load(tmp_path) is None


def test_load_corrupt_json_returns_none(tmp_path: Path) -> None:
    path = tmp_path / ".cadence" / "session.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json", encoding="utf-8")

    assert SessionStore().load(tmp_path) is None


def test_load_undecodable_bytes_returns_none(tmp_path: Path) -> None:
    path = tmp_path / ".cadence" / "session.json"
    path.parent.mkdir(parents=True)
    path.write_bytes(b'{"tasks": [], "prdPath": "\xff\xfe"}')

    assert SessionStore().load(tmp_path) is None


def test_load_invalid_document_returns_none(tmp_path: Path) -> None:
    path = tmp_path / ".cadence" / "session.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"tasks": [{"id": "t1"}], "prdPath": "PRD.md"}), encoding="utf-8")

    assert SessionStore().load(tmp_path) is None


def test_save_overwrites_without_leftover_temp_files(tmp_path: Path) -> None:
    store = SessionStore()
    session = _sample_session()
    store.save(tmp_path, session)
    store.save(tmp_path, session.model_copy(update={"status": "paused"}))

    assert store.load(tmp_path).status == "paused"
    assert [p.name for p in (tmp_path / ".cadence").iterdir()] == ["session.json"]


def test_remove_is_idempotent(tmp_path: Path) -> None:
    store = SessionStore()
    store.save(tmp_path, _sample_session())

    store.remove(tmp_path)
    store.remove(tmp_path)

    assert store.load(tmp_path) is None


def test_custom_state_file(tmp_path: Path) -> None:
    store = SessionStore("state/run.json")
    store.save(tmp_path, _sample_session())

    assert store.path_for(tmp_path) == tmp_path / "state" / "run.json"
    assert store.load(tmp_path) is not None


def test_absolute_state_file_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SessionStore(tmp_path / "session.json")


def test_save_failure_raises_store_error(tmp_path: Path) -> None:
    blocker = tmp_path / ".cadence"
    blocker.write_text("not a directory", encoding="utf-8")

    with pytest.raises(SessionStoreError):
        SessionStore().save(tmp_path, _sample_session())
