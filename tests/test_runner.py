from __future__ import annotations

from pathlib import Path

import pytest

from cadence_mcp.events import EventBus
from cadence_mcp.resources import ResourcePool
from cadence_mcp.runner import NoTasksError, SessionRunner
from cadence_mcp.storage import SessionStore, SessionStoreError

TASKS = [
    {"id": "t1", "title": "Add parser"},
    {"id": "t2", "title": "Add CLI"},
]


class StaticTaskSource:
    def __init__(self, tasks) -> None:
        self.tasks = tasks
        self.calls: list[str] = []

    def load_tasks(self, prd_path: str):
        self.calls.append(prd_path)
        return self.tasks


def _runner(tmp_path: Path, **kwargs) -> tuple[SessionRunner, list]:
    bus = EventBus()
    events: list = []
    bus.subscribe(events.append)
    runner = SessionRunner(tmp_path, store=SessionStore(), bus=bus, clock=lambda: 1_000, **kwargs)
    return runner, events


def test_start_persists_running_session(tmp_path: Path) -> None:
    runner, events = _runner(tmp_path)

    session = runner.start("PRD.md", "s1", tasks=TASKS, config={"maxRetries": 1})

    assert session.status == "running"
    assert session.time.started == 1_000
    assert session.config.max_retries == 1
    assert runner.load() == session
    assert [event.event_type for event in events] == ["cadence.session.start"]
    assert events[0].task_count == 2


def test_start_resumes_unfinished_session(tmp_path: Path) -> None:
    runner, events = _runner(tmp_path)
    first = runner.start("PRD.md", "s1", tasks=TASKS)

    again = runner.start("OTHER.md", "s2", tasks=[{"id": "x", "title": "X"}])

    assert again == first
    assert len(events) == 1


def test_start_uses_task_source(tmp_path: Path) -> None:
    source = StaticTaskSource(TASKS)
    runner, _ = _runner(tmp_path, task_source=source)

    session = runner.start("PRD.md", "s1")

    assert source.calls == ["PRD.md"]
    assert len(session.tasks) == 2


def test_start_without_tasks_raises(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)

    with pytest.raises(NoTasksError):
        runner.start("PRD.md", "s1")
    with pytest.raises(NoTasksError):
        runner.start("PRD.md", "s1", tasks=[])
    with pytest.raises(NoTasksError):
        runner.start("PRD.md", "s1", tasks=[{"id": "t1", "title": "Done", "status": "completed"}])
    assert runner.load() is None


def test_start_resets_resource_pool(tmp_path: Path) -> None:
    pool = ResourcePool(clock=lambda: 0)
    pool.mark_unavailable("anthropic", "429", until=60_000)
    runner, _ = _runner(tmp_path, pool=pool)

    runner.start("PRD.md", "s1", tasks=TASKS)

    assert pool.unavailable() == []


def test_next_instruction_marks_task_in_progress(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)
    runner.start("PRD.md", "s1", tasks=TASKS)

    instruction = runner.next_instruction()

    assert instruction.kind == "task"
    assert instruction.task.id == "t1"
    assert instruction.task.attempts == 1
    assert runner.load().tasks[0].status == "in_progress"

    again = runner.next_instruction()
    assert again.task.attempts == 1


def test_next_instruction_without_session_or_paused(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)
    assert runner.next_instruction() is None

    runner.start("PRD.md", "s1", tasks=TASKS)
    runner.pause()
    assert runner.next_instruction() is None

    runner.resume()
    assert runner.next_instruction().task.id == "t1"


def test_full_run_publishes_lifecycle(tmp_path: Path) -> None:
    runner, events = _runner(tmp_path)
    runner.start("PRD.md", "s1", tasks=TASKS)

    runner.next_instruction()
    first = runner.control("task_complete", "s1", summary="parser ok")
    assert first.title == "Task completed: Add parser"
    assert "1 task(s) remaining" in first.output

    runner.next_instruction()
    last = runner.control("task_complete", "s1")
    assert "All tasks done." in last.output
    assert "Session completed: 2/2 tasks completed" in last.output
    assert last.metadata["session_status"] == "completed"

    assert [event.event_type for event in events] == [
        "cadence.session.start",
        "cadence.task.complete",
        "cadence.task.complete",
        "cadence.session.complete",
    ]
    assert events[-1].completed == 2

    summary = runner.next_instruction()
    assert summary.kind == "summary"
    assert not runner.should_continue()


def test_report_failure_retries_then_gives_up(tmp_path: Path) -> None:
    runner, events = _runner(tmp_path)
    runner.start("PRD.md", "s1", tasks=TASKS, config={"maxRetries": 2})

    runner.next_instruction()
    retry = runner.report_failure("s1", "tests red")
    assert retry.title == "Task failed (will retry): Add parser"
    assert "Will retry (attempt 1/2)" in retry.output

    runner.next_instruction()
    final = runner.report_failure("s1")
    assert final.title == "Task failed: Add parser"
    assert "failed after 2 attempt(s): Unknown error" in final.output

    session = runner.load()
    assert session.current_task_index == 1
    assert session.tasks[0].status == "failed"
    assert session.status == "running"
    assert [event.event_type for event in events].count("cadence.task.failed") == 2


def test_control_without_session_is_informational(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)

    for action in ("task_complete", "task_failed", "run_tests"):
        result = runner.control(action, "s1")
        assert result.title == "No active session"

    unknown = runner.control("deploy", "s1")
    assert unknown.title == "Unknown action"
    assert "task_complete, task_failed, run_tests" in unknown.output


def test_run_tests_reports_command(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)
    runner.start("PRD.md", "s1", tasks=TASKS)
    assert runner.test_command().title == "No test command configured"

    runner.stop()
    runner.start("PRD.md", "s1", tasks=TASKS, config={"testCommand": "pytest -q"})
    result = runner.control("run_tests", "s1")
    assert result.output == "Please run the test command: pytest -q"
    assert result.metadata["command"] == "pytest -q"


def test_status_and_stop(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)
    assert runner.status().status_line == "No active session"

    runner.start("PRD.md", "s1", tasks=TASKS)
    status = runner.status()
    assert status.active
    assert status.status_line == "[1/2] Add parser"

    assert runner.stop() is True
    assert runner.load() is None
    assert not runner.status().active


def test_stop_reports_store_failure(tmp_path: Path) -> None:
    class BrokenStore(SessionStore):
        def remove(self, worktree) -> None:  # type: ignore[override]
            raise SessionStoreError("read-only filesystem")

    runner = SessionRunner(tmp_path, store=BrokenStore())

    assert runner.stop() is False


def test_reports_after_hard_stop_publish_nothing(tmp_path: Path) -> None:
    runner, events = _runner(tmp_path)
    runner.start("PRD.md", "s1", tasks=TASKS, config={"maxRetries": 0, "stopOnError": True})
    runner.next_instruction()
    runner.report_failure("s1", "fatal")
    published = [event.event_type for event in events]
    assert published[-1] == "cadence.session.complete"

    success = runner.report_success("s1", "too late")
    failure = runner.report_failure("s1", "again")

    assert success.title == "Task already finished"
    assert failure.title == "Task already finished"
    assert [event.event_type for event in events] == published
    session = runner.load()
    assert session.status == "failed"
    assert session.tasks[0].status == "failed"
    assert session.tasks[0].summary is None


def test_failure_without_next_task_counts_attempts(tmp_path: Path) -> None:
    runner, _ = _runner(tmp_path)
    runner.start("PRD.md", "s1", tasks=TASKS, config={"maxRetries": 2})

    first = runner.report_failure("s1", "skipped next_task")
    assert "Will retry (attempt 1/2)" in first.output

    second = runner.report_failure("s1", "skipped again")
    assert second.title == "Task failed: Add parser"

    session = runner.load()
    assert session.tasks[0].attempts == 2
    assert session.current_task_index == 1
