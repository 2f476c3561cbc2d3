from __future__ import annotations

from cadence_mcp.reporting import (
    build_completion_summary,
    build_status_line,
    build_summary_instruction,
    build_task_instruction,
)
from cadence_mcp.session import SessionConfig, create_session, mark_complete, mark_failed, mark_in_progress


def _session(**config):
    return create_session(
        [
            {"id": "t1", "title": "Add parser", "body": "  Parse the header block.  "},
            {"id": "t2", "title": "Add CLI"},
        ],
        "PRD.md",
        SessionConfig(**config),
    )


def test_task_instruction_lists_configured_steps() -> None:
    session = mark_in_progress(
        _session(test_command="pytest -q", lint_command="ruff check .", auto_commit=True), "t1", now=1
    )

    instruction = build_task_instruction(session, session.tasks[0])

    assert instruction.kind == "task"
    assert instruction.progress == "Task 1 of 2 (2 remaining)"
    assert instruction.steps == [
        "implement the task",
        "test: pytest -q",
        "lint: ruff check .",
        "commit the changes",
        "report task_complete, or task_failed if the task cannot be finished",
    ]
    assert instruction.text.startswith("Current task: Add parser\n\nParse the header block.\n")


def test_tests_step_skipped_when_disabled() -> None:
    session = _session(test_command="pytest", run_tests=False)

    steps = build_task_instruction(session, session.tasks[0]).steps

    assert not any(step.startswith("test:") for step in steps)


def test_completion_summary_lists_outcomes() -> None:
    session = _session(max_retries=1)
    session = mark_complete(mark_in_progress(session, "t1", now=1_000), "t1", "parser done", now=2_000)
    session = mark_failed(mark_in_progress(session, "t2", now=2_000), "t2", "argparse missing", now=3_000)
    session = session.model_copy(update={"time": session.time.model_copy(update={"started": 1_000})})

    summary = build_completion_summary(session)

    assert summary.splitlines()[0] == "Session failed: 1/2 tasks completed, 1 failed"
    assert "- [x] Add parser: parser done" in summary
    assert "- [ ] Add CLI: argparse missing" in summary
    assert summary.endswith("Duration: 2s")

    instruction = build_summary_instruction(session)
    assert instruction.kind == "summary"
    assert instruction.task is None
    assert instruction.progress == "1/2 tasks completed, 1 failed"


def test_status_line() -> None:
    session = _session()
    assert build_status_line(session) == "[1/2] Add parser"

    session = mark_complete(mark_in_progress(session, "t1", now=0), "t1", now=1)
    assert build_status_line(session) == "[2/2] Add CLI"
