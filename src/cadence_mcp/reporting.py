"""Structured instructions and summaries derived from a session."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from .session import (
    Session,
    Task,
    count_completed,
    count_failed,
    count_remaining,
    format_progress,
    get_current_task,
)


class TaskInstruction(BaseModel):
    """What the executor should do next."""

    kind: Literal["task", "summary"]
    progress: str
    task: Task | None = None
    steps: list[str] = Field(default_factory=list)
    text: str


def task_steps(session: Session) -> list[str]:
    config = session.config
    steps = ["implement the task"]
    if config.run_tests and config.test_command:
        steps.append(f"test: {config.test_command}")
    if config.lint_command:
        steps.append(f"lint: {config.lint_command}")
    if config.auto_commit:
        steps.append("commit the changes")
    steps.append("report task_complete, or task_failed if the task cannot be finished")
    return steps


def build_task_instruction(session: Session, task: Task) -> TaskInstruction:
    completed = count_completed(session)
    total = len(session.tasks)
    progress = f"Task {completed + 1} of {total} ({count_remaining(session)} remaining)"
    steps = task_steps(session)

    lines = [f"Current task: {task.title}"]
    if task.body:
        lines.extend(["", task.body.strip()])
    lines.append("")
    lines.extend(f"{number}. {step}" for number, step in enumerate(steps, start=1))
    return TaskInstruction(kind="task", progress=progress, task=task, steps=steps, text="\n".join(lines))


def build_completion_summary(session: Session) -> str:
    completed = count_completed(session)
    failed = count_failed(session)
    total = len(session.tasks)

    parts = [f"Session {session.status}: {completed}/{total} tasks completed" + (f", {failed} failed" if failed else "")]

    done = [task for task in session.tasks if task.status == "completed"]
    if done:
        parts.extend(["", "Completed tasks:"])
        parts.extend(f"- [x] {task.title}" + (f": {task.summary}" if task.summary else "") for task in done)

    abandoned = [task for task in session.tasks if task.status == "failed"]
    if abandoned:
        parts.extend(["", "Failed tasks:"])
        parts.extend(f"- [ ] {task.title}" + (f": {task.error}" if task.error else "") for task in abandoned)

    if session.time.started and session.time.completed:
        duration = round((session.time.completed - session.time.started) / 1000)
        if duration > 0:
            minutes, seconds = divmod(duration, 60)
            parts.extend(["", "Duration: " + (f"{minutes}m " if minutes else "") + f"{seconds}s"])

    return "\n".join(parts)


def build_summary_instruction(session: Session) -> TaskInstruction:
    return TaskInstruction(
        kind="summary",
        progress=format_progress(session),
        text=build_completion_summary(session),
    )


def build_status_line(session: Session) -> str:
    task = get_current_task(session)
    if task is None:
        return format_progress(session)
    return f"[{count_completed(session) + 1}/{len(session.tasks)}] {task.title}"


__all__ = [
    "TaskInstruction",
    "build_completion_summary",
    "build_status_line",
    "build_summary_instruction",
    "build_task_instruction",
    "task_steps",
]
