"""Transition functions driving a session through its tasks.

Every transition takes a :class:`Session` snapshot and returns a new snapshot;
the argument is never modified. Persisting the results is the job of
:class:`cadence_mcp.session.engine.ProgressionEngine`.
"""

from __future__ import annotations

import logging
import time

from .models import (
    ACTIONABLE_STATUSES,
    TERMINAL_SESSION_STATUSES,
    Session,
    Task,
    Timing,
)

logger = logging.getLogger(__name__)


class UnknownTaskError(KeyError):
    """Raised when a transition names a task the session does not contain."""


def now_ms() -> int:
    return int(time.time() * 1000)


def _require_index(session: Session, task_id: str) -> int:
    index = session.task_index(task_id)
    if index is None:
        raise UnknownTaskError(f"Task '{task_id}' not found in session")
    return index


def _with_task(session: Session, index: int, task: Task) -> tuple[Task, ...]:
    tasks = list(session.tasks)
    tasks[index] = task
    return tuple(tasks)


def _first_index_after(tasks: tuple[Task, ...], cursor: int, statuses: frozenset[str]) -> int | None:
    for index in range(cursor + 1, len(tasks)):
        if tasks[index].status in statuses:
            return index
    return None


def _exhausted(session: Session, tasks: tuple[Task, ...], now: int) -> Session:
    # A run only counts as a success when nothing was abandoned along the way.
    all_completed = all(task.status == "completed" for task in tasks)
    return session.model_copy(
        update={
            "tasks": tasks,
            "current_task_index": len(tasks),
            "status": "completed" if all_completed else "failed",
            "time": session.time.model_copy(update={"completed": now}),
        }
    )


def get_current_task(session: Session) -> Task | None:
    if session.current_task_index >= len(session.tasks):
        return None
    return session.tasks[session.current_task_index]


def get_next_pending_task(session: Session) -> Task | None:
    """Return the first pending or in-progress task at or after the cursor."""

    for task in session.tasks[session.current_task_index :]:
        if task.status in ACTIONABLE_STATUSES:
            return task
    return None


def get_next_actionable_task(session: Session, skip_failed: bool = False) -> Task | None:
    """Scan from the first task, treating failed tasks as actionable unless skipped.

    Used by manual resume-with-retry flows that want to revisit abandoned work.
    """

    for task in session.tasks:
        if task.status in ACTIONABLE_STATUSES:
            return task
        if not skip_failed and task.status == "failed":
            return task
    return None


def count_remaining(session: Session) -> int:
    return sum(1 for task in session.tasks if task.status in ACTIONABLE_STATUSES)


def count_completed(session: Session) -> int:
    return sum(1 for task in session.tasks if task.status == "completed")


def count_failed(session: Session) -> int:
    return sum(1 for task in session.tasks if task.status == "failed")


def count_deferred(session: Session) -> int:
    return sum(1 for task in session.tasks if task.status == "deferred")


def is_complete(session: Session) -> bool:
    return session.status in TERMINAL_SESSION_STATUSES


def should_continue(session: Session) -> bool:
    return session.status == "running" and count_remaining(session) > 0


def mark_in_progress(session: Session, task_id: str, *, now: int | None = None) -> Session:
    """Start (or restart) a task, counting the attempt.

    Re-entrant: a task already in progress keeps its stamp and attempt count.
    """

    index = _require_index(session, task_id)
    task = session.tasks[index]
    if task.is_terminal or is_complete(session):
        return session
    if task.status == "in_progress":
        if session.status == "running":
            return session
        return session.model_copy(update={"status": "running"})

    stamp = now_ms() if now is None else now
    started = task.model_copy(
        update={
            "status": "in_progress",
            "attempts": task.attempts + 1,
            "time": Timing(started=stamp),
        }
    )
    return session.model_copy(
        update={"tasks": _with_task(session, index, started), "status": "running"}
    )


def mark_complete(
    session: Session,
    task_id: str,
    summary: str | None = None,
    *,
    now: int | None = None,
) -> Session:
    """Complete a task and move the cursor to the next actionable one."""

    index = _require_index(session, task_id)
    task = session.tasks[index]
    if task.is_terminal:
        return session

    stamp = now_ms() if now is None else now
    update: dict[str, object] = {
        "status": "completed",
        "time": task.time.model_copy(update={"completed": stamp}),
    }
    if summary:
        update["summary"] = summary
    tasks = _with_task(session, index, task.model_copy(update=update))

    next_index = _first_index_after(tasks, session.current_task_index, ACTIONABLE_STATUSES)
    if next_index is None:
        updated = _exhausted(session, tasks, stamp)
    else:
        updated = session.model_copy(update={"tasks": tasks, "current_task_index": next_index})

    logger.info(
        "Task completed",
        extra={"task_id": task_id, "remaining": count_remaining(updated), "status": updated.status},
    )
    return updated


def mark_failed(
    session: Session,
    task_id: str,
    error: str | None = None,
    *,
    now: int | None = None,
) -> Session:
    """Record a failed attempt, retrying the task while attempts remain."""

    index = _require_index(session, task_id)
    task = session.tasks[index]
    if task.is_terminal:
        return session

    stamp = now_ms() if now is None else now
    update: dict[str, object] = {"time": task.time.model_copy(update={"completed": stamp})}
    if error:
        update["error"] = error

    max_retries = session.config.max_retries
    if task.attempts < max_retries:
        # attempts were already counted by mark_in_progress
        update["status"] = "pending"
        tasks = _with_task(session, index, task.model_copy(update=update))
        logger.info(
            "Task failed, will retry",
            extra={"task_id": task_id, "attempts": task.attempts, "max_retries": max_retries},
        )
        return session.model_copy(update={"tasks": tasks, "status": "running"})

    update["status"] = "failed"
    tasks = _with_task(session, index, task.model_copy(update=update))
    logger.error(
        "Task failed after max retries",
        extra={"task_id": task_id, "attempts": task.attempts, "error": error},
    )

    if session.config.stop_on_error:
        return session.model_copy(
            update={
                "tasks": tasks,
                "status": "failed",
                "time": session.time.model_copy(update={"completed": stamp}),
            }
        )

    next_index = _first_index_after(tasks, session.current_task_index, frozenset({"pending"}))
    if next_index is None:
        return _exhausted(session, tasks, stamp)
    return session.model_copy(update={"tasks": tasks, "current_task_index": next_index})


def pause(session: Session) -> Session:
    if session.status not in {"running", "idle"}:
        return session
    logger.info("Session paused")
    return session.model_copy(update={"status": "paused"})


def resume(session: Session) -> Session:
    if session.status != "paused":
        return session
    logger.info("Session resumed")
    return session.model_copy(update={"status": "running"})


def format_progress(session: Session) -> str:
    completed = count_completed(session)
    failed = count_failed(session)
    total = len(session.tasks)
    current = get_current_task(session)

    if current is not None:
        suffix = f" ({failed} failed)" if failed else ""
        return f"Task {completed + 1}/{total}: {current.title}{suffix}"
    suffix = f", {failed} failed" if failed else ""
    return f"{completed}/{total} tasks completed{suffix}"


__all__ = [
    "UnknownTaskError",
    "count_completed",
    "count_deferred",
    "count_failed",
    "count_remaining",
    "format_progress",
    "get_current_task",
    "get_next_actionable_task",
    "get_next_pending_task",
    "is_complete",
    "mark_complete",
    "mark_failed",
    "mark_in_progress",
    "now_ms",
    "pause",
    "resume",
    "should_continue",
]
