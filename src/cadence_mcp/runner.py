"""Session lifecycle: start, instruct, advance on reported outcome, finish."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal, Mapping, Protocol, Sequence

from .events import EventBus, SessionCompleted, SessionStarted, TaskCompleted, TaskFailed
from .reporting import (
    TaskInstruction,
    build_completion_summary,
    build_status_line,
    build_summary_instruction,
    build_task_instruction,
)
from .resources import ResourcePool
from .session import (
    Session,
    SessionConfig,
    Task,
    count_completed,
    count_failed,
    count_remaining,
    create_session,
    get_current_task,
    is_complete,
    should_continue,
)
from .session.engine import ProgressionEngine
from .storage import SessionStore, SessionStoreError

logger = logging.getLogger(__name__)

ControlAction = Literal["task_complete", "task_failed", "run_tests"]
CONTROL_ACTIONS: tuple[str, ...] = ("task_complete", "task_failed", "run_tests")


class NoTasksError(ValueError):
    """Raised when a task source yields nothing to work on."""


class TaskSource(Protocol):
    """Supplies the ordered task records for a source document."""

    def load_tasks(self, prd_path: str) -> Sequence[Task | Mapping[str, Any]]:
        ...


@dataclass(slots=True)
class ControlResult:
    """Outcome of a command-surface call, always informational."""

    title: str
    output: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class RunnerStatus:
    active: bool
    session: Session | None
    status_line: str


class SessionRunner:
    """Drive the single session of a worktree through its tasks."""

    def __init__(
        self,
        worktree: Path,
        *,
        store: SessionStore | None = None,
        bus: EventBus | None = None,
        pool: ResourcePool | None = None,
        task_source: TaskSource | None = None,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self._worktree = Path(worktree)
        self._store = store or SessionStore()
        self._bus = bus or EventBus()
        self._pool = pool or ResourcePool()
        self._task_source = task_source
        self._engine = ProgressionEngine(self._store, self._worktree, clock=clock)

    @property
    def worktree(self) -> Path:
        return self._worktree

    @property
    def engine(self) -> ProgressionEngine:
        return self._engine

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def pool(self) -> ResourcePool:
        return self._pool

    @property
    def persist_error(self) -> SessionStoreError | None:
        return self._engine.persist_error

    def load(self) -> Session | None:
        return self._store.load(self._worktree)

    def start(
        self,
        prd_path: str,
        session_id: str,
        *,
        tasks: Sequence[Task | Mapping[str, Any]] | None = None,
        config: SessionConfig | Mapping[str, Any] | None = None,
    ) -> Session:
        """Resume the unfinished session of this worktree or create a new one."""

        existing = self.load()
        if existing is not None and not is_complete(existing):
            logger.info(
                "Resuming existing session",
                extra={"tasks": len(existing.tasks), "current": existing.current_task_index},
            )
            return existing

        if tasks is None:
            if self._task_source is None:
                raise NoTasksError(f"No tasks supplied and no task source configured for {prd_path}")
            tasks = self._task_source.load_tasks(prd_path)
        if not tasks:
            raise NoTasksError(f"No tasks found in source: {prd_path}")

        session = create_session(tasks, prd_path, config)
        if count_remaining(session) == 0:
            raise NoTasksError(f"No actionable tasks found in source: {prd_path}")

        session = session.model_copy(
            update={
                "status": "running",
                "time": session.time.model_copy(update={"started": self._engine.now()}),
            }
        )
        self._pool.reset()
        session = self._engine.commit(session)

        self._bus.publish(
            SessionStarted(session_id=session_id, prd_path=prd_path, task_count=len(session.tasks))
        )
        logger.info("Started session", extra={"tasks": len(session.tasks), "prd_path": prd_path})
        return session

    def next_instruction(self) -> TaskInstruction | None:
        """Return the instruction for the current task, marking it in progress.

        A finished session yields its completion summary; a missing or paused
        session, or one without a current task, yields None.
        """

        session = self.load()
        if session is None:
            return None
        if is_complete(session):
            return build_summary_instruction(session)
        if session.status == "paused":
            return None

        task = get_current_task(session)
        if task is None:
            return None
        if task.status == "pending":
            session = self._engine.mark_in_progress(session, task.id)
            task = session.find_task(task.id) or task
        if task.status != "in_progress":
            return None
        return build_task_instruction(session, task)

    def control(
        self,
        action: str,
        session_id: str,
        *,
        summary: str | None = None,
        error: str | None = None,
    ) -> ControlResult:
        if action == "task_complete":
            return self.report_success(session_id, summary)
        if action == "task_failed":
            return self.report_failure(session_id, error)
        if action == "run_tests":
            return self.test_command()
        return ControlResult(
            title="Unknown action",
            output=f"Unknown control action: {action}. Valid actions: {', '.join(CONTROL_ACTIONS)}",
            metadata={"action": action},
        )

    def _current(self, action: str) -> tuple[Session, Task] | ControlResult:
        session = self.load()
        if session is None:
            return ControlResult(
                title="No active session",
                output="No active session found. Start one with session_start.",
                metadata={"action": action},
            )
        task = get_current_task(session)
        if task is None:
            return ControlResult(
                title="No current task",
                output="No current task in the session. All tasks may be complete.",
                metadata={"action": action},
            )
        if is_complete(session) or task.is_terminal:
            return ControlResult(
                title="Task already finished",
                output=(
                    f'Task "{task.title}" is already {task.status} and the session is '
                    f"{session.status}. Nothing was recorded."
                ),
                metadata={"action": action, "task_id": task.id, "session_status": session.status},
            )
        if task.status == "pending":
            # an outcome reported without next_task still counts as an attempt
            session = self._engine.mark_in_progress(session, task.id)
            task = session.find_task(task.id) or task
        return session, task

    def report_success(self, session_id: str, summary: str | None = None) -> ControlResult:
        current = self._current("task_complete")
        if isinstance(current, ControlResult):
            return current
        session, task = current

        session = self._engine.mark_complete(session, task.id, summary)
        self._bus.publish(TaskCompleted(session_id=session_id, task_id=task.id, summary=summary))

        remaining = count_remaining(session)
        if remaining:
            output = f'Task "{task.title}" completed. {remaining} task(s) remaining.'
        else:
            output = f'Task "{task.title}" completed. All tasks done.'
        if is_complete(session):
            output += "\n\n" + self.complete(session_id, session=session)

        return ControlResult(
            title=f"Task completed: {task.title}",
            output=output,
            metadata=self._metadata("task_complete", session, task.id),
        )

    def report_failure(self, session_id: str, error: str | None = None) -> ControlResult:
        current = self._current("task_failed")
        if isinstance(current, ControlResult):
            return current
        session, task = current

        session = self._engine.mark_failed(session, task.id, error)
        self._bus.publish(TaskFailed(session_id=session_id, task_id=task.id, error=error))

        updated = session.find_task(task.id) or task
        reason = error or "Unknown error"
        max_retries = session.config.max_retries
        if updated.status == "pending":
            title = f"Task failed (will retry): {task.title}"
            output = (
                f'Task "{task.title}" failed: {reason}. '
                f"Will retry (attempt {updated.attempts}/{max_retries})."
            )
        else:
            title = f"Task failed: {task.title}"
            output = f'Task "{task.title}" failed after {updated.attempts} attempt(s): {reason}.'
        if is_complete(session):
            output += "\n\n" + self.complete(session_id, session=session)

        return ControlResult(
            title=title,
            output=output,
            metadata=self._metadata("task_failed", session, task.id),
        )

    def test_command(self) -> ControlResult:
        session = self.load()
        if session is None:
            return ControlResult(
                title="No active session",
                output="No active session found. Start one with session_start.",
                metadata={"action": "run_tests"},
            )
        command = session.config.test_command
        if not command:
            return ControlResult(
                title="No test command configured",
                output="No test command is configured for this session. Tests skipped.",
                metadata={"action": "run_tests"},
            )
        return ControlResult(
            title="Run tests",
            output=f"Please run the test command: {command}",
            metadata={"action": "run_tests", "command": command},
        )

    def _metadata(self, action: str, session: Session, task_id: str) -> dict[str, Any]:
        return {
            "action": action,
            "task_id": task_id,
            "session_status": session.status,
            "remaining": count_remaining(session),
            "persisted": self.persist_error is None,
        }

    def should_continue(self) -> bool:
        session = self.load()
        if session is None:
            return False
        return should_continue(session)

    def complete(self, session_id: str, *, session: Session | None = None) -> str | None:
        """Announce the end of the session and return its completion summary."""

        session = session or self.load()
        if session is None:
            return None

        completed = count_completed(session)
        failed = count_failed(session)
        total = len(session.tasks)
        self._bus.publish(
            SessionCompleted(session_id=session_id, completed=completed, failed=failed, total=total)
        )
        logger.info(
            "Session complete",
            extra={"completed": completed, "failed": failed, "total": total, "status": session.status},
        )
        return build_completion_summary(session)

    def pause(self) -> Session | None:
        session = self.load()
        if session is None:
            return None
        return self._engine.pause(session)

    def resume(self) -> Session | None:
        session = self.load()
        if session is None:
            return None
        return self._engine.resume(session)

    def stop(self) -> bool:
        """Remove the persisted session; False if the file could not be deleted."""

        try:
            self._store.remove(self._worktree)
        except SessionStoreError as exc:
            logger.error("Failed to stop session", extra={"error": str(exc)})
            return False
        logger.info("Session stopped and removed")
        return True

    def status(self) -> RunnerStatus:
        session = self.load()
        if session is None:
            return RunnerStatus(active=False, session=None, status_line="No active session")
        return RunnerStatus(
            active=not is_complete(session),
            session=session,
            status_line=build_status_line(session),
        )


__all__ = [
    "CONTROL_ACTIONS",
    "ControlAction",
    "ControlResult",
    "NoTasksError",
    "RunnerStatus",
    "SessionRunner",
    "TaskSource",
]
