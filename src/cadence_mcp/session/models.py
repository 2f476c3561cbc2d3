"""Task and session models persisted between runs."""

from __future__ import annotations

from typing import Any, Iterable, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

TaskStatus = Literal["pending", "in_progress", "completed", "failed", "deferred"]
SessionStatus = Literal["idle", "running", "paused", "completed", "failed"]

ACTIONABLE_STATUSES: frozenset[str] = frozenset({"pending", "in_progress"})
TERMINAL_TASK_STATUSES: frozenset[str] = frozenset({"completed", "failed", "deferred"})
TERMINAL_SESSION_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class _Snapshot(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Timing(_Snapshot):
    """Start/completion stamps in epoch milliseconds."""

    started: int | None = None
    completed: int | None = None


class Task(_Snapshot):
    """A single unit of work handed over by the task source."""

    id: str = Field(..., description="Stable identifier, unique within a session.")
    title: str = Field(..., description="Short human-readable title.")
    body: str | None = Field(default=None, description="Free text instructions.")
    status: TaskStatus = "pending"
    attempts: int = Field(default=0, ge=0, description="Times the task has been (re)started.")
    error: str | None = Field(default=None, description="Last recorded failure reason.")
    summary: str | None = Field(default=None, description="Completion note.")
    time: Timing = Field(default_factory=Timing)

    @field_validator("id", "title")
    @classmethod
    def _require_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Task id and title must not be empty")
        return normalized

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_TASK_STATUSES


class SessionConfig(_Snapshot):
    """Run policy fixed when the session is created."""

    max_retries: int = Field(default=3, ge=0)
    retry_delay: int = Field(default=5000, ge=0, description="Advisory delay between retries (ms).")
    run_tests: bool = True
    test_command: str | None = None
    lint_command: str | None = None
    stop_on_error: bool = False
    auto_commit: bool = False


class Session(_Snapshot):
    """Ordered task list plus cursor, policy and overall status."""

    tasks: tuple[Task, ...]
    current_task_index: int = Field(default=0, ge=0)
    prd_path: str
    config: SessionConfig = Field(default_factory=SessionConfig)
    status: SessionStatus = "idle"
    time: Timing = Field(default_factory=Timing)

    @model_validator(mode="after")
    def _check_tasks(self) -> "Session":
        seen: set[str] = set()
        for task in self.tasks:
            if task.id in seen:
                raise ValueError(f"Duplicate task id '{task.id}'")
            seen.add(task.id)
        if self.current_task_index > len(self.tasks):
            raise ValueError("currentTaskIndex points past the end of the task list")
        return self

    def task_index(self, task_id: str) -> int | None:
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index
        return None

    def find_task(self, task_id: str) -> Task | None:
        index = self.task_index(task_id)
        return None if index is None else self.tasks[index]

    def to_document(self) -> dict[str, Any]:
        """Return the JSON-compatible document written to disk."""

        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def create_session(
    tasks: Iterable[Task | Mapping[str, Any]],
    prd_path: str,
    config: SessionConfig | Mapping[str, Any] | None = None,
) -> Session:
    """Build an idle session with its cursor on the first actionable task.

    Tasks the source already reports as ``completed`` or ``deferred`` are kept
    in order but skipped by the cursor.
    """

    records = tuple(
        task if isinstance(task, Task) else Task.model_validate(task) for task in tasks
    )
    if config is None:
        resolved_config = SessionConfig()
    elif isinstance(config, SessionConfig):
        resolved_config = config
    else:
        resolved_config = SessionConfig.model_validate(config)

    cursor = next(
        (index for index, task in enumerate(records) if task.status in ACTIONABLE_STATUSES),
        len(records),
    )
    return Session(
        tasks=records,
        current_task_index=cursor,
        prd_path=prd_path,
        config=resolved_config,
    )


__all__ = [
    "ACTIONABLE_STATUSES",
    "Session",
    "SessionConfig",
    "SessionStatus",
    "TERMINAL_SESSION_STATUSES",
    "TERMINAL_TASK_STATUSES",
    "Task",
    "TaskStatus",
    "Timing",
    "create_session",
]
