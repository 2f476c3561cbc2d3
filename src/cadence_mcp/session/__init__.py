"""Session model and progression exports."""

from .models import Session, SessionConfig, Task, Timing, create_session
from .progression import (
    UnknownTaskError,
    count_completed,
    count_deferred,
    count_failed,
    count_remaining,
    format_progress,
    get_current_task,
    get_next_actionable_task,
    get_next_pending_task,
    is_complete,
    mark_complete,
    mark_failed,
    mark_in_progress,
    pause,
    resume,
    should_continue,
)

__all__ = [
    "Session",
    "SessionConfig",
    "Task",
    "Timing",
    "UnknownTaskError",
    "count_completed",
    "count_deferred",
    "count_failed",
    "count_remaining",
    "create_session",
    "format_progress",
    "get_current_task",
    "get_next_actionable_task",
    "get_next_pending_task",
    "is_complete",
    "mark_complete",
    "mark_failed",
    "mark_in_progress",
    "pause",
    "resume",
    "should_continue",
]
