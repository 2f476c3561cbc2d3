"""Lifecycle notifications for external subscribers."""

from __future__ import annotations

import logging
from typing import Callable, ClassVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class LifecycleEvent(BaseModel):
    event_type: ClassVar[str] = "cadence.event"

    session_id: str


class SessionStarted(LifecycleEvent):
    event_type: ClassVar[str] = "cadence.session.start"

    prd_path: str
    task_count: int


class TaskCompleted(LifecycleEvent):
    event_type: ClassVar[str] = "cadence.task.complete"

    task_id: str
    summary: str | None = None


class TaskFailed(LifecycleEvent):
    event_type: ClassVar[str] = "cadence.task.failed"

    task_id: str
    error: str | None = None


class SessionCompleted(LifecycleEvent):
    event_type: ClassVar[str] = "cadence.session.complete"

    completed: int
    failed: int
    total: int


Handler = Callable[[LifecycleEvent], None]


class EventBus:
    """Fan lifecycle events out to subscribers, fire-and-forget.

    A failing subscriber is logged and skipped; publishing never raises, so
    the session state machine does not depend on delivery.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[str | None, Handler]] = []

    def subscribe(self, handler: Handler, event_type: str | None = None) -> Callable[[], None]:
        """Register ``handler`` for one event type, or for all when None."""

        entry = (event_type, handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            if entry in self._handlers:
                self._handlers.remove(entry)

        return unsubscribe

    def publish(self, event: LifecycleEvent) -> None:
        logger.debug("Publishing event", extra={"event_type": event.event_type, **event.model_dump()})
        for event_type, handler in list(self._handlers):
            if event_type is not None and event_type != event.event_type:
                continue
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Event subscriber failed",
                    extra={"event_type": event.event_type, "session_id": event.session_id},
                )


__all__ = [
    "EventBus",
    "LifecycleEvent",
    "SessionCompleted",
    "SessionStarted",
    "TaskCompleted",
    "TaskFailed",
]
