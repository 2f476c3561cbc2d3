from __future__ import annotations

import logging

from cadence_mcp.events import EventBus, SessionStarted, TaskCompleted, TaskFailed


def test_subscribers_receive_matching_events() -> None:
    bus = EventBus()
    everything: list = []
    failures: list = []
    bus.subscribe(everything.append)
    bus.subscribe(failures.append, TaskFailed.event_type)

    bus.publish(SessionStarted(session_id="s1", prd_path="PRD.md", task_count=2))
    bus.publish(TaskFailed(session_id="s1", task_id="t1", error="boom"))

    assert [event.event_type for event in everything] == ["cadence.session.start", "cadence.task.failed"]
    assert len(failures) == 1 and failures[0].error == "boom"


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    received: list = []
    unsubscribe = bus.subscribe(received.append)

    unsubscribe()
    unsubscribe()
    bus.publish(TaskCompleted(session_id="s1", task_id="t1"))

    assert received == []


def test_failing_subscriber_does_not_break_publish(caplog) -> None:
    bus = EventBus()
    received: list = []

    def broken(_event) -> None:
        raise RuntimeError("subscriber down")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    caplog.set_level(logging.ERROR, logger="cadence_mcp.events")

    bus.publish(TaskCompleted(session_id="s1", task_id="t1", summary="ok"))

    assert len(received) == 1
    assert any("Event subscriber failed" in record.getMessage() for record in caplog.records)
