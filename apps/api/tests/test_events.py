from __future__ import annotations

from collections import deque

from app import events
from app.context import reset_correlation_id, set_correlation_id
from app.core.events import InternalEvent, event_bus


def test_publish_delivers_to_subscribers_with_correlation_id() -> None:
    received: list[InternalEvent] = []

    def collect(event: InternalEvent) -> None:
        received.append(event)

    event_bus.subscribe("pipeline.job.updated", collect)
    token = set_correlation_id("corr-bus-1")
    try:
        events.publish(events.build_envelope("pipeline.job.updated", actor_id=3, payload={"job_id": 9}))
    finally:
        reset_correlation_id(token)
        event_bus.unsubscribe("pipeline.job.updated", collect)

    assert [event.name for event in received] == ["pipeline.job.updated"]
    assert received[0].payload["correlation_id"] == "corr-bus-1"
    assert received[0].payload["payload"] == {"job_id": 9}


def test_publish_keeps_no_envelopes_in_process() -> None:
    for index in range(1000):
        events.publish(events.build_envelope("pipeline.job.created", actor_id=1, payload={"job_id": index}))

    retained = [
        name
        for name, value in vars(events).items()
        if not name.startswith("__") and isinstance(value, (list, deque, dict)) and value
    ]
    assert retained == []


def test_unsubscribed_handler_stops_receiving() -> None:
    received: list[str] = []

    def collect(event: InternalEvent) -> None:
        received.append(event.name)

    event_bus.subscribe("commission.reviewed", collect)
    events.publish(events.build_envelope("commission.reviewed", actor_id=1, payload={"request_id": 1}))
    event_bus.unsubscribe("commission.reviewed", collect)
    events.publish(events.build_envelope("commission.reviewed", actor_id=1, payload={"request_id": 2}))

    assert received == ["commission.reviewed"]
