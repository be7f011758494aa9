from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.events import event_bus

DOMAIN_EVENT_TYPES = (
    "pipeline.job.created",
    "pipeline.job.updated",
    "pipeline.job.deleted",
    "commission.submitted",
    "commission.reviewed",
)


def build_envelope(event_type: str, *, actor_id: int, payload: dict[str, Any]) -> dict[str, Any]:
    return {
        "event_id": str(uuid.uuid4()),
        "event_type": event_type,
        "occurred_at": datetime.now(timezone.utc).isoformat(),
        "actor_id": actor_id,
        "payload": payload,
    }


def publish(envelope: dict[str, Any]) -> None:
    """Stamp the correlation id and fan the envelope out on the in-process bus.

    Nothing is retained here; consumers subscribe to ``event_bus``.
    """

    if envelope.get("correlation_id") is None:
        envelope["correlation_id"] = get_correlation_id()

    event_type = envelope.get("event_type")
    if isinstance(event_type, str) and event_type:
        event_bus.publish(event_type, envelope)
