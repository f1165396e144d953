"""Job envelope shared by ingress (producer) and worker (consumer).

The envelope payload is the validated event record and does contain contact
data (email, phone, IP); envelopes are never logged whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

TRACK_EVENT_TASK = "track_event"
TRACK_EVENT_PATH = "/tasks/events/track"

KNOWN_TASKS = frozenset({TRACK_EVENT_TASK})


@dataclass(frozen=True)
class JobEnvelope:
    """Queued job, version 1.

    Attributes:
        version: Contract version (always "v1").
        task_name: Job type; only "track_event" is consumed.
        task_id: Transport-level id (Cloud Tasks dedupes on it).
        payload: The event record.
        enqueued_at: Unix seconds at enqueue time.
    """

    version: Literal["v1"] = field(default="v1", init=False)
    task_name: str = TRACK_EVENT_TASK
    task_id: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    enqueued_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON body posted to the worker."""
        return {
            "version": self.version,
            "task_name": self.task_name,
            "task_id": self.task_id,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobEnvelope:
        """Parse a worker request body.

        Raises:
            ValueError: Unsupported version, unknown task or non-object payload.
        """
        if data.get("version") != "v1":
            raise ValueError(f"Unsupported version: {data.get('version')}")
        task_name = data.get("task_name", "")
        if task_name not in KNOWN_TASKS:
            raise ValueError(f"Unknown task: {task_name}")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            raise ValueError("payload must be an object")
        return cls(
            task_name=task_name,
            task_id=str(data.get("task_id") or ""),
            payload=payload,
            enqueued_at=data.get("enqueued_at"),
        )
