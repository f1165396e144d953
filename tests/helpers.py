"""Shared test doubles for tracking pipeline tests.

These are plain classes, not fixtures; conftest.py wraps them.
"""

from __future__ import annotations

from typing import Any

from tracking.domain.models import EnrichedEvent, ForwardResult, GeoLookupResult, StepOutcome
from tracking.errors import ForwardingError, PersistenceError

NOW = 1_760_000_000


class FakeGeo:
    """Geo enricher returning a canned outcome and recording calls."""

    def __init__(self, outcome: StepOutcome[GeoLookupResult] | None = None) -> None:
        self.outcome = outcome or StepOutcome.skipped("not_configured")
        self.calls: list[str | None] = []

    def enrich(self, ip: str | None) -> StepOutcome[GeoLookupResult]:
        self.calls.append(ip)
        return self.outcome


class FakeStore:
    """In-memory store with the same conflict semantics as the events table."""

    def __init__(self, error: Exception | None = None) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.error = error
        self.calls = 0

    def persist(self, event: EnrichedEvent) -> dict[str, Any] | None:
        self.calls += 1
        if self.error is not None:
            raise PersistenceError("Database save failed") from self.error
        if event.event_id in self.rows:
            return None
        row = event.as_dict()
        self.rows[event.event_id] = row
        return row


class FakeForwarder:
    """Forwarder returning a canned result or raising ForwardingError."""

    def __init__(
        self,
        result: ForwardResult | None = None,
        error: ForwardingError | None = None,
    ) -> None:
        self.result = result or ForwardResult.sent({"events_received": 1})
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def forward(self, raw, enriched, event_id, event_time, now=None) -> ForwardResult:
        self.calls.append(
            {"raw": raw, "enriched": enriched, "event_id": event_id, "event_time": event_time}
        )
        if self.error is not None:
            raise self.error
        return self.result


class FakeResources:
    """Stands in for PipelineResources in app tests."""

    def __init__(self, pipeline) -> None:
        self.pipeline = pipeline
        self.opened = False
        self.closed = False
        self.db = self

    @property
    def is_open(self) -> bool:
        return self.opened and not self.closed

    def open(self) -> None:
        self.opened = True

    def close(self) -> None:
        self.closed = True
