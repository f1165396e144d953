"""Tests for POST /tasks/events/track (worker consumer)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from helpers import NOW, FakeForwarder, FakeGeo, FakeResources, FakeStore

SECRET_HEADERS = {"X-Internal-Task-Secret": "s3cret"}


@pytest.fixture
def local_task_auth(monkeypatch):
    monkeypatch.setenv("TASKS_OIDC_AUDIENCE", "tracking-tasks-local")
    monkeypatch.setenv("INTERNAL_TASK_SECRET", "s3cret")


def _body(payload=None, **overrides):
    from tracking.tasks.contracts import JobEnvelope

    envelope = JobEnvelope(
        task_id="evt-e1",
        payload=payload if payload is not None else {"name": "Lead", "event_id": "e1", "event_time": NOW},
        enqueued_at=NOW,
    )
    return {**envelope.to_dict(), **overrides}


def _client(store=None, forwarder=None, **pipeline_kwargs):
    from tracking.api.factory import create_app
    from tracking.pipeline.track_event import TrackEventPipeline
    from tracking.settings import Settings

    pipeline = TrackEventPipeline(
        FakeGeo(), store or FakeStore(), forwarder or FakeForwarder(), **pipeline_kwargs
    )
    app = create_app(role="worker", settings=Settings(), resources=FakeResources(pipeline))
    return TestClient(app)


@pytest.mark.usefixtures("local_task_auth")
class TestTrackRoute:
    """Outcome to status-code mapping."""

    def test_success(self):
        store = FakeStore()
        response = _client(store=store).post(
            "/tasks/events/track", json=_body(), headers=SECRET_HEADERS
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["event_id"] == "e1"
        assert data["state"] == "FORWARD_SENT"
        assert data["inserted"] is True
        assert "e1" in store.rows

    def test_duplicate_delivery(self):
        store = FakeStore()
        client = _client(store=store)

        client.post("/tasks/events/track", json=_body(), headers=SECRET_HEADERS)
        response = client.post("/tasks/events/track", json=_body(), headers=SECRET_HEADERS)

        assert response.status_code == 200
        assert response.json()["inserted"] is False
        assert len(store.rows) == 1

    def test_forwarding_skipped(self):
        from tracking.domain.models import ForwardResult

        forwarder = FakeForwarder(result=ForwardResult.skipped("not_configured"))
        response = _client(forwarder=forwarder).post(
            "/tasks/events/track", json=_body(), headers=SECRET_HEADERS
        )

        assert response.status_code == 200
        assert response.json()["state"] == "FORWARD_SKIPPED"
        assert response.json()["forward_reason"] == "not_configured"

    def test_persistence_failure_is_retryable(self):
        response = _client(store=FakeStore(error=RuntimeError("db down"))).post(
            "/tasks/events/track", json=_body(), headers=SECRET_HEADERS
        )

        assert response.status_code == 500
        assert response.json() == {"ok": False, "error": "persistence_failed"}

    def test_forwarding_failure_is_retryable(self):
        from tracking.errors import ForwardingError

        forwarder = FakeForwarder(error=ForwardingError("Meta API error: 503", status_code=503))
        response = _client(forwarder=forwarder).post(
            "/tasks/events/track", json=_body(), headers=SECRET_HEADERS
        )

        assert response.status_code == 500
        assert response.json()["error"] == "forwarding_failed"

    def test_require_policy_rejects_without_retry(self):
        response = _client(event_id_policy="require").post(
            "/tasks/events/track", json=_body(payload={"name": "Lead"}), headers=SECRET_HEADERS
        )

        assert response.status_code == 422
        assert response.json()["error"] == "event_id_required"

    def test_invalid_envelope(self):
        response = _client().post(
            "/tasks/events/track", json=_body(version="v9"), headers=SECRET_HEADERS
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_envelope"


class TestTrackRouteAuth:
    """Jobs without task credentials are rejected before running."""

    def test_missing_credentials(self, local_task_auth):
        store = FakeStore()
        response = _client(store=store).post("/tasks/events/track", json=_body())

        assert response.status_code == 401
        assert store.calls == 0

    def test_fails_closed_without_audience(self, monkeypatch):
        monkeypatch.delenv("TASKS_OIDC_AUDIENCE", raising=False)

        response = _client().post(
            "/tasks/events/track", json=_body(), headers={"Authorization": "Bearer tok"}
        )

        assert response.status_code == 401
