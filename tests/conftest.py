"""Shared pytest fixtures for tracking pipeline tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402

from helpers import FakeForwarder, FakeGeo, FakeStore  # noqa: E402

_ENV_VARS = (
    "DATABASE_URL",
    "DB_PASSWORD",
    "APIIP_ACCESS_KEY",
    "META_PIXEL_ID",
    "META_ACCESS_TOKEN",
    "META_TEST_EVENT_CODE",
    "TEST_EVENT_CODE",
    "META_GRAPH_API_VERSION",
    "EVENT_ID_POLICY",
    "API_KEY",
    "APP_ROLE",
    "TASKS_BACKEND",
    "TASKS_OIDC_AUDIENCE",
    "TASKS_OIDC_SERVICE_ACCOUNT",
    "INTERNAL_TASK_SECRET",
    "WORKER_BASE_URL",
    "FRONTEND_URL",
    "MAX_BODY_BYTES",
    "DB_STATEMENT_TIMEOUT_MS",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Unset every variable the app reads, so tests start from defaults."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def fake_geo():
    return FakeGeo()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_forwarder():
    return FakeForwarder()
