"""Integration smoke tests for the REST API (in-memory UoW via dependency override)."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from taskhub.api.deps import get_uow
from taskhub.app import create_tasks_app, create_users_app
from taskhub.domain.entities.user import User
from tests.conftest import FakeUoW


def _client(app, uow: FakeUoW) -> TestClient:
    async def _override():
        yield uow

    app.dependency_overrides[get_uow] = _override
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def uow() -> FakeUoW:
    return FakeUoW()


@pytest.fixture
def client(uow):
    return _client(create_users_app(), uow)


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "service": "users"}


def test_tasks_app_reports_its_name(uow):
    resp = _client(create_tasks_app(), uow).get("/healthz")
    assert resp.json()["service"] == "tasks"


def test_exists_endpoint_for_known_user(client, uow):
    now = datetime.now(timezone.utc)
    user = User(id=7, email="ada@example.com", first_name="Ada", last_name=None, created_at=now, updated_at=now)
    uow.users._store[user.id] = user

    resp = client.get(f"/users/{user.id}/exists")

    assert resp.status_code == 200
    assert resp.json() == {"exists": True, "id": user.id}


def test_exists_endpoint_for_unknown_user(client):
    resp = client.get("/users/999/exists")

    assert resp.status_code == 200
    assert resp.json() == {"exists": False, "id": 999}


def test_exists_endpoint_rejects_non_numeric_id(client):
    assert client.get("/users/abc/exists").status_code == 422


def test_request_id_is_echoed(client):
    resp = client.get("/healthz", headers={"X-Request-ID": "abc123"})
    assert resp.headers["X-Request-ID"] == "abc123"


def test_correlation_fallback_header_and_timing(client):
    resp = client.get("/users/1/exists", headers={"X-Correlation-ID": "legacy-id"})
    assert resp.headers["X-Request-ID"] == "legacy-id"
    assert float(resp.headers["X-Process-Time-Ms"]) >= 0


def test_metrics_endpoint_exposes_registry(client):
    resp = client.get("/metrics")

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/plain")
    assert "outbox_stale_released_total" in resp.text
    assert "# HELP user_operations_total" in resp.text
