from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest
from fastapi.testclient import TestClient

from core import db, errors

SECRET = "test-secret-for-routes"
TENANT = "3f2e1d0c-9b8a-4766-8554-433221100fed"


def _token(*, role: str = "editor", tenant_id: str = TENANT, ttl_minutes: int = 15, token_type: str = "access") -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "user-42",
        "tenant_id": tenant_id,
        "role": role,
        "type": token_type,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=ttl_minutes)).timestamp()),
    }
    return jwt.encode(payload, SECRET, algorithm="HS256")


def _auth(**kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {_token(**kwargs)}"}


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", SECRET)
    monkeypatch.delenv("JWT_ALG", raising=False)

    async def noop() -> None:
        return None

    monkeypatch.setattr(db, "init_pool", noop)
    monkeypatch.setattr(db, "close_pool", noop)

    import main

    with TestClient(main.app) as test_client:
        yield test_client


def test_missing_authorization_is_401(client):
    resp = client.get("/bulletins")
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Missing Authorization header."


def test_expired_token_is_401(client):
    resp = client.get("/bulletins", headers=_auth(ttl_minutes=-1))
    assert resp.status_code == 401


def test_non_access_token_is_401(client):
    resp = client.get("/bulletins", headers=_auth(token_type="refresh"))
    assert resp.status_code == 401


def test_non_uuid_tenant_claim_is_401(client, monkeypatch):
    from bulletins import service

    async def fail_list(*args, **kwargs):
        raise AssertionError("service must not run for a malformed tenant")

    monkeypatch.setattr(service, "list_bulletin_issues", fail_list)

    resp = client.get("/bulletins", headers=_auth(tenant_id="grace-chapel"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Token tenant is not a valid id."


def test_lock_requires_editor_role(client):
    resp = client.post(f"/bulletins/{uuid4()}/lock", headers=_auth(role="viewer"))
    assert resp.status_code == 403


def test_kiosk_cannot_read_analytics(client):
    resp = client.get("/analytics/overview", headers=_auth(role="kiosk"))
    assert resp.status_code == 403


def test_precondition_failure_renders_code_and_details(client, monkeypatch):
    from bulletins import service

    async def fake_lock(tenant_id, issue_id, *, actor):
        raise errors.PreconditionFailedError(
            "All songs must have CCLI numbers before locking.",
            details={"songs_missing_ccli": [{"id": "a1", "sequence": 2, "title": "Doxology"}]},
        )

    monkeypatch.setattr(service, "lock_bulletin_issue", fake_lock)

    resp = client.post(f"/bulletins/{uuid4()}/lock", headers=_auth(role="editor"))

    assert resp.status_code == 412
    body = resp.json()
    assert body["code"] == "PRECONDITION_FAILED"
    assert body["details"]["songs_missing_ccli"][0]["title"] == "Doxology"


def test_locked_error_renders_403(client, monkeypatch):
    from bulletins import service

    async def fake_update(tenant_id, issue_id, fields):
        raise errors.bulletin_locked()

    monkeypatch.setattr(service, "update_bulletin_issue", fake_update)

    resp = client.patch(f"/bulletins/{uuid4()}", json={"template_key": "modern"}, headers=_auth(role="submitter"))

    assert resp.status_code == 403
    assert resp.json() == {"detail": "Cannot update locked bulletin.", "code": "FORBIDDEN"}


def test_update_rejects_locked_status_in_body(client):
    resp = client.patch(f"/bulletins/{uuid4()}", json={"status": "locked"}, headers=_auth())
    assert resp.status_code == 422


def test_token_tenant_wins_over_header(client, monkeypatch, caplog):
    from bulletins import service

    seen: list[str] = []

    async def fake_get(tenant_id, issue_id):
        seen.append(tenant_id)
        raise errors.not_found("Bulletin")

    monkeypatch.setattr(service, "get_bulletin_issue", fake_get)

    with caplog.at_level(logging.WARNING, logger="auth.dependencies"):
        resp = client.get(f"/bulletins/{uuid4()}", headers={**_auth(), "X-Tenant-Id": "someone-else"})

    assert resp.status_code == 404
    assert seen == [TENANT]
    assert "tenant_header_mismatch" in caplog.text


def test_timing_event_must_be_start_or_end(client):
    resp = client.post(
        f"/preach/sessions/{uuid4()}/timings",
        json={"service_item_id": str(uuid4()), "event": "pause"},
        headers=_auth(role="viewer"),
    )
    assert resp.status_code == 422


def test_end_session_route(client, monkeypatch):
    from preach import service

    session_id = uuid4()

    async def fake_end(tenant_id, sid):
        return {"session_id": sid, "ended_at": "2026-03-01T10:15:00+00:00", "already_ended": True}

    monkeypatch.setattr(service, "end_preach_session", fake_end)

    resp = client.post(f"/preach/sessions/{session_id}/end", headers=_auth(role="viewer"))

    assert resp.status_code == 200
    assert resp.json()["already_ended"] is True
    assert resp.json()["session_id"] == str(session_id)


def test_unknown_grouping_is_422(client):
    resp = client.get("/analytics/stats/weather", headers=_auth())
    assert resp.status_code == 422


def test_stats_route_passes_range(client, monkeypatch):
    from analytics import service

    captured: dict = {}

    async def fake_stats(tenant_id, group_by, filters):
        captured.update(tenant_id=tenant_id, group_by=group_by, filters=filters)
        return {"group_by": group_by, "groups": []}

    monkeypatch.setattr(service, "get_grouped_stats", fake_stats)

    resp = client.get("/analytics/stats/timeSlot?from=2026-01-01&to=2026-03-01&time_slot=09:00", headers=_auth())

    assert resp.status_code == 200
    assert captured["group_by"] == "timeSlot"
    assert captured["filters"].from_date.isoformat() == "2026-01-01"
    assert captured["filters"].time_slot == "09:00"


def test_health_reports_database_state(client, monkeypatch):
    async def healthy() -> bool:
        return True

    monkeypatch.setattr(db, "check_database_health", healthy)

    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "database": True}
