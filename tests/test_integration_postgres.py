"""
End-to-end checks against a real PostgreSQL with the migration applied.

Set TEST_DATABASE_URL to a database migrated with `db/migrations` and reached
through a non-superuser role (superusers bypass row-level security).
"""

from __future__ import annotations

import asyncio
import os
from datetime import date, timedelta
from uuid import uuid4

import pytest

from analytics import service as analytics_service
from analytics.schemas import AnalyticsFilters
from bulletins import service as bulletin_service
from core import db, errors
from core.numeric import round_half_away_from_zero
from preach import service as preach_service
from service_items import service as item_service

pytestmark = pytest.mark.skipif(
    not os.environ.get("TEST_DATABASE_URL"),
    reason="TEST_DATABASE_URL not set",
)

SUNDAY = date(2026, 3, 1)


@pytest.fixture(autouse=True)
def database_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", os.environ.get("TEST_DATABASE_URL", ""))


def _run(body):
    async def wrapper():
        await db.init_pool()
        try:
            return await body()
        finally:
            await db.close_pool()

    return asyncio.run(wrapper())


async def _new_tenant() -> str:
    tenant_id = str(uuid4())
    async with db.tenant_scope(tenant_id) as scope:
        await scope.execute("INSERT INTO tenant (id, name) VALUES ($1::uuid, $2)", tenant_id, "Grace Chapel")
    return tenant_id


def test_bulletins_are_invisible_across_tenants():
    async def body():
        tenant_a = await _new_tenant()
        tenant_b = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant_a, SUNDAY)

        with pytest.raises(errors.NotFoundError):
            await bulletin_service.get_bulletin_issue(tenant_b, issue["id"])

        # Same date is free in the other tenant.
        other = await bulletin_service.create_bulletin_issue(tenant_b, SUNDAY)
        assert other["id"] != issue["id"]

        with pytest.raises(errors.ConflictError):
            await bulletin_service.create_bulletin_issue(tenant_a, SUNDAY)

    _run(body)


def test_lock_lifecycle():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        song = await item_service.create_service_item(
            tenant,
            {"service_date": SUNDAY, "type": "Song", "title": "Come Thou Fount"},
        )

        with pytest.raises(errors.PreconditionFailedError):
            await bulletin_service.lock_bulletin_issue(tenant, issue["id"], actor="user-1")
        assert (await bulletin_service.get_bulletin_issue(tenant, issue["id"]))["status"] == "draft"

        await item_service.update_service_item(tenant, song["id"], {"ccli_number": "108389"})
        locked = await bulletin_service.lock_bulletin_issue(tenant, issue["id"], actor="user-1")
        assert locked["status"] == "locked"

        with pytest.raises(errors.ConflictError):
            await bulletin_service.lock_bulletin_issue(tenant, issue["id"], actor="user-2")
        with pytest.raises(errors.LockedError):
            await bulletin_service.update_bulletin_issue(tenant, issue["id"], {"template_key": "modern"})
        with pytest.raises(errors.LockedError):
            await bulletin_service.soft_delete_bulletin_issue(tenant, issue["id"])
        with pytest.raises(errors.LockedError):
            await item_service.update_service_item(tenant, song["id"], {"title": "Changed"})

    _run(body)


def test_soft_delete_frees_the_date():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        deleted = await bulletin_service.soft_delete_bulletin_issue(tenant, issue["id"])
        assert deleted["status"] == "deleted"

        listed = await bulletin_service.list_bulletin_issues(tenant, filter_name="deleted")
        assert [b["id"] for b in listed["bulletins"]] == [issue["id"]]

        again = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        assert again["status"] == "draft"

    _run(body)


def test_timing_keeps_first_instants_and_derives_duration():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        item = await item_service.create_service_item(
            tenant,
            {"service_date": SUNDAY, "type": "Prayer", "title": "Invocation", "duration_minutes": 2},
        )
        started = await preach_service.start_preach_session(tenant, issue["id"], user_id="user-1")
        session_id = started["session_id"]

        first = await preach_service.record_item_timing(tenant, session_id, item["id"], "start")
        await asyncio.sleep(0.01)
        second = await preach_service.record_item_timing(tenant, session_id, item["id"], "start")
        assert second["started_at"] == first["started_at"]
        assert second["duration_seconds"] is None

        ended = await preach_service.record_item_timing(tenant, session_id, item["id"], "end")
        assert ended["duration_seconds"] is not None
        again = await preach_service.record_item_timing(tenant, session_id, item["id"], "end")
        assert again["ended_at"] == ended["ended_at"]

        end_1 = await preach_service.end_preach_session(tenant, session_id)
        end_2 = await preach_service.end_preach_session(tenant, session_id)
        assert end_1["already_ended"] is False
        assert end_2["already_ended"] is True
        assert end_2["ended_at"] == end_1["ended_at"]

        summary = await preach_service.get_session_summary(tenant, session_id)
        assert summary["totals"]["planned_seconds"] == 120

    _run(body)


def test_concurrent_start_events_share_one_timing_row():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        item = await item_service.create_service_item(
            tenant,
            {"service_date": SUNDAY, "type": "Scripture", "title": "Psalm 23"},
        )
        session_id = (await preach_service.start_preach_session(tenant, issue["id"], user_id=None))["session_id"]

        results = await asyncio.gather(
            *[preach_service.record_item_timing(tenant, session_id, item["id"], "start") for _ in range(5)]
        )
        assert len({r["started_at"] for r in results}) == 1

        summary = await preach_service.get_session_summary(tenant, session_id)
        assert len(summary["items"]) == 1

    _run(body)


def test_analytics_ignore_open_sessions():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        await item_service.create_service_item(
            tenant,
            {"service_date": SUNDAY, "type": "Welcome", "title": "Welcome", "duration_minutes": 5},
        )
        closed = await preach_service.start_preach_session(tenant, issue["id"], user_id=None)
        await preach_service.end_preach_session(tenant, closed["session_id"])
        await preach_service.start_preach_session(tenant, issue["id"], user_id=None)

        filters = AnalyticsFilters(from_date=SUNDAY - timedelta(days=1), to_date=SUNDAY + timedelta(days=1))
        overview = await analytics_service.get_overview(tenant, filters)
        assert overview["sessions_count"] == 1
        assert overview["avg_planned_minutes"] == 5

        slots = await analytics_service.get_grouped_stats(tenant, "timeSlot", filters)
        assert sum(g["sessions_count"] for g in slots["groups"]) == 1

        # No sermon is linked, so presenters have no groups at all.
        presenters = await analytics_service.get_grouped_stats(tenant, "presenter", filters)
        assert presenters["groups"] == []

    _run(body)


def test_cross_tenant_ids_are_not_found_for_writes():
    async def body():
        tenant_a = await _new_tenant()
        tenant_b = await _new_tenant()
        issue_a = await bulletin_service.create_bulletin_issue(tenant_a, SUNDAY)
        item_a = await item_service.create_service_item(
            tenant_a,
            {"service_date": SUNDAY, "type": "Prayer", "title": "Pastoral Prayer", "duration_minutes": 4},
        )
        session_a = (await preach_service.start_preach_session(tenant_a, issue_a["id"], user_id="a-1"))["session_id"]

        issue_b = await bulletin_service.create_bulletin_issue(tenant_b, SUNDAY)
        session_b = (await preach_service.start_preach_session(tenant_b, issue_b["id"], user_id="b-1"))["session_id"]

        with pytest.raises(errors.NotFoundError):
            await bulletin_service.update_bulletin_issue(tenant_b, issue_a["id"], {"template_key": "modern"})
        with pytest.raises(errors.NotFoundError):
            await bulletin_service.lock_bulletin_issue(tenant_b, issue_a["id"], actor="b-1")
        with pytest.raises(errors.NotFoundError):
            await bulletin_service.soft_delete_bulletin_issue(tenant_b, issue_a["id"])
        with pytest.raises(errors.NotFoundError):
            await item_service.update_service_item(tenant_b, item_a["id"], {"title": "Hijacked"})
        with pytest.raises(errors.NotFoundError):
            await preach_service.start_preach_session(tenant_b, issue_a["id"], user_id="b-1")
        with pytest.raises(errors.NotFoundError):
            await preach_service.end_preach_session(tenant_b, session_a)
        with pytest.raises(errors.NotFoundError):
            await preach_service.record_item_timing(tenant_b, session_a, item_a["id"], "start")
        # B's own session cannot time A's item either.
        with pytest.raises(errors.NotFoundError):
            await preach_service.record_item_timing(tenant_b, session_b, item_a["id"], "start")
        with pytest.raises(errors.NotFoundError):
            await preach_service.get_session_summary(tenant_b, session_a)

        # A's rows are untouched.
        issue = await bulletin_service.get_bulletin_issue(tenant_a, issue_a["id"])
        assert issue["status"] == "draft"
        assert issue["template_key"] == issue_a["template_key"]
        items = await item_service.list_service_items(tenant_a, SUNDAY)
        assert [i["title"] for i in items["items"]] == ["Pastoral Prayer"]
        summary = await preach_service.get_session_summary(tenant_a, session_a)
        assert summary["items"] == []
        assert (await preach_service.end_preach_session(tenant_a, session_a))["already_ended"] is False

    _run(body)


def test_duration_is_end_minus_start_after_interleaved_events():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        item = await item_service.create_service_item(
            tenant,
            {"service_date": SUNDAY, "type": "Song", "title": "Be Thou My Vision", "ccli_number": "30639"},
        )
        session_id = (await preach_service.start_preach_session(tenant, issue["id"], user_id=None))["session_id"]

        started = await preach_service.record_item_timing(tenant, session_id, item["id"], "start")
        await asyncio.sleep(1.2)
        ended = await preach_service.record_item_timing(tenant, session_id, item["id"], "end")
        await asyncio.sleep(0.05)
        restarted = await preach_service.record_item_timing(tenant, session_id, item["id"], "start")

        assert restarted["started_at"] == started["started_at"]
        assert restarted["ended_at"] == ended["ended_at"]

        elapsed = (ended["ended_at"] - started["started_at"]).total_seconds()
        assert ended["duration_seconds"] == round_half_away_from_zero(elapsed)
        assert restarted["duration_seconds"] == ended["duration_seconds"]
        assert ended["duration_seconds"] >= 1

    _run(body)


def test_concurrent_locks_have_exactly_one_winner():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)

        results = await asyncio.gather(
            *[bulletin_service.lock_bulletin_issue(tenant, issue["id"], actor=f"user-{n}") for n in range(4)],
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, dict)]
        losers = [r for r in results if isinstance(r, errors.ConflictError)]
        assert len(winners) == 1
        assert len(losers) == 3
        assert winners[0]["status"] == "locked"
        assert (await bulletin_service.get_bulletin_issue(tenant, issue["id"]))["status"] == "locked"

    _run(body)


def test_copy_service_items_keeps_every_content_column():
    async def body():
        tenant = await _new_tenant()
        source = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        target_date = SUNDAY + timedelta(days=7)
        target = await bulletin_service.create_bulletin_issue(tenant, target_date)
        await item_service.create_service_item(
            tenant,
            {
                "service_date": SUNDAY,
                "type": "Scripture",
                "title": "Old Testament Reading",
                "scripture_ref": "Psalm 23",
                "speaker": "Ann",
                "content": "The Lord is my shepherd",
                "duration_minutes": 3,
            },
        )
        await item_service.create_service_item(
            tenant,
            {"service_date": SUNDAY, "type": "Song", "title": "Amazing Grace", "artist": "John Newton"},
        )

        copied = await bulletin_service.copy_from_bulletin(
            tenant, target["id"], source["id"], copy_service_items=True
        )
        assert copied["copied_service_items"] == 2

        items = (await item_service.list_service_items(tenant, target_date))["items"]
        assert [i["title"] for i in items] == ["Old Testament Reading", "Amazing Grace"]
        reading, song = items
        assert reading["scripture_ref"] == "Psalm 23"
        assert reading["speaker"] == "Ann"
        assert reading["content"] == "The Lord is my shepherd"
        assert reading["duration_minutes"] == 3
        assert song["artist"] == "John Newton"

    _run(body)


def test_analytics_skip_sessions_of_deleted_bulletins():
    async def body():
        tenant = await _new_tenant()
        issue = await bulletin_service.create_bulletin_issue(tenant, SUNDAY)
        session = await preach_service.start_preach_session(tenant, issue["id"], user_id=None)
        await preach_service.end_preach_session(tenant, session["session_id"])

        filters = AnalyticsFilters(from_date=SUNDAY - timedelta(days=1), to_date=SUNDAY + timedelta(days=1))
        assert (await analytics_service.get_overview(tenant, filters))["sessions_count"] == 1

        await bulletin_service.soft_delete_bulletin_issue(tenant, issue["id"])
        assert (await analytics_service.get_overview(tenant, filters))["sessions_count"] == 0
        assert (await analytics_service.list_time_slots(tenant))["time_slots"] == []

    _run(body)
