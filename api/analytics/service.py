"""
Service timing analytics: grouped averages, overview, drill-down, filter options.

Averages come back from PostgreSQL in seconds and are converted to whole
minutes here with round-half-away-from-zero (67.5 -> 68, -2.5 -> -3); every
dimension goes through `_averages` so the rule is applied identically.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any

from core import db, errors, settings
from core.numeric import seconds_to_minutes, to_int

from . import repository
from .schemas import AnalyticsFilters

logger = logging.getLogger(__name__)


def default_range_days() -> int:
    return max(settings.env_int("ANALYTICS_DEFAULT_RANGE_DAYS", 90), 0)


def slot_timezone() -> str:
    return settings.env_str("SERVICE_SLOT_TIMEZONE", "UTC")


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def resolve_range(from_date: date | None, to_date: date | None, *, today: date | None = None) -> tuple[date, date]:
    """
    Fill in missing bounds: `to` defaults to today (UTC), `from` to `to` minus the default window.
    """
    upper = to_date or today or _utc_today()
    lower = from_date or (upper - timedelta(days=default_range_days()))
    if lower > upper:
        raise errors.BadRequestError("'from' must not be after 'to'.")
    return lower, upper


def _averages(row: dict[str, Any] | None) -> dict[str, int]:
    row = row or {}
    return {
        "sessions_count": to_int(row.get("sessions_count")),
        "avg_planned_minutes": seconds_to_minutes(row.get("avg_planned_seconds")),
        "avg_actual_minutes": seconds_to_minutes(row.get("avg_actual_seconds")),
        "avg_delta_minutes": seconds_to_minutes(row.get("avg_delta_seconds")),
    }


def _filter_values(filters: AnalyticsFilters) -> dict[str, Any]:
    return {
        "series_id": str(filters.series_id) if filters.series_id is not None else None,
        "presenter": filters.presenter,
        "time_slot": filters.time_slot,
    }


def _check_group_by(group_by: str) -> None:
    if group_by not in repository.GROUPINGS:
        raise errors.BadRequestError(f"Unknown grouping: {group_by}.")


async def get_grouped_stats(
    tenant_id: str,
    group_by: str,
    filters: AnalyticsFilters | None = None,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    _check_group_by(group_by)
    filters = filters or AnalyticsFilters()
    lower, upper = resolve_range(filters.from_date, filters.to_date, today=today)

    logger.debug(
        "analytics_grouped_stats tenant_id=%s group_by=%s from=%s to=%s",
        tenant_id,
        group_by,
        lower,
        upper,
    )
    async with db.tenant_scope(tenant_id) as scope:
        rows = await repository.grouped_stats(
            scope,
            group_by,
            from_date=lower,
            to_date=upper,
            slot_timezone=slot_timezone(),
            filters=_filter_values(filters),
        )

    groups = [{"key": str(r["key"]), "label": r["label"], **_averages(r)} for r in rows]
    return {"group_by": group_by, "from": lower, "to": upper, "groups": groups}


async def get_overview(
    tenant_id: str,
    filters: AnalyticsFilters | None = None,
    *,
    today: date | None = None,
) -> dict[str, Any]:
    filters = filters or AnalyticsFilters()
    lower, upper = resolve_range(filters.from_date, filters.to_date, today=today)

    async with db.tenant_scope(tenant_id) as scope:
        row = await repository.overview(
            scope,
            from_date=lower,
            to_date=upper,
            slot_timezone=slot_timezone(),
            filters=_filter_values(filters),
        )

    return {"from": lower, "to": upper, **_averages(row)}


async def get_detail_for_filter(
    tenant_id: str,
    group_by: str,
    key: str,
    *,
    from_date: date | None = None,
    to_date: date | None = None,
    today: date | None = None,
) -> dict[str, Any]:
    """
    Sessions backing one group of `get_grouped_stats`, most recent first.
    """
    _check_group_by(group_by)
    if not (key or "").strip():
        raise errors.BadRequestError("Group key must not be empty.")
    lower, upper = resolve_range(from_date, to_date, today=today)

    async with db.tenant_scope(tenant_id) as scope:
        rows = await repository.sessions_for_group(
            scope,
            group_by,
            key,
            from_date=lower,
            to_date=upper,
            slot_timezone=slot_timezone(),
        )

    sessions = [
        {
            "session_id": r["session_id"],
            "bulletin_issue_id": r["bulletin_issue_id"],
            "issue_date": r["issue_date"],
            "started_at": r["started_at"],
            "ended_at": r["ended_at"],
            "service_slot": r["service_slot"],
            "preacher": r["preacher"],
            "series_id": r["series_id"],
            "series_title": r["series_title"],
            "sermon_title": r["sermon_title"],
            "planned_minutes": seconds_to_minutes(r["planned_seconds"]),
            "actual_minutes": seconds_to_minutes(r["actual_seconds"]),
            "delta_minutes": seconds_to_minutes(r["delta_seconds"]),
        }
        for r in rows
    ]
    return {"group_by": group_by, "key": key, "from": lower, "to": upper, "sessions": sessions}


async def list_presenters(tenant_id: str) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        names = await repository.list_presenters(scope)
    return {"presenters": [{"id": n, "name": n} for n in names]}


async def list_series(tenant_id: str) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        rows = await repository.list_series(scope)
    return {"series": [{"id": r["id"], "name": r["title"]} for r in rows]}


async def list_time_slots(tenant_id: str) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        slots = await repository.list_time_slots(scope, slot_timezone=slot_timezone())
    return {"time_slots": [{"id": s, "name": s} for s in slots]}
