"""
Preach mode: live sessions and per-item timing.

Sessions go started -> ended once; repeated end calls report the stored end
time. Timing events may arrive twice or out of order; each endpoint keeps its
first recorded instant.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from core import db, errors
from core.numeric import round_half_away_from_zero, seconds_to_minutes, to_int

from . import repository

logger = logging.getLogger(__name__)


def _elapsed_seconds(started_at: datetime | None, ended_at: datetime | None) -> int | None:
    if started_at is None or ended_at is None:
        return None
    return round_half_away_from_zero((ended_at - started_at).total_seconds())


async def start_preach_session(tenant_id: str, bulletin_issue_id: UUID, *, user_id: str | None) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        session = await repository.insert_session(scope, bulletin_issue_id, created_by_user_id=user_id)
    if session is None:
        raise errors.not_found("Bulletin")

    logger.info(
        "preach_session_started tenant_id=%s session_id=%s bulletin_id=%s user_id=%s",
        tenant_id,
        session["id"],
        bulletin_issue_id,
        user_id,
    )
    return {"session_id": session["id"], "started_at": session["started_at"]}


async def end_preach_session(tenant_id: str, session_id: UUID) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        ended = await repository.end_session(scope, session_id)
        if ended is None:
            # Absent, or ended earlier (possibly by a concurrent call).
            existing = await repository.get_session(scope, session_id)
            if existing is None:
                raise errors.not_found("Session")
            return {
                "session_id": existing["id"],
                "ended_at": existing["ended_at"],
                "already_ended": True,
            }

    logger.info(
        "preach_session_ended tenant_id=%s session_id=%s duration_s=%s",
        tenant_id,
        session_id,
        _elapsed_seconds(ended["started_at"], ended["ended_at"]),
    )
    return {"session_id": ended["id"], "ended_at": ended["ended_at"], "already_ended": False}


async def record_item_timing(tenant_id: str, session_id: UUID, service_item_id: UUID, event: str) -> dict[str, Any]:
    if event not in repository.TIMING_COLUMNS:
        raise errors.BadRequestError(f"Unknown timing event: {event}.")

    async with db.tenant_scope(tenant_id) as scope:
        session = await repository.get_session(scope, session_id)
        if session is None:
            raise errors.not_found("Session")
        if not await repository.service_item_exists(scope, service_item_id):
            raise errors.not_found("Service item")
        timing = await repository.upsert_timing(
            scope,
            session_id=session_id,
            service_item_id=service_item_id,
            event=event,
        )

    logger.debug(
        "item_timing_recorded tenant_id=%s session_id=%s item_id=%s event=%s",
        tenant_id,
        session_id,
        service_item_id,
        event,
    )
    return {
        "ok": True,
        "service_item_id": timing["service_item_id"],
        "started_at": timing["started_at"],
        "ended_at": timing["ended_at"],
        "duration_seconds": timing["duration_seconds"],
    }


async def get_session_summary(tenant_id: str, session_id: UUID) -> dict[str, Any]:
    """
    Planned vs actual time for every timed item of a session, plus totals.

    Items without a planned duration count as 0 planned seconds; items not yet
    closed count as 0 actual seconds.
    """
    async with db.tenant_scope(tenant_id) as scope:
        header = await repository.get_session_header(scope, session_id)
        if header is None:
            raise errors.not_found("Session")
        timings = await repository.list_session_timings(scope, session_id)

    planned_total = 0
    actual_total = 0
    items: list[dict[str, Any]] = []
    for row in timings:
        planned = to_int(row["duration_minutes"]) * 60
        actual = to_int(row["duration_seconds"])
        planned_total += planned
        actual_total += actual
        items.append(
            {
                "service_item_id": row["service_item_id"],
                "type": row["type"],
                "title": row["title"],
                "sequence": row["sequence"],
                "section": row["section"],
                "planned_duration_minutes": row["duration_minutes"],
                "planned_duration_seconds": planned,
                "actual_duration_seconds": actual,
                "started_at": row["started_at"],
                "ended_at": row["ended_at"],
                "difference_seconds": actual - planned,
            }
        )

    delta_total = actual_total - planned_total
    return {
        "session": {
            "id": header["id"],
            "bulletin_issue_id": header["bulletin_issue_id"],
            "issue_date": header["issue_date"],
            "started_at": header["started_at"],
            "ended_at": header["ended_at"],
            "duration_seconds": _elapsed_seconds(header["started_at"], header["ended_at"]),
            "created_by_user_id": header["created_by_user_id"],
        },
        "items": items,
        "totals": {
            "planned_seconds": planned_total,
            "planned_minutes": seconds_to_minutes(planned_total),
            "actual_seconds": actual_total,
            "actual_minutes": seconds_to_minutes(actual_total),
            "delta_seconds": delta_total,
            "delta_minutes": seconds_to_minutes(delta_total),
        },
    }


async def list_preach_sessions(tenant_id: str, bulletin_issue_id: UUID) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        if not await repository.bulletin_exists(scope, bulletin_issue_id):
            raise errors.not_found("Bulletin")
        rows = await repository.list_sessions_for_bulletin(scope, bulletin_issue_id)
        planned_minutes = await repository.planned_minutes_for_bulletin(scope, bulletin_issue_id)

    sessions = [
        {
            "id": row["id"],
            "started_at": row["started_at"],
            "ended_at": row["ended_at"],
            "created_by_user_id": row["created_by_user_id"],
            "total_items": to_int(row["total_items"]),
            "total_actual_seconds": (
                to_int(row["total_actual_seconds"]) if row["total_actual_seconds"] is not None else None
            ),
            "session_duration_seconds": _elapsed_seconds(row["started_at"], row["ended_at"]),
        }
        for row in rows
    ]
    return {"sessions": sessions, "total_planned_minutes": to_int(planned_minutes)}
