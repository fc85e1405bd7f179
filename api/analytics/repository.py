"""
Read-only aggregation queries over completed preach sessions (raw SQL).

Every query starts from the same per-session CTE so each grouping dimension,
the overview and the drill-down see identical planned/actual numbers:

- planned_seconds: sum of duration_minutes * 60 over the non-deleted service
  items of the session's bulletin date
- actual_seconds: sum of duration_seconds over the session's timing rows
- preacher / series / sermon title: from the first Sermon item of the date
  (by sequence) that links a sermon
- service_slot: session start truncated to the hour in the slot time zone

Sessions without ended_at never enter the CTE.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from core.db import TenantScope

# group_by -> (key expression, label expression, ORDER BY). Fixed text only.
GROUPINGS: dict[str, tuple[str, str, str]] = {
    "presenter": ("preacher", "preacher", "sessions_count DESC, key ASC"),
    "series": ("series_id::text", "series_title", "sessions_count DESC, key ASC"),
    "timeSlot": ("service_slot", "service_slot", "key ASC"),
}


class _SqlParams:
    """
    Collects positional parameters and hands out their `$n` placeholders.
    """

    def __init__(self) -> None:
        self.values: list[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


def _session_stats_cte(params: _SqlParams, *, from_date: date, to_date: date, slot_timezone: str) -> str:
    tz = params.add(slot_timezone)
    lower = params.add(from_date)
    upper = params.add(to_date)
    return f"""
    WITH session_sermon AS (
      SELECT DISTINCT ON (ps.id)
        ps.id AS session_id,
        s.preacher,
        s.series_id,
        ss.title AS series_title,
        s.title AS sermon_title
      FROM preach_session ps
      JOIN bulletin_issue bi ON bi.id = ps.bulletin_issue_id
      JOIN service_item si
        ON si.service_date = bi.issue_date
       AND si.tenant_id = ps.tenant_id
       AND si.deleted_at IS NULL
       AND si.type = 'Sermon'
      JOIN sermon s ON s.id = si.sermon_id AND s.deleted_at IS NULL
      LEFT JOIN sermon_series ss ON ss.id = s.series_id AND ss.deleted_at IS NULL
      WHERE ps.ended_at IS NOT NULL
      ORDER BY ps.id, si.sequence ASC, si.id ASC
    ),
    session_stats AS (
      SELECT
        ps.id AS session_id,
        ps.bulletin_issue_id,
        bi.issue_date,
        ps.started_at,
        ps.ended_at,
        to_char(ps.started_at AT TIME ZONE {tz}::text, 'HH24:00') AS service_slot,
        sermon.preacher,
        sermon.series_id,
        sermon.series_title,
        sermon.sermon_title,
        COALESCE((
          SELECT sum(si.duration_minutes * 60)
          FROM service_item si
          WHERE si.service_date = bi.issue_date
            AND si.tenant_id = ps.tenant_id
            AND si.deleted_at IS NULL
        ), 0) AS planned_seconds,
        COALESCE((
          SELECT sum(sit.duration_seconds)
          FROM service_item_timing sit
          WHERE sit.preach_session_id = ps.id
        ), 0) AS actual_seconds
      FROM preach_session ps
      JOIN bulletin_issue bi ON bi.id = ps.bulletin_issue_id
      LEFT JOIN session_sermon sermon ON sermon.session_id = ps.id
      WHERE ps.ended_at IS NOT NULL
        AND bi.deleted_at IS NULL
        AND bi.issue_date >= {lower}::date
        AND bi.issue_date <= {upper}::date
    )
    """


def _filter_conditions(params: _SqlParams, filters: dict[str, Any]) -> list[str]:
    conditions: list[str] = []
    if filters.get("series_id") is not None:
        conditions.append(f"series_id = {params.add(filters['series_id'])}::uuid")
    if filters.get("presenter") is not None:
        conditions.append(f"preacher = {params.add(filters['presenter'])}")
    if filters.get("time_slot") is not None:
        conditions.append(f"service_slot = {params.add(filters['time_slot'])}")
    return conditions


def _where(conditions: list[str]) -> str:
    return "WHERE " + " AND ".join(conditions) if conditions else ""


async def grouped_stats(
    scope: TenantScope,
    group_by: str,
    *,
    from_date: date,
    to_date: date,
    slot_timezone: str,
    filters: dict[str, Any],
) -> list[dict[str, Any]]:
    key_sql, label_sql, order_sql = GROUPINGS[group_by]
    params = _SqlParams()
    cte = _session_stats_cte(params, from_date=from_date, to_date=to_date, slot_timezone=slot_timezone)
    conditions = [f"{key_sql} IS NOT NULL", *_filter_conditions(params, filters)]
    return await scope.fetch_all(
        f"""
        {cte}
        SELECT
          {key_sql} AS key,
          max({label_sql}) AS label,
          count(*) AS sessions_count,
          avg(planned_seconds) AS avg_planned_seconds,
          avg(actual_seconds) AS avg_actual_seconds,
          avg(actual_seconds - planned_seconds) AS avg_delta_seconds
        FROM session_stats
        {_where(conditions)}
        GROUP BY {key_sql}
        ORDER BY {order_sql}
        """,
        *params.values,
    )


async def overview(
    scope: TenantScope,
    *,
    from_date: date,
    to_date: date,
    slot_timezone: str,
    filters: dict[str, Any],
) -> dict[str, Any] | None:
    params = _SqlParams()
    cte = _session_stats_cte(params, from_date=from_date, to_date=to_date, slot_timezone=slot_timezone)
    conditions = _filter_conditions(params, filters)
    return await scope.fetch_one(
        f"""
        {cte}
        SELECT
          count(*) AS sessions_count,
          avg(planned_seconds) AS avg_planned_seconds,
          avg(actual_seconds) AS avg_actual_seconds,
          avg(actual_seconds - planned_seconds) AS avg_delta_seconds
        FROM session_stats
        {_where(conditions)}
        """,
        *params.values,
    )


async def sessions_for_group(
    scope: TenantScope,
    group_by: str,
    key: str,
    *,
    from_date: date,
    to_date: date,
    slot_timezone: str,
) -> list[dict[str, Any]]:
    key_sql, _, _ = GROUPINGS[group_by]
    params = _SqlParams()
    cte = _session_stats_cte(params, from_date=from_date, to_date=to_date, slot_timezone=slot_timezone)
    return await scope.fetch_all(
        f"""
        {cte}
        SELECT
          session_id,
          bulletin_issue_id,
          issue_date,
          started_at,
          ended_at,
          service_slot,
          preacher,
          series_id::text AS series_id,
          series_title,
          sermon_title,
          planned_seconds,
          actual_seconds,
          actual_seconds - planned_seconds AS delta_seconds
        FROM session_stats
        WHERE {key_sql} = {params.add(key)}
        ORDER BY started_at DESC, session_id DESC
        """,
        *params.values,
    )


async def list_presenters(scope: TenantScope) -> list[str]:
    rows = await scope.fetch_all(
        """
        SELECT DISTINCT preacher
        FROM sermon
        WHERE preacher IS NOT NULL
          AND deleted_at IS NULL
        ORDER BY preacher
        """
    )
    return [str(r["preacher"]) for r in rows]


async def list_series(scope: TenantScope) -> list[dict[str, Any]]:
    return await scope.fetch_all(
        """
        SELECT id::text AS id, title
        FROM sermon_series
        WHERE deleted_at IS NULL
        ORDER BY COALESCE(start_date, created_at::date) DESC, title ASC
        """
    )


async def list_time_slots(scope: TenantScope, *, slot_timezone: str) -> list[str]:
    rows = await scope.fetch_all(
        """
        SELECT DISTINCT to_char(ps.started_at AT TIME ZONE $1::text, 'HH24:00') AS service_slot
        FROM preach_session ps
        JOIN bulletin_issue bi ON bi.id = ps.bulletin_issue_id
        WHERE ps.ended_at IS NOT NULL
          AND bi.deleted_at IS NULL
        ORDER BY service_slot
        """,
        slot_timezone,
    )
    return [str(r["service_slot"]) for r in rows]
