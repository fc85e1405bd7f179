"""
Preach session and item timing persistence (raw SQL).

`service_item_timing.duration_seconds` is a generated column; nothing here
writes it.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from core.db import TenantScope

# Event -> timestamp column. The column name is interpolated, so it must come from here.
TIMING_COLUMNS = {
    "start": "started_at",
    "end": "ended_at",
}

_SESSION_COLUMNS = "id, bulletin_issue_id, started_at, ended_at, created_by_user_id, created_at, updated_at"


async def insert_session(
    scope: TenantScope,
    bulletin_issue_id: UUID,
    *,
    created_by_user_id: str | None,
) -> dict[str, Any] | None:
    """
    Start a session for a non-deleted bulletin. None when the bulletin is absent.
    """
    return await scope.fetch_one(
        f"""
        INSERT INTO preach_session (tenant_id, bulletin_issue_id, created_by_user_id, started_at)
        SELECT bi.tenant_id, bi.id, $2, now()
        FROM bulletin_issue bi
        WHERE bi.id = $1
          AND bi.deleted_at IS NULL
        RETURNING {_SESSION_COLUMNS}
        """,
        bulletin_issue_id,
        created_by_user_id,
    )


async def get_session(scope: TenantScope, session_id: UUID) -> dict[str, Any] | None:
    return await scope.fetch_one(
        f"""
        SELECT {_SESSION_COLUMNS}
        FROM preach_session
        WHERE id = $1
        """,
        session_id,
    )


async def end_session(scope: TenantScope, session_id: UUID) -> dict[str, Any] | None:
    """
    Set ended_at on an open session. None when the session is absent or already ended.
    """
    return await scope.fetch_one(
        f"""
        UPDATE preach_session
        SET ended_at = now(),
            updated_at = now()
        WHERE id = $1
          AND ended_at IS NULL
        RETURNING {_SESSION_COLUMNS}
        """,
        session_id,
    )


async def service_item_exists(scope: TenantScope, item_id: UUID) -> bool:
    value = await scope.fetch_val(
        """
        SELECT EXISTS (
          SELECT 1
          FROM service_item
          WHERE id = $1
            AND deleted_at IS NULL
        )
        """,
        item_id,
    )
    return bool(value)


async def upsert_timing(
    scope: TenantScope,
    *,
    session_id: UUID,
    service_item_id: UUID,
    event: str,
) -> dict[str, Any]:
    """
    Record one endpoint of an item's timing; an endpoint that is already set is kept.

    A concurrent insert for the same (session, item) falls through to the
    update branch via ON CONFLICT instead of raising.
    """
    column = TIMING_COLUMNS[event]
    row = await scope.fetch_one(
        f"""
        INSERT INTO service_item_timing (tenant_id, preach_session_id, service_item_id, {column})
        VALUES (current_setting('app.tenant_id')::uuid, $1, $2, now())
        ON CONFLICT (preach_session_id, service_item_id)
        DO UPDATE SET
          {column} = COALESCE(service_item_timing.{column}, now()),
          updated_at = now()
        RETURNING id, preach_session_id, service_item_id, started_at, ended_at, duration_seconds
        """,
        session_id,
        service_item_id,
    )
    if row is None:
        raise RuntimeError("Failed to record item timing.")
    return row


async def get_session_header(scope: TenantScope, session_id: UUID) -> dict[str, Any] | None:
    return await scope.fetch_one(
        """
        SELECT
          ps.id,
          ps.bulletin_issue_id,
          ps.started_at,
          ps.ended_at,
          ps.created_by_user_id,
          bi.issue_date
        FROM preach_session ps
        JOIN bulletin_issue bi ON bi.id = ps.bulletin_issue_id
        WHERE ps.id = $1
        """,
        session_id,
    )


async def list_session_timings(scope: TenantScope, session_id: UUID) -> list[dict[str, Any]]:
    return await scope.fetch_all(
        """
        SELECT
          sit.id AS timing_id,
          sit.service_item_id,
          sit.started_at,
          sit.ended_at,
          sit.duration_seconds,
          si.type,
          si.title,
          si.sequence,
          si.duration_minutes,
          si.section
        FROM service_item_timing sit
        JOIN service_item si ON si.id = sit.service_item_id
        WHERE sit.preach_session_id = $1
        ORDER BY si.sequence ASC, sit.id ASC
        """,
        session_id,
    )


async def bulletin_exists(scope: TenantScope, bulletin_issue_id: UUID) -> bool:
    value = await scope.fetch_val(
        """
        SELECT EXISTS (
          SELECT 1
          FROM bulletin_issue
          WHERE id = $1
            AND deleted_at IS NULL
        )
        """,
        bulletin_issue_id,
    )
    return bool(value)


async def list_sessions_for_bulletin(scope: TenantScope, bulletin_issue_id: UUID) -> list[dict[str, Any]]:
    return await scope.fetch_all(
        """
        SELECT
          ps.id,
          ps.started_at,
          ps.ended_at,
          ps.created_by_user_id,
          count(sit.id) AS total_items,
          sum(sit.duration_seconds) AS total_actual_seconds
        FROM preach_session ps
        LEFT JOIN service_item_timing sit ON sit.preach_session_id = ps.id
        WHERE ps.bulletin_issue_id = $1
        GROUP BY ps.id
        ORDER BY ps.started_at DESC
        """,
        bulletin_issue_id,
    )


async def planned_minutes_for_bulletin(scope: TenantScope, bulletin_issue_id: UUID) -> Any:
    return await scope.fetch_val(
        """
        SELECT COALESCE(sum(si.duration_minutes), 0)
        FROM bulletin_issue bi
        JOIN service_item si
          ON si.service_date = bi.issue_date
         AND si.deleted_at IS NULL
        WHERE bi.id = $1
        """,
        bulletin_issue_id,
    )
