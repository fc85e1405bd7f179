"""
Service item persistence (raw SQL).

Items belong to a service date, not to a bulletin row. Every write repeats
the "date not locked" condition so a lock committed between the service's
check and the write makes the write match zero rows.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID

from core import db
from core.db import TenantScope

_ITEM_COLUMNS = """
    id, tenant_id, service_date, type, sequence, title, content,
    ccli_number, artist, scripture_ref, speaker, duration_minutes,
    section, sermon_id, created_at, updated_at
"""

# Columns a PATCH may set. Keys come from this tuple, never from user input.
UPDATABLE_COLUMNS = (
    "type",
    "title",
    "sequence",
    "content",
    "ccli_number",
    "artist",
    "scripture_ref",
    "speaker",
    "duration_minutes",
    "section",
    "sermon_id",
)


def _date_unlocked(date_sql: str) -> str:
    return f"""
    NOT EXISTS (
      SELECT 1
      FROM bulletin_issue bi
      WHERE bi.issue_date = {date_sql}
        AND bi.deleted_at IS NULL
        AND bi.status = 'locked'
    )
    """


async def list_items(scope: TenantScope, service_date: date) -> list[dict[str, Any]]:
    return await scope.fetch_all(
        f"""
        SELECT {_ITEM_COLUMNS}
        FROM service_item
        WHERE service_date = $1
          AND deleted_at IS NULL
        ORDER BY sequence ASC, created_at ASC
        """,
        service_date,
    )


async def list_item_ids(scope: TenantScope, service_date: date) -> list[UUID]:
    rows = await scope.fetch_all(
        """
        SELECT id
        FROM service_item
        WHERE service_date = $1
          AND deleted_at IS NULL
        """,
        service_date,
    )
    return [r["id"] for r in rows]


async def get_item(scope: TenantScope, item_id: UUID) -> dict[str, Any] | None:
    return await scope.fetch_one(
        f"""
        SELECT {_ITEM_COLUMNS}
        FROM service_item
        WHERE id = $1
          AND deleted_at IS NULL
        """,
        item_id,
    )


async def date_is_locked(scope: TenantScope, service_date: date) -> bool:
    value = await scope.fetch_val(
        """
        SELECT EXISTS (
          SELECT 1
          FROM bulletin_issue
          WHERE issue_date = $1
            AND deleted_at IS NULL
            AND status = 'locked'
        )
        """,
        service_date,
    )
    return bool(value)


async def insert_item(
    scope: TenantScope,
    *,
    service_date: date,
    type: str,
    title: str,
    sequence: int | None = None,
    content: str | None = None,
    ccli_number: str | None = None,
    artist: str | None = None,
    scripture_ref: str | None = None,
    speaker: str | None = None,
    duration_minutes: int | None = None,
    section: str | None = None,
    sermon_id: UUID | None = None,
) -> dict[str, Any] | None:
    """
    Insert an item; None when the date got locked meanwhile.
    """
    return await scope.fetch_one(
        f"""
        INSERT INTO service_item (
          tenant_id, service_date, type, sequence, title, content,
          ccli_number, artist, scripture_ref, speaker, duration_minutes,
          section, sermon_id
        )
        SELECT
          current_setting('app.tenant_id')::uuid,
          $1::date,
          $2,
          COALESCE($3::integer, (
            SELECT COALESCE(max(existing.sequence), 0) + 1
            FROM service_item existing
            WHERE existing.service_date = $1::date
              AND existing.deleted_at IS NULL
          )),
          $4, $5, $6, $7, $8, $9, $10, $11, $12
        WHERE {_date_unlocked("$1::date")}
        RETURNING {_ITEM_COLUMNS}
        """,
        service_date,
        type,
        sequence,
        title,
        content,
        ccli_number,
        artist,
        scripture_ref,
        speaker,
        duration_minutes,
        section,
        sermon_id,
    )


async def update_item(scope: TenantScope, item_id: UUID, fields: dict[str, Any]) -> dict[str, Any] | None:
    """
    Set exactly the given columns. None when the item is gone or its date is locked.
    """
    assignments: list[str] = []
    params: list[Any] = [item_id]
    for column in UPDATABLE_COLUMNS:
        if column in fields:
            params.append(fields[column])
            assignments.append(f"{column} = ${len(params)}")
    if not assignments:
        raise ValueError("update_item needs at least one column")

    return await scope.fetch_one(
        f"""
        UPDATE service_item
        SET {", ".join(assignments)},
            updated_at = now()
        WHERE id = $1
          AND deleted_at IS NULL
          AND {_date_unlocked("service_item.service_date")}
        RETURNING {_ITEM_COLUMNS}
        """,
        *params,
    )


async def soft_delete_item(scope: TenantScope, item_id: UUID) -> dict[str, Any] | None:
    return await scope.fetch_one(
        f"""
        UPDATE service_item
        SET deleted_at = now(),
            updated_at = now()
        WHERE id = $1
          AND deleted_at IS NULL
          AND {_date_unlocked("service_item.service_date")}
        RETURNING id, service_date, deleted_at
        """,
        item_id,
    )


async def reorder_items(scope: TenantScope, service_date: date, item_ids: list[UUID]) -> int:
    """
    Renumber the date's items 1..n in the given order. Returns rows updated.
    """
    tag = await scope.execute(
        f"""
        UPDATE service_item AS si
        SET sequence = ordered.position,
            updated_at = now()
        FROM unnest($2::uuid[]) WITH ORDINALITY AS ordered(id, position)
        WHERE si.id = ordered.id
          AND si.service_date = $1::date
          AND si.deleted_at IS NULL
          AND {_date_unlocked("$1::date")}
        """,
        service_date,
        item_ids,
    )
    return db.affected_rows(tag)
