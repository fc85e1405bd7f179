"""
Bulletin issue persistence (raw SQL).

Every function takes the `TenantScope` of the caller's transaction; tenant
filtering is done by row-level security on `app.tenant_id`.
"""

from __future__ import annotations

import json
from datetime import date
from typing import Any
from uuid import UUID

from core import db
from core.db import TenantScope

STATUS_DRAFT = "draft"
STATUS_APPROVED = "approved"
STATUS_BUILT = "built"
STATUS_LOCKED = "locked"
STATUS_DELETED = "deleted"

EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_APPROVED, STATUS_BUILT)

# Filter name -> WHERE fragment. Each fragment is fixed text; no user input.
LIST_FILTERS: dict[str, str] = {
    "active": "deleted_at IS NULL AND status IN ('approved', 'built', 'locked')",
    "drafts": "deleted_at IS NULL AND status = 'draft'",
    "deleted": "deleted_at IS NOT NULL",
    "all": "deleted_at IS NULL",
}

_ISSUE_COLUMN_NAMES = (
    "id",
    "tenant_id",
    "issue_date",
    "status",
    "locked_at",
    "locked_by",
    "template_key",
    "design_options",
    "canvas_layout_json",
    "use_canvas_layout",
    "created_at",
    "updated_at",
    "deleted_at",
)
_ISSUE_COLUMNS = ", ".join(_ISSUE_COLUMN_NAMES)
_TARGET_ISSUE_COLUMNS = ", ".join(f"target.{name}" for name in _ISSUE_COLUMN_NAMES)


def _json_arg(value: dict[str, Any] | None) -> str | None:
    """
    asyncpg does not encode dicts for jsonb parameters; pass text and cast in SQL.
    """
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=True)


def _decode_json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _issue_row(row: dict[str, Any] | None) -> dict[str, Any] | None:
    if row is None:
        return None
    for key in ("design_options", "canvas_layout_json"):
        if key in row:
            row[key] = _decode_json(row[key])
    return row


async def list_issues(
    scope: TenantScope,
    *,
    where: str,
    params: list[Any],
    limit: int,
    offset: int,
) -> list[dict[str, Any]]:
    n = len(params)
    rows = await scope.fetch_all(
        f"""
        SELECT {_ISSUE_COLUMNS}
        FROM bulletin_issue
        WHERE {where}
        ORDER BY issue_date DESC, id DESC
        LIMIT ${n + 1}
        OFFSET ${n + 2}
        """,
        *params,
        limit,
        offset,
    )
    return [_issue_row(r) for r in rows]


async def count_issues(scope: TenantScope, *, where: str, params: list[Any]) -> int:
    value = await scope.fetch_val(
        f"""
        SELECT count(*)
        FROM bulletin_issue
        WHERE {where}
        """,
        *params,
    )
    return int(value or 0)


async def get_issue(scope: TenantScope, issue_id: UUID) -> dict[str, Any] | None:
    row = await scope.fetch_one(
        f"""
        SELECT {_ISSUE_COLUMNS}
        FROM bulletin_issue
        WHERE id = $1
          AND deleted_at IS NULL
        """,
        issue_id,
    )
    return _issue_row(row)


async def get_status(scope: TenantScope, issue_id: UUID) -> str | None:
    """
    Current status of a non-deleted issue, or None when absent in this tenant.
    """
    row = await scope.fetch_one(
        """
        SELECT status
        FROM bulletin_issue
        WHERE id = $1
          AND deleted_at IS NULL
        """,
        issue_id,
    )
    return str(row["status"]) if row is not None else None


async def find_active_by_date(scope: TenantScope, issue_date: date) -> dict[str, Any] | None:
    return await scope.fetch_one(
        """
        SELECT id, status
        FROM bulletin_issue
        WHERE issue_date = $1
          AND deleted_at IS NULL
        LIMIT 1
        """,
        issue_date,
    )


async def insert_issue(
    scope: TenantScope,
    *,
    issue_date: date,
    template_key: str | None = None,
    design_options: dict[str, Any] | None = None,
    use_canvas_layout: bool = False,
) -> dict[str, Any]:
    row = await scope.fetch_one(
        f"""
        INSERT INTO bulletin_issue (
          tenant_id, issue_date, status, template_key, design_options, use_canvas_layout
        )
        VALUES (
          current_setting('app.tenant_id')::uuid, $1, 'draft', $2, $3::jsonb, $4
        )
        RETURNING {_ISSUE_COLUMNS}
        """,
        issue_date,
        template_key,
        _json_arg(design_options),
        use_canvas_layout,
    )
    if row is None:
        raise RuntimeError("Failed to insert bulletin issue.")
    return _issue_row(row)


async def update_issue(
    scope: TenantScope,
    issue_id: UUID,
    *,
    status: str | None = None,
    issue_date: date | None = None,
    template_key: str | None = None,
    design_options: dict[str, Any] | None = None,
    canvas_layout_json: dict[str, Any] | None = None,
    use_canvas_layout: bool | None = None,
) -> dict[str, Any] | None:
    """
    Apply the non-None fields to an issue that is neither deleted nor locked.

    Returns None when no row matched (absent, deleted, or locked meanwhile).
    """
    row = await scope.fetch_one(
        f"""
        UPDATE bulletin_issue
        SET status = COALESCE($2, status),
            issue_date = COALESCE($3, issue_date),
            template_key = COALESCE($4, template_key),
            design_options = COALESCE($5::jsonb, design_options),
            canvas_layout_json = COALESCE($6::jsonb, canvas_layout_json),
            use_canvas_layout = COALESCE($7, use_canvas_layout),
            updated_at = now()
        WHERE id = $1
          AND deleted_at IS NULL
          AND status <> 'locked'
        RETURNING {_ISSUE_COLUMNS}
        """,
        issue_id,
        status,
        issue_date,
        template_key,
        _json_arg(design_options),
        _json_arg(canvas_layout_json),
        use_canvas_layout,
    )
    return _issue_row(row)


async def copy_settings(scope: TenantScope, *, target_id: UUID, source_id: UUID) -> dict[str, Any] | None:
    """
    Copy template/design/layout settings from source onto an unlocked target.
    """
    row = await scope.fetch_one(
        f"""
        UPDATE bulletin_issue AS target
        SET template_key = source.template_key,
            design_options = source.design_options,
            canvas_layout_json = source.canvas_layout_json,
            use_canvas_layout = source.use_canvas_layout,
            updated_at = now()
        FROM bulletin_issue AS source
        WHERE target.id = $1
          AND target.deleted_at IS NULL
          AND target.status <> 'locked'
          AND source.id = $2
          AND source.deleted_at IS NULL
        RETURNING {_TARGET_ISSUE_COLUMNS}
        """,
        target_id,
        source_id,
    )
    return _issue_row(row)


async def songs_missing_license(scope: TenantScope, issue_id: UUID) -> list[dict[str, Any]]:
    """
    Song items on the issue's service date without a CCLI number.
    """
    return await scope.fetch_all(
        """
        SELECT si.id, si.sequence, si.title
        FROM service_item si
        JOIN bulletin_issue bi
          ON bi.issue_date = si.service_date
         AND bi.tenant_id = si.tenant_id
        WHERE bi.id = $1
          AND si.type = 'Song'
          AND si.deleted_at IS NULL
          AND (si.ccli_number IS NULL OR btrim(si.ccli_number) = '')
        ORDER BY si.sequence, si.id
        """,
        issue_id,
    )


async def lock_issue(scope: TenantScope, issue_id: UUID, *, locked_by: str | None) -> dict[str, Any] | None:
    """
    Flip a non-locked issue to locked. None means another request got there first.
    """
    return await scope.fetch_one(
        """
        UPDATE bulletin_issue
        SET status = 'locked',
            locked_at = now(),
            locked_by = $2,
            updated_at = now()
        WHERE id = $1
          AND deleted_at IS NULL
          AND status <> 'locked'
        RETURNING id, status, locked_at, locked_by
        """,
        issue_id,
        locked_by,
    )


async def soft_delete_issue(scope: TenantScope, issue_id: UUID) -> dict[str, Any] | None:
    # status and deleted_at move together; the table's CHECK constraint requires it.
    return await scope.fetch_one(
        """
        UPDATE bulletin_issue
        SET status = 'deleted',
            deleted_at = now(),
            updated_at = now()
        WHERE id = $1
          AND deleted_at IS NULL
          AND status <> 'locked'
        RETURNING id, status, deleted_at
        """,
        issue_id,
    )


async def copy_service_items(scope: TenantScope, *, source_date: date, target_date: date) -> int:
    """
    Append the source date's items after the target date's existing items.
    """
    tag = await scope.execute(
        """
        INSERT INTO service_item (
          tenant_id, service_date, type, sequence, title,
          ccli_number, duration_minutes, section, sermon_id,
          content, artist, scripture_ref, speaker
        )
        SELECT
          si.tenant_id,
          $2,
          si.type,
          si.sequence + COALESCE((
            SELECT max(existing.sequence)
            FROM service_item existing
            WHERE existing.service_date = $2
              AND existing.deleted_at IS NULL
          ), 0),
          si.title,
          si.ccli_number,
          si.duration_minutes,
          si.section,
          si.sermon_id,
          si.content,
          si.artist,
          si.scripture_ref,
          si.speaker
        FROM service_item si
        WHERE si.service_date = $1
          AND si.deleted_at IS NULL
        """,
        source_date,
        target_date,
    )
    return db.affected_rows(tag)
