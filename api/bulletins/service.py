"""
Bulletin lifecycle: draft -> approved -> built -> locked, plus soft delete.

Every mutation runs in one tenant-scoped transaction:
1) read the current status (absent -> NotFound, locked -> Locked)
2) write with a conditional statement that repeats the guard
3) a conditional write that matches nothing means a concurrent request won
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any
from uuid import UUID

from core import db, errors
from core.db import TenantScope

from . import repository

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "status",
    "issue_date",
    "template_key",
    "design_options",
    "canvas_layout_json",
    "use_canvas_layout",
)


def _to_issue_response(row: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": row["id"],
        "issue_date": row["issue_date"],
        "status": str(row["status"]),
        "locked_at": row.get("locked_at"),
        "locked_by": row.get("locked_by"),
        "template_key": row.get("template_key"),
        "design_options": row.get("design_options"),
        "canvas_layout_json": row.get("canvas_layout_json"),
        "use_canvas_layout": bool(row.get("use_canvas_layout") or False),
        "created_at": row.get("created_at"),
        "updated_at": row.get("updated_at"),
        "deleted_at": row.get("deleted_at"),
    }


async def _require_editable(scope: TenantScope, issue_id: UUID, *, action: str) -> str:
    status = await repository.get_status(scope, issue_id)
    if status is None:
        raise errors.not_found("Bulletin")
    if status == repository.STATUS_LOCKED:
        raise errors.bulletin_locked(action)
    return status


async def _guarded_update(
    scope: TenantScope,
    issue_id: UUID,
    *,
    action: str,
    fields: dict[str, Any],
) -> dict[str, Any]:
    await _require_editable(scope, issue_id, action=action)
    row = await repository.update_issue(scope, issue_id, **fields)
    if row is None:
        logger.warning("bulletin_update_race_lost tenant_id=%s bulletin_id=%s", scope.tenant_id, issue_id)
        raise errors.concurrent_change("Bulletin")
    return _to_issue_response(row)


async def list_bulletin_issues(
    tenant_id: str,
    *,
    filter_name: str = "active",
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    params: list[Any] = []
    if status:
        # An explicit status narrows within non-deleted issues.
        where = "deleted_at IS NULL AND status = $1"
        params.append(status)
    else:
        where = repository.LIST_FILTERS.get(filter_name)
        if where is None:
            raise errors.BadRequestError(f"Unknown bulletin filter: {filter_name}.")

    async with db.tenant_scope(tenant_id) as scope:
        rows = await repository.list_issues(scope, where=where, params=params, limit=limit, offset=offset)
        total = await repository.count_issues(scope, where=where, params=params)

    return {
        "bulletins": [_to_issue_response(r) for r in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
        "filter": filter_name,
    }


async def get_bulletin_issue(tenant_id: str, issue_id: UUID) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        row = await repository.get_issue(scope, issue_id)
    if row is None:
        raise errors.not_found("Bulletin")
    return _to_issue_response(row)


async def create_bulletin_issue(tenant_id: str, service_date: date) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        existing = await repository.find_active_by_date(scope, service_date)
        if existing is not None:
            raise errors.ConflictError("Bulletin already exists for this service date.")
        # The partial unique index turns a concurrent duplicate into ConflictError too.
        row = await repository.insert_issue(scope, issue_date=service_date)

    logger.info("bulletin_created tenant_id=%s bulletin_id=%s issue_date=%s", tenant_id, row["id"], service_date)
    return _to_issue_response(row)


async def create_from_previous(
    tenant_id: str,
    previous_id: UUID,
    new_service_date: date,
    *,
    template_key: str | None = None,
) -> dict[str, Any]:
    """
    New draft for `new_service_date` carrying the previous issue's template and design.
    """
    async with db.tenant_scope(tenant_id) as scope:
        previous = await repository.get_issue(scope, previous_id)
        if previous is None:
            raise errors.not_found("Previous bulletin")

        existing = await repository.find_active_by_date(scope, new_service_date)
        if existing is not None:
            raise errors.ConflictError("Bulletin already exists for this service date.")

        row = await repository.insert_issue(
            scope,
            issue_date=new_service_date,
            template_key=template_key or previous.get("template_key"),
            design_options=previous.get("design_options"),
            use_canvas_layout=bool(previous.get("use_canvas_layout") or False),
        )

    logger.info(
        "bulletin_created_from_previous tenant_id=%s bulletin_id=%s previous_id=%s",
        tenant_id,
        row["id"],
        previous_id,
    )
    return _to_issue_response(row)


async def update_bulletin_issue(tenant_id: str, issue_id: UUID, fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise errors.BadRequestError(f"Unknown bulletin fields: {', '.join(sorted(unknown))}.")

    changes = {k: v for k, v in fields.items() if v is not None}
    if not changes:
        raise errors.BadRequestError("No fields to update.")

    status = changes.get("status")
    if status is not None and status not in repository.EDITABLE_STATUSES:
        # locked/deleted are reachable only through lock and soft delete.
        raise errors.BadRequestError(f"Status cannot be set to '{status}' by update.")

    async with db.tenant_scope(tenant_id) as scope:
        return await _guarded_update(scope, issue_id, action="update", fields=changes)


async def save_canvas_layout(
    tenant_id: str,
    issue_id: UUID,
    canvas_layout_json: dict[str, Any],
    *,
    use_canvas_layout: bool = True,
) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        return await _guarded_update(
            scope,
            issue_id,
            action="update",
            fields={"canvas_layout_json": canvas_layout_json, "use_canvas_layout": use_canvas_layout},
        )


async def update_template_key(tenant_id: str, issue_id: UUID, template_key: str) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        return await _guarded_update(scope, issue_id, action="update", fields={"template_key": template_key})


async def update_design_options(tenant_id: str, issue_id: UUID, design_options: dict[str, Any]) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        return await _guarded_update(scope, issue_id, action="update", fields={"design_options": design_options})


async def copy_from_bulletin(
    tenant_id: str,
    target_id: UUID,
    source_id: UUID,
    *,
    copy_service_items: bool = False,
) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        await _require_editable(scope, target_id, action="modify")

        source = await repository.get_issue(scope, source_id)
        if source is None:
            raise errors.not_found("Source bulletin")

        row = await repository.copy_settings(scope, target_id=target_id, source_id=source_id)
        if row is None:
            raise errors.concurrent_change("Bulletin")

        copied_items = 0
        if copy_service_items and source["issue_date"] != row["issue_date"]:
            copied_items = await repository.copy_service_items(
                scope,
                source_date=source["issue_date"],
                target_date=row["issue_date"],
            )

    result = _to_issue_response(row)
    result["copied_service_items"] = copied_items
    return result


async def lock_bulletin_issue(tenant_id: str, issue_id: UUID, *, actor: str | None) -> dict[str, Any]:
    """
    Lock an issue once every song on its date carries a CCLI number.
    """
    async with db.tenant_scope(tenant_id) as scope:
        status = await repository.get_status(scope, issue_id)
        if status is None:
            raise errors.not_found("Bulletin")
        if status == repository.STATUS_LOCKED:
            raise errors.ConflictError("Bulletin is already locked.")

        missing = await repository.songs_missing_license(scope, issue_id)
        if missing:
            raise errors.PreconditionFailedError(
                "All songs must have CCLI numbers before locking.",
                details={
                    "songs_missing_ccli": [
                        {"id": m["id"], "sequence": m["sequence"], "title": m["title"]} for m in missing
                    ]
                },
            )

        row = await repository.lock_issue(scope, issue_id, locked_by=actor)
        if row is None:
            logger.warning("bulletin_lock_race_lost tenant_id=%s bulletin_id=%s", tenant_id, issue_id)
            raise errors.ConflictError("Bulletin is already locked or not found.")

    logger.info("bulletin_locked tenant_id=%s bulletin_id=%s locked_by=%s", tenant_id, issue_id, actor)
    return {
        "ok": True,
        "id": row["id"],
        "status": str(row["status"]),
        "locked_at": row["locked_at"],
        "locked_by": row["locked_by"],
    }


async def soft_delete_bulletin_issue(tenant_id: str, issue_id: UUID) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        await _require_editable(scope, issue_id, action="delete")
        row = await repository.soft_delete_issue(scope, issue_id)
        if row is None:
            raise errors.concurrent_change("Bulletin")

    logger.info("bulletin_soft_deleted tenant_id=%s bulletin_id=%s", tenant_id, issue_id)
    return {
        "ok": True,
        "id": row["id"],
        "status": str(row["status"]),
        "deleted_at": row["deleted_at"],
    }
