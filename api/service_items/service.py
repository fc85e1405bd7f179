"""
Order-of-worship items for a service date.

Items stay editable until the date's bulletin is locked. The service checks
the lock first (LockedError) and the repository repeats the check inside the
write; a write that matches nothing after a passing check lost a race.
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


async def _require_unlocked(scope: TenantScope, service_date: date) -> None:
    if await repository.date_is_locked(scope, service_date):
        raise errors.LockedError("Cannot modify service items of a locked bulletin.")


async def _require_item(scope: TenantScope, item_id: UUID) -> dict[str, Any]:
    item = await repository.get_item(scope, item_id)
    if item is None:
        raise errors.not_found("Service item")
    return item


async def list_service_items(tenant_id: str, service_date: date) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        items = await repository.list_items(scope, service_date)
    return {"service_date": service_date, "items": items, "count": len(items)}


async def create_service_item(tenant_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    service_date = fields["service_date"]
    async with db.tenant_scope(tenant_id) as scope:
        await _require_unlocked(scope, service_date)
        row = await repository.insert_item(scope, **fields)
        if row is None:
            logger.warning("service_item_create_race_lost tenant_id=%s service_date=%s", tenant_id, service_date)
            raise errors.ConflictError("Bulletin was locked by another request.")
    return row


async def update_service_item(tenant_id: str, item_id: UUID, fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - set(repository.UPDATABLE_COLUMNS)
    if unknown:
        raise errors.BadRequestError(f"Unknown service item fields: {', '.join(sorted(unknown))}.")
    if not fields:
        raise errors.BadRequestError("No fields to update.")
    for required in ("type", "title", "sequence"):
        if required in fields and fields[required] is None:
            raise errors.BadRequestError(f"Field '{required}' cannot be cleared.")

    async with db.tenant_scope(tenant_id) as scope:
        item = await _require_item(scope, item_id)
        await _require_unlocked(scope, item["service_date"])
        row = await repository.update_item(scope, item_id, fields)
        if row is None:
            logger.warning("service_item_update_race_lost tenant_id=%s item_id=%s", tenant_id, item_id)
            raise errors.concurrent_change("Service item")
    return row


async def delete_service_item(tenant_id: str, item_id: UUID) -> dict[str, Any]:
    async with db.tenant_scope(tenant_id) as scope:
        item = await _require_item(scope, item_id)
        await _require_unlocked(scope, item["service_date"])
        row = await repository.soft_delete_item(scope, item_id)
        if row is None:
            raise errors.concurrent_change("Service item")

    logger.info("service_item_deleted tenant_id=%s item_id=%s", tenant_id, item_id)
    return {"ok": True, "id": row["id"], "deleted_at": row["deleted_at"]}


async def reorder_service_items(tenant_id: str, service_date: date, item_ids: list[UUID]) -> dict[str, Any]:
    """
    Renumber a date's items. `item_ids` must list every non-deleted item exactly once.
    """
    if len(set(item_ids)) != len(item_ids):
        raise errors.BadRequestError("item_ids contains duplicates.")

    async with db.tenant_scope(tenant_id) as scope:
        await _require_unlocked(scope, service_date)
        current = await repository.list_item_ids(scope, service_date)
        if set(current) != set(item_ids):
            raise errors.BadRequestError("item_ids must list every service item of the date exactly once.")

        updated = await repository.reorder_items(scope, service_date, item_ids)
        if updated != len(item_ids):
            # Raising inside the scope rolls back the partial renumbering.
            raise errors.concurrent_change("Service items")

        items = await repository.list_items(scope, service_date)

    return {"service_date": service_date, "items": items, "count": len(items)}
