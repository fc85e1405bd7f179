"""
FastAPI router for service item endpoints.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from auth import dependencies as auth_dependencies

from . import schemas
from . import service

router = APIRouter(prefix="/service-items")


@router.get("")
async def list_service_items(
    service_date: date = Query(...),
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.list_service_items(current_user["tenant_id"], service_date)


@router.post("", status_code=201)
async def create_service_item(
    payload: schemas.CreateServiceItemRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.create_service_item(current_user["tenant_id"], payload.model_dump())


@router.patch("/{item_id}")
async def update_service_item(
    item_id: UUID,
    payload: schemas.UpdateServiceItemRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.update_service_item(
        current_user["tenant_id"],
        item_id,
        payload.model_dump(exclude_unset=True),
    )


@router.delete("/{item_id}")
async def delete_service_item(
    item_id: UUID,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.delete_service_item(current_user["tenant_id"], item_id)


@router.post("/reorder")
async def reorder_service_items(
    payload: schemas.ReorderServiceItemsRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.reorder_service_items(
        current_user["tenant_id"],
        payload.service_date,
        payload.item_ids,
    )
