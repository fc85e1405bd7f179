"""
FastAPI router for bulletin endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from auth import dependencies as auth_dependencies

from . import schemas
from . import service

router = APIRouter(prefix="/bulletins")


@router.post("", status_code=201)
async def create_bulletin(
    payload: schemas.CreateBulletinRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.create_bulletin_issue(current_user["tenant_id"], payload.service_date)


@router.post("/from-previous", status_code=201)
async def create_bulletin_from_previous(
    payload: schemas.CreateFromPreviousRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.create_from_previous(
        current_user["tenant_id"],
        payload.previous_bulletin_id,
        payload.new_service_date,
        template_key=payload.template_key,
    )


@router.get("")
async def list_bulletins(
    current_user: dict = Depends(auth_dependencies.get_current_user),
    filter: schemas.ListFilter = Query("active"),
    status: schemas.EditableStatus | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> dict:
    """
    List bulletins. `filter`: active (approved/built/locked), drafts, deleted, all.
    """
    return await service.list_bulletin_issues(
        current_user["tenant_id"],
        filter_name=filter,
        status=status,
        limit=limit,
        offset=offset,
    )


@router.get("/{bulletin_id}")
async def get_bulletin(
    bulletin_id: UUID,
    current_user: dict = Depends(auth_dependencies.get_current_user),
) -> dict:
    return await service.get_bulletin_issue(current_user["tenant_id"], bulletin_id)


@router.patch("/{bulletin_id}")
async def update_bulletin(
    bulletin_id: UUID,
    payload: schemas.UpdateBulletinRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    fields = payload.model_dump(exclude_unset=True)
    if "service_date" in fields:
        fields["issue_date"] = fields.pop("service_date")
    return await service.update_bulletin_issue(current_user["tenant_id"], bulletin_id, fields)


@router.put("/{bulletin_id}/canvas-layout")
async def save_canvas_layout(
    bulletin_id: UUID,
    payload: schemas.CanvasLayoutRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.save_canvas_layout(
        current_user["tenant_id"],
        bulletin_id,
        payload.canvas_layout_json,
        use_canvas_layout=payload.use_canvas_layout,
    )


@router.put("/{bulletin_id}/template")
async def update_template(
    bulletin_id: UUID,
    payload: schemas.TemplateKeyRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.update_template_key(current_user["tenant_id"], bulletin_id, payload.template_key)


@router.put("/{bulletin_id}/design-options")
async def update_design_options(
    bulletin_id: UUID,
    payload: schemas.DesignOptionsRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.update_design_options(current_user["tenant_id"], bulletin_id, payload.design_options)


@router.post("/{bulletin_id}/copy-from")
async def copy_from_bulletin(
    bulletin_id: UUID,
    payload: schemas.CopyFromBulletinRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    """
    Copy template/design settings (and optionally service items) from another bulletin.
    """
    return await service.copy_from_bulletin(
        current_user["tenant_id"],
        bulletin_id,
        payload.source_bulletin_id,
        copy_service_items=payload.copy_service_items,
    )


@router.post("/{bulletin_id}/lock")
async def lock_bulletin(
    bulletin_id: UUID,
    current_user: dict = Depends(auth_dependencies.require_editor),
) -> dict:
    """
    Lock a bulletin. Every song on its service date needs a CCLI number first.
    """
    return await service.lock_bulletin_issue(
        current_user["tenant_id"],
        bulletin_id,
        actor=current_user["user_id"],
    )


@router.delete("/{bulletin_id}")
async def delete_bulletin(
    bulletin_id: UUID,
    current_user: dict = Depends(auth_dependencies.require_editor),
) -> dict:
    return await service.soft_delete_bulletin_issue(current_user["tenant_id"], bulletin_id)
