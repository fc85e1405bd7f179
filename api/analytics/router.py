"""
FastAPI router for service analytics endpoints.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from auth import dependencies as auth_dependencies

from . import schemas
from . import service

router = APIRouter(prefix="/analytics")


def _filters(
    from_date: date | None = Query(None, alias="from"),
    to_date: date | None = Query(None, alias="to"),
    series_id: UUID | None = Query(None),
    presenter: str | None = Query(None, min_length=1, max_length=200),
    time_slot: str | None = Query(None, pattern=r"^\d{2}:00$"),
) -> schemas.AnalyticsFilters:
    return schemas.AnalyticsFilters(
        from_date=from_date,
        to_date=to_date,
        series_id=series_id,
        presenter=presenter,
        time_slot=time_slot,
    )


@router.get("/overview")
async def overview(
    filters: schemas.AnalyticsFilters = Depends(_filters),
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.get_overview(current_user["tenant_id"], filters)


@router.get("/stats/{group_by}")
async def grouped_stats(
    group_by: schemas.GroupBy,
    filters: schemas.AnalyticsFilters = Depends(_filters),
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    """
    Average planned/actual/delta minutes per presenter, series or time slot.
    """
    return await service.get_grouped_stats(current_user["tenant_id"], group_by, filters)


@router.get("/detail/{group_by}/{key}")
async def detail(
    group_by: schemas.GroupBy,
    key: str,
    from_date: date | None = Query(None, alias="from"),
    to_date: date | None = Query(None, alias="to"),
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.get_detail_for_filter(
        current_user["tenant_id"],
        group_by,
        key,
        from_date=from_date,
        to_date=to_date,
    )


@router.get("/presenters")
async def presenters(current_user: dict = Depends(auth_dependencies.require_staff)) -> dict:
    return await service.list_presenters(current_user["tenant_id"])


@router.get("/series")
async def series(current_user: dict = Depends(auth_dependencies.require_staff)) -> dict:
    return await service.list_series(current_user["tenant_id"])


@router.get("/time-slots")
async def time_slots(current_user: dict = Depends(auth_dependencies.require_staff)) -> dict:
    return await service.list_time_slots(current_user["tenant_id"])
