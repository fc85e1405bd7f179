"""
FastAPI router for preach mode endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from auth import dependencies as auth_dependencies

from . import schemas
from . import service

router = APIRouter(prefix="/preach")


@router.post("/sessions", status_code=201)
async def start_session(
    payload: schemas.StartSessionRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.start_preach_session(
        current_user["tenant_id"],
        payload.bulletin_issue_id,
        user_id=current_user["user_id"],
    )


@router.post("/sessions/{session_id}/end")
async def end_session(
    session_id: UUID,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    """
    End a session. Safe to repeat: later calls return the first end time.
    """
    return await service.end_preach_session(current_user["tenant_id"], session_id)


@router.post("/sessions/{session_id}/timings")
async def record_timing(
    session_id: UUID,
    payload: schemas.RecordTimingRequest,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.record_item_timing(
        current_user["tenant_id"],
        session_id,
        payload.service_item_id,
        payload.event,
    )


@router.get("/sessions/{session_id}/summary")
async def session_summary(
    session_id: UUID,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.get_session_summary(current_user["tenant_id"], session_id)


@router.get("/bulletins/{bulletin_id}/sessions")
async def list_sessions(
    bulletin_id: UUID,
    current_user: dict = Depends(auth_dependencies.require_staff),
) -> dict:
    return await service.list_preach_sessions(current_user["tenant_id"], bulletin_id)
