"""
Auth dependencies for protected FastAPI routes.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from fastapi import Depends, Header, HTTPException, status

from . import security

logger = logging.getLogger(__name__)


def _extract_bearer_token(authorization: str | None) -> str:
    raw = (authorization or "").strip()
    if not raw:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
        )

    parts = raw.split(" ", 1)
    if len(parts) != 2:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format.",
        )

    scheme, token = parts[0].strip().lower(), parts[1].strip()
    if scheme != "bearer" or not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization must be: Bearer <token>.",
        )
    return token


async def get_bearer_token(authorization: str | None = Header(default=None)) -> str:
    return _extract_bearer_token(authorization)


async def get_current_user(
    access_token: str = Depends(get_bearer_token),
    x_tenant_id: str | None = Header(default=None),
) -> dict:
    try:
        payload = security.decode_access_token(access_token)
    except security.AuthSecurityError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc

    user = {
        "user_id": str(payload["sub"]),
        "tenant_id": str(payload["tenant_id"]),
        "role": str(payload["role"]).lower(),
    }

    # The verified token decides the tenant; the header is only a hint.
    header_tenant = (x_tenant_id or "").strip()
    if header_tenant and header_tenant != user["tenant_id"]:
        logger.warning(
            "tenant_header_mismatch user_id=%s token_tenant=%s header_tenant=%s",
            user["user_id"],
            user["tenant_id"],
            header_tenant,
        )

    return user


def require_roles(*roles: str) -> Callable[..., Awaitable[dict]]:
    allowed = frozenset(roles)

    async def dependency(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user["role"] not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient role for this action.",
            )
        return current_user

    return dependency


require_editor = require_roles("admin", "editor")
require_staff = require_roles("admin", "editor", "submitter", "viewer")
