"""
Auth security helpers.

Access tokens are HS256 JWTs carrying the user id (`sub`), the tenant the
user acts in (`tenant_id`) and the user's role. Issuing tokens for real users
belongs to the identity provider; `build_access_token` is used by tooling
and tests.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import UUID

import jwt

from core import settings

ROLES = ("admin", "editor", "submitter", "viewer", "kiosk")


class AuthSecurityError(RuntimeError):
    pass


def jwt_secret() -> str:
    # Local default keeps development simple.
    # In production, set JWT_SECRET in environment.
    return settings.env_str("JWT_SECRET", "dev-change-this-secret")


def jwt_algorithm() -> str:
    return settings.env_str("JWT_ALG", "HS256")


def access_token_expire_minutes() -> int:
    return settings.env_int("ACCESS_TOKEN_EXPIRE_MIN", 15)


def now_epoch_s() -> int:
    return int(time.time())


def build_access_token(*, user_id: str, tenant_id: str, role: str) -> str:
    issued_at = now_epoch_s()
    expires_at = issued_at + (access_token_expire_minutes() * 60)

    payload = {
        "sub": str(user_id),
        "tenant_id": str(tenant_id),
        "role": role,
        "type": "access",
        "iat": issued_at,
        "exp": expires_at,
    }
    return jwt.encode(payload, jwt_secret(), algorithm=jwt_algorithm())


def decode_access_token(token: str) -> dict[str, Any]:
    raw = (token or "").strip()
    if not raw:
        raise AuthSecurityError("Access token is empty.")

    try:
        payload = jwt.decode(raw, jwt_secret(), algorithms=[jwt_algorithm()])
    except jwt.InvalidTokenError as exc:
        raise AuthSecurityError("Invalid access token.") from exc

    token_type = str(payload.get("type") or "").strip().lower()
    if token_type != "access":
        raise AuthSecurityError("Token is not an access token.")

    if not str(payload.get("sub") or "").strip():
        raise AuthSecurityError("Token has no subject.")
    tenant_id = str(payload.get("tenant_id") or "").strip()
    if not tenant_id:
        raise AuthSecurityError("Token has no tenant.")
    try:
        UUID(tenant_id)
    except ValueError as exc:
        raise AuthSecurityError("Token tenant is not a valid id.") from exc

    role = str(payload.get("role") or "").strip().lower()
    if role not in ROLES:
        raise AuthSecurityError("Token has an unknown role.")

    return payload
