"""
Async database access (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`).

Tenant data is only reachable through `tenant_scope()`: it opens a
transaction, binds the tenant id into `app.tenant_id` (transaction-local, so
row-level security policies filter every following statement), and hands out
a `TenantScope` that is the only way to run statements in that transaction.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from . import errors, settings

TENANT_SETTING = "app.tenant_id"

T = TypeVar("T")

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def database_url() -> str:
    url = settings.env_str("DATABASE_URL", "")
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


def acquire_timeout_s() -> float:
    return settings.env_float("DB_ACQUIRE_TIMEOUT_S", 10.0)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        return None
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=settings.env_int("DB_POOL_MIN_SIZE", 1),
        max_size=settings.env_int("DB_POOL_MAX_SIZE", 10),
        command_timeout=settings.env_float("DB_COMMAND_TIMEOUT_S", 30.0),
    )


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


def affected_rows(tag: str | None) -> int:
    """
    Row count from a command tag such as "INSERT 0 3" or "UPDATE 2".
    """
    try:
        return int(str(tag or "").rsplit(" ", 1)[-1])
    except ValueError:
        return 0


def _normalize_tenant_id(tenant_id: Any) -> str:
    raw = str(tenant_id or "").strip()
    if not raw:
        raise ValueError("tenant_id must not be empty")
    return raw


class TenantScope:
    """
    Statement handle for one tenant-bound transaction.

    Created only by `tenant_scope()`; it stops working once that block exits.
    """

    def __init__(self, conn: asyncpg.Connection, tenant_id: str) -> None:
        self._conn: asyncpg.Connection | None = conn
        self._tenant_id = tenant_id

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    def _connection(self) -> asyncpg.Connection:
        if self._conn is None:
            raise RuntimeError("TenantScope used after its transaction ended.")
        return self._conn

    def _close(self) -> None:
        self._conn = None

    async def fetch_one(self, sql: str, *args: Any) -> dict[str, Any] | None:
        """
        Run a query and return a single row as a dict (or None).
        """
        row = await self._connection().fetchrow(sql, *args)
        return _record_to_dict(row) if row is not None else None

    async def fetch_all(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """
        Run a query and return all rows as a list of dicts.
        """
        rows = await self._connection().fetch(sql, *args)
        return [_record_to_dict(r) for r in rows]

    async def fetch_val(self, sql: str, *args: Any) -> Any:
        return await self._connection().fetchval(sql, *args)

    async def execute(self, sql: str, *args: Any) -> str:
        """
        Run a statement (INSERT/UPDATE/DELETE). Returns the command tag, e.g. "UPDATE 1".
        """
        return await self._connection().execute(sql, *args)


@asynccontextmanager
async def tenant_scope(tenant_id: Any) -> AsyncIterator[TenantScope]:
    """
    Run the enclosed block in one transaction bound to `tenant_id`.

    Commits when the block completes, rolls back on any exception and always
    returns the connection to the pool. Unique violations surface as
    `ConflictError`; every other driver error is re-raised unchanged.
    """
    tenant = _normalize_tenant_id(tenant_id)
    try:
        async with pool().acquire(timeout=acquire_timeout_s()) as conn:
            async with conn.transaction():
                # Bound as a parameter; the tenant id never appears in SQL text.
                await conn.execute("SELECT set_config($1, $2, true)", TENANT_SETTING, tenant)
                scope = TenantScope(conn, tenant)
                try:
                    yield scope
                except Exception as exc:
                    logger.debug("tenant_scope_rollback tenant_id=%s error=%s", tenant, type(exc).__name__)
                    raise
                finally:
                    scope._close()
    except asyncpg.UniqueViolationError as exc:
        constraint = getattr(exc, "constraint_name", None) or "unique constraint"
        raise errors.ConflictError(f"Conflicts with an existing record ({constraint}).") from exc


async def run_scoped(tenant_id: Any, fn: Callable[[TenantScope], Awaitable[T]]) -> T:
    async with tenant_scope(tenant_id) as scope:
        return await fn(scope)


async def check_database_health() -> bool:
    try:
        async with pool().acquire(timeout=acquire_timeout_s()) as conn:
            value = await conn.fetchval("SELECT 1")
        return value == 1
    except Exception:
        logger.exception("database_health_check_failed")
        return False
