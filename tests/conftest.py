import pathlib
import sys
from contextlib import asynccontextmanager
from typing import Any

import pytest

API_ROOT = pathlib.Path(__file__).resolve().parents[1] / "api"
if str(API_ROOT) not in sys.path:
    sys.path.insert(0, str(API_ROOT))

from core import db  # noqa: E402


class RecordingScope:
    """
    Stands in for `db.TenantScope`: records every statement and answers from a script.

    `responses` maps a SQL fragment to the value returned for statements that
    contain it (first match wins); a callable is called with the statement args.
    """

    def __init__(self, tenant_id: str, responses: dict[str, Any] | None = None):
        self.tenant_id = tenant_id
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, str, tuple[Any, ...]]] = []

    def _answer(self, kind: str, sql: str, args: tuple[Any, ...], default: Any) -> Any:
        self.calls.append((kind, " ".join(sql.split()), args))
        for fragment, value in self.responses.items():
            if fragment in sql:
                return value(*args) if callable(value) else value
        return default

    async def fetch_one(self, sql: str, *args: Any):
        return self._answer("fetch_one", sql, args, None)

    async def fetch_all(self, sql: str, *args: Any):
        return self._answer("fetch_all", sql, args, [])

    async def fetch_val(self, sql: str, *args: Any):
        return self._answer("fetch_val", sql, args, None)

    async def execute(self, sql: str, *args: Any):
        return self._answer("execute", sql, args, "UPDATE 0")


@pytest.fixture
def scoped(monkeypatch):
    """
    Replace `db.tenant_scope` with one that yields a shared RecordingScope.

    Returns a holder whose `.scope` is the scope of the most recent block and
    whose `.tenants` lists the tenant id of every block opened.
    """

    class Holder:
        def __init__(self):
            self.responses: dict[str, Any] = {}
            self.scope: RecordingScope | None = None
            self.tenants: list[str] = []

    holder = Holder()

    @asynccontextmanager
    async def fake_tenant_scope(tenant_id):
        holder.tenants.append(tenant_id)
        holder.scope = RecordingScope(tenant_id, holder.responses)
        yield holder.scope

    monkeypatch.setattr(db, "tenant_scope", fake_tenant_scope)
    return holder
