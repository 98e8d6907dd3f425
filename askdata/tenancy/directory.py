"""Tenant directory: membership checks and tenant configuration rows."""

from __future__ import annotations

import logging

import asyncpg

from askdata.models.tenant import TenantContext

logger = logging.getLogger(__name__)

_CREATE_TENANTS_TABLE = """
CREATE TABLE IF NOT EXISTS tenants (
    id BIGSERIAL PRIMARY KEY,
    slug TEXT UNIQUE,
    name TEXT,
    data_db_host TEXT NOT NULL,
    data_db_port INTEGER,
    data_db_name TEXT NOT NULL,
    data_db_user TEXT NOT NULL,
    data_db_password TEXT NOT NULL DEFAULT '',
    vector_collection TEXT,
    table_list TEXT,
    scope_filter TEXT,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_CREATE_USER_TENANTS_TABLE = """
CREATE TABLE IF NOT EXISTS user_tenants (
    user_id BIGINT NOT NULL,
    tenant_id BIGINT NOT NULL REFERENCES tenants (id),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, tenant_id)
);
"""


def parse_table_list(value: str | None) -> list[str]:
    """Split a comma-separated allow-list, dropping blanks and duplicates."""
    if not value:
        return []
    seen: list[str] = []
    for item in value.split(","):
        name = item.strip()
        if name and name not in seen:
            seen.append(name)
    return seen


class TenantDirectory:
    """Read tenant configuration and user membership from the core database."""

    def __init__(self, pool: asyncpg.Pool | None = None, default_port: int = 5432) -> None:
        self._pool = pool
        self._default_port = default_port

    async def initialize(self) -> None:
        self._ensure_pool()
        await self._pool.execute(_CREATE_TENANTS_TABLE)
        await self._pool.execute(_CREATE_USER_TENANTS_TABLE)

    async def is_member(self, user_id: int, tenant_id: int) -> bool:
        self._ensure_pool()
        row = await self._pool.fetchrow(
            "SELECT 1 FROM user_tenants WHERE user_id = $1 AND tenant_id = $2 LIMIT 1",
            user_id,
            tenant_id,
        )
        return row is not None

    async def get_tenant(self, tenant_id: int) -> TenantContext | None:
        self._ensure_pool()
        row = await self._pool.fetchrow(
            """
            SELECT id, slug, name, data_db_host, data_db_port, data_db_name,
                   data_db_user, data_db_password, vector_collection,
                   table_list, scope_filter
            FROM tenants
            WHERE id = $1 AND is_active
            """,
            tenant_id,
        )
        if row is None:
            return None
        return TenantContext(
            id=row["id"],
            slug=row["slug"],
            name=row["name"],
            data_db_host=row["data_db_host"],
            data_db_port=row["data_db_port"] or self._default_port,
            data_db_name=row["data_db_name"],
            data_db_user=row["data_db_user"],
            data_db_password=row["data_db_password"] or "",
            vector_collection=row["vector_collection"],
            table_allow_list=parse_table_list(row["table_list"]),
            scope_filter=(row["scope_filter"] or "").strip() or None,
        )

    def _ensure_pool(self) -> None:
        if self._pool is None:
            raise RuntimeError("TenantDirectory not initialized")
