"""Render tenant schemas as prompt text, cached per tenant."""

from __future__ import annotations

import logging
import time

from askdata.connectors.base import TableInfo
from askdata.database.registry import TenantPoolRegistry
from askdata.models.tenant import TenantContext

logger = logging.getLogger(__name__)


def render_schema(tables: list[TableInfo], allow_list: list[str] | None = None) -> str:
    """
    Render one block per table.

    Allow-list entries match either the bare table name or schema.table,
    case-insensitively. An empty allow-list keeps every table.
    """
    allowed = {name.lower() for name in (allow_list or [])}
    blocks: list[str] = []
    for table in tables:
        if allowed and not (
            table.table_name.lower() in allowed or table.qualified_name.lower() in allowed
        ):
            continue
        lines = [f"Table {table.qualified_name}"]
        for column in table.columns:
            parts = [f"- {column.name} {column.data_type}"]
            if column.is_primary_key:
                parts.append("[PK]")
            if column.foreign_table:
                parts.append(f"[FK -> {column.foreign_table}.{column.foreign_column}]")
            lines.append(" ".join(parts))
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


class SchemaDescriber:
    """getSchema(tenant) -> text, introspected through the tenant's pool."""

    def __init__(
        self,
        registry: TenantPoolRegistry,
        ttl_seconds: int = 300,
        schema_name: str = "public",
    ) -> None:
        self._registry = registry
        self._ttl_seconds = ttl_seconds
        self._schema_name = schema_name
        self._cache: dict[int, tuple[float, str]] = {}

    async def get_schema(self, tenant: TenantContext) -> str:
        cached = self._cache.get(tenant.id)
        if cached and self._ttl_seconds > 0 and time.monotonic() - cached[0] < self._ttl_seconds:
            return cached[1]

        connector = await self._registry.get(tenant)
        tables = await connector.get_schema(schema_name=self._schema_name)
        schema_text = render_schema(tables, tenant.table_allow_list)

        if self._ttl_seconds > 0:
            self._cache[tenant.id] = (time.monotonic(), schema_text)
        logger.debug(
            "Schema described",
            extra={"tenant_id": tenant.id, "tables": len(tables), "chars": len(schema_text)},
        )
        return schema_text

    def invalidate(self, tenant_id: int | None = None) -> None:
        if tenant_id is None:
            self._cache.clear()
        else:
            self._cache.pop(tenant_id, None)
