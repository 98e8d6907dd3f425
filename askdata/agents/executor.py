"""
Scoped SQL Executor

Guards, scopes and runs one generated statement against the tenant's data
database. Every attempt, accepted or rejected, leaves one SqlQueryRecord
behind before the caller decides whether the turn continues.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from fastapi.encoders import jsonable_encoder

from askdata.agents.validator import apply_scope, assert_read_only
from askdata.database.registry import TenantPoolRegistry
from askdata.models.chat import SqlQueryRecord
from askdata.models.errors import SqlGuardError
from askdata.models.tenant import TenantContext, UserContext

logger = logging.getLogger(__name__)


@dataclass
class ExecutionResult:
    """Outcome of one attempt. ok=False means the turn ends with SQL_EXECUTION_ERROR."""

    ok: bool
    sql: str
    columns: list[str] = field(default_factory=list)
    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    duration_ms: int = 0
    error: str | None = None
    guard_code: str | None = None
    sql_query_id: int | None = None


class ScopedSQLExecutor:
    """
    Run generated SQL inside the tenant's row scope.

    Args:
        registry: Tenant-keyed connector registry
        store: Core store used to persist the SqlQueryRecord
    """

    def __init__(self, registry: TenantPoolRegistry, store: Any) -> None:
        self.registry = registry
        self.store = store

    async def execute(
        self,
        *,
        sql: str,
        user: UserContext,
        tenant: TenantContext,
        conversation_id: int,
        message_id: int | None,
    ) -> ExecutionResult:
        start_time = time.perf_counter()

        try:
            statement = assert_read_only(sql)
        except SqlGuardError as e:
            logger.warning(
                f"Generated SQL rejected: {e.message}",
                extra={"guard_code": e.guard_code, "conversation_id": conversation_id},
            )
            result = ExecutionResult(
                ok=False, sql=sql, error=e.message, guard_code=e.guard_code
            )
            return await self._record(result, user, tenant, conversation_id, message_id)

        scoped_sql = apply_scope(statement, tenant.scope_filter)

        try:
            connector = await self.registry.get(tenant)
            query_result = await connector.execute(scoped_sql)
        except Exception as e:
            duration_ms = int((time.perf_counter() - start_time) * 1000)
            logger.error(
                f"SQL execution failed: {e}",
                extra={"tenant_id": tenant.id, "conversation_id": conversation_id},
            )
            result = ExecutionResult(
                ok=False, sql=scoped_sql, error=str(e), duration_ms=duration_ms
            )
            return await self._record(result, user, tenant, conversation_id, message_id)

        duration_ms = int((time.perf_counter() - start_time) * 1000)
        rows = jsonable_encoder(query_result.rows)
        columns = list(query_result.columns) or (list(rows[0].keys()) if rows else [])

        logger.info(
            "SQL executed",
            extra={
                "tenant_id": tenant.id,
                "conversation_id": conversation_id,
                "row_count": query_result.row_count,
                "duration_ms": duration_ms,
            },
        )
        result = ExecutionResult(
            ok=True,
            sql=scoped_sql,
            columns=columns,
            rows=rows,
            row_count=len(rows),
            duration_ms=duration_ms,
        )
        return await self._record(result, user, tenant, conversation_id, message_id)

    async def _record(
        self,
        result: ExecutionResult,
        user: UserContext,
        tenant: TenantContext,
        conversation_id: int,
        message_id: int | None,
    ) -> ExecutionResult:
        record = SqlQueryRecord(
            tenant_id=tenant.id,
            user_id=user.user_id,
            conversation_id=conversation_id,
            message_id=message_id,
            sql_text=result.sql,
            status="success" if result.ok else "error",
            rows_returned=result.row_count,
            error_message=result.error,
            duration_ms=result.duration_ms,
        )
        result.sql_query_id = await self.store.record_sql_query(record)
        return result
