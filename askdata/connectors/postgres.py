"""
PostgreSQL Connector

asyncpg pool against one tenant's data database. Statements run through a
prepared statement so column names survive empty results. Each one runs in
a read-only transaction that sets a local statement_timeout first.

Usage:
    connector = PostgresConnector(
        host="warehouse.internal",
        port=5432,
        database="acme",
        user="readonly",
        password="secret",
    )
    await connector.connect()
    result = await connector.execute("SELECT * FROM (SELECT 1 AS n) AS q LIMIT 20")
"""

import logging
import time
from typing import Any

import asyncpg

from askdata.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    QueryError,
    QueryResult,
    SchemaError,
    TableInfo,
)

logger = logging.getLogger(__name__)

_TABLES_QUERY = """
    SELECT table_schema, table_name, table_type
    FROM information_schema.tables
    WHERE table_schema = $1
    AND table_type IN ('BASE TABLE', 'VIEW')
    ORDER BY table_name
"""

_COLUMNS_QUERY = """
    SELECT table_name, column_name, data_type, is_nullable
    FROM information_schema.columns
    WHERE table_schema = $1
    ORDER BY table_name, ordinal_position
"""

_PRIMARY_KEYS_QUERY = """
    SELECT kcu.table_name, kcu.column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    WHERE tc.constraint_type = 'PRIMARY KEY'
    AND tc.table_schema = $1
"""

_FOREIGN_KEYS_QUERY = """
    SELECT
        kcu.table_name,
        kcu.column_name,
        ccu.table_name AS foreign_table_name,
        ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
        ON tc.constraint_name = kcu.constraint_name
        AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
        ON ccu.constraint_name = tc.constraint_name
        AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY'
    AND tc.table_schema = $1
"""


class PostgresConnector(BaseConnector):
    async def connect(self) -> None:
        """
        Raises:
            ConnectionError: If the pool cannot be created or the server is unreachable
        """
        if self._connected and self._pool:
            return

        logger.info(f"Opening pool to {self.host}:{self.port}/{self.database}")
        try:
            self._pool = await asyncpg.create_pool(
                host=self.host,
                port=self.port,
                database=self.database,
                user=self.user,
                password=self.password,
                min_size=1,
                max_size=self.pool_size,
                command_timeout=self.timeout,
                **self.kwargs,
            )
            async with self._pool.acquire() as conn:
                server_version = await conn.fetchval("SELECT version()")
        except asyncpg.PostgresError as e:
            logger.error(f"PostgreSQL connection failed: {e}")
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e
        except OSError as e:
            logger.error(f"PostgreSQL unreachable: {e}")
            raise ConnectionError(f"Failed to connect to PostgreSQL: {e}") from e

        self._connected = True
        logger.info(f"Pool ready ({str(server_version).split(',')[0]})")

    def _require_pool(self) -> asyncpg.Pool:
        if not self._connected or not self._pool:
            raise ConnectionError("Not connected to database. Call connect() first.")
        return self._pool

    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
    ) -> QueryResult:
        """
        Raises:
            QueryError: If the statement fails or exceeds the timeout
            ConnectionError: If not connected
        """
        pool = self._require_pool()
        limit_seconds = timeout or self.timeout
        started = time.perf_counter()

        try:
            async with pool.acquire() as conn:
                async with conn.transaction(readonly=True):
                    await conn.execute(
                        f"SET LOCAL statement_timeout = {int(limit_seconds * 1000)}"
                    )
                    statement = await conn.prepare(query)
                    records = await statement.fetch(*(params or []))
                    columns = [attribute.name for attribute in statement.get_attributes()]
        except asyncpg.QueryCanceledError as e:
            logger.warning(f"Statement cancelled after {limit_seconds}s")
            raise QueryError(f"Query timeout ({limit_seconds}s)") from e
        except asyncpg.PostgresError as e:
            logger.warning(f"Statement failed: {e}")
            raise QueryError(f"Query execution failed: {e}") from e

        rows = [dict(record) for record in records]
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.debug(f"{len(rows)} rows in {elapsed_ms:.1f}ms")
        return QueryResult(
            rows=rows,
            row_count=len(rows),
            columns=columns,
            execution_time_ms=elapsed_ms,
        )

    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        """
        Raises:
            SchemaError: If introspection fails
            ConnectionError: If not connected
        """
        pool = self._require_pool()
        schema_filter = schema_name or "public"

        try:
            async with pool.acquire() as conn:
                tables = await conn.fetch(_TABLES_QUERY, schema_filter)
                columns = await conn.fetch(_COLUMNS_QUERY, schema_filter)
                primary_keys = await conn.fetch(_PRIMARY_KEYS_QUERY, schema_filter)
                foreign_keys = await conn.fetch(_FOREIGN_KEYS_QUERY, schema_filter)
        except asyncpg.PostgresError as e:
            logger.error(f"Schema introspection failed for '{schema_filter}': {e}")
            raise SchemaError(f"Failed to introspect schema: {e}") from e

        pk_columns = {(row["table_name"], row["column_name"]) for row in primary_keys}
        fk_targets = {
            (row["table_name"], row["column_name"]): (
                row["foreign_table_name"],
                row["foreign_column_name"],
            )
            for row in foreign_keys
        }

        columns_by_table: dict[str, list[ColumnInfo]] = {}
        for col in columns:
            key = (col["table_name"], col["column_name"])
            target = fk_targets.get(key)
            columns_by_table.setdefault(col["table_name"], []).append(
                ColumnInfo(
                    name=col["column_name"],
                    data_type=col["data_type"],
                    is_nullable=col["is_nullable"] == "YES",
                    is_primary_key=key in pk_columns,
                    foreign_table=target[0] if target else None,
                    foreign_column=target[1] if target else None,
                )
            )

        described = [
            TableInfo(
                schema=row["table_schema"],
                table_name=row["table_name"],
                columns=columns_by_table.get(row["table_name"], []),
                table_type=row["table_type"],
            )
            for row in tables
        ]
        logger.info(f"Described {len(described)} tables in '{schema_filter}'")
        return described

    async def close(self) -> None:
        if not self._pool:
            return
        pool, self._pool = self._pool, None
        self._connected = False
        await pool.close()
        logger.info(f"Pool to {self.host}/{self.database} closed")
