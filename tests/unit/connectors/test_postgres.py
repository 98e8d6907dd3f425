"""
Unit tests for PostgresConnector.

Tests the PostgreSQL connector with mocked asyncpg connections.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import asyncpg
import pytest

from askdata.connectors.base import ConnectionError, QueryError, SchemaError
from askdata.connectors.postgres import PostgresConnector


@pytest.fixture
def postgres_config():
    """Tenant warehouse connection configuration."""
    return {
        "host": "warehouse.internal",
        "port": 5432,
        "database": "acme",
        "user": "readonly",
        "password": "testpass",
        "pool_size": 3,
        "timeout": 30,
    }


@pytest.fixture
def mock_pool():
    """Mock asyncpg connection pool."""
    pool = AsyncMock()

    conn = AsyncMock()
    conn.fetchval = AsyncMock(return_value="PostgreSQL 16.2, compiled by gcc")
    conn.fetch = AsyncMock(return_value=[])
    conn.execute = AsyncMock()
    conn.transaction = MagicMock()
    conn.transaction.return_value.__aenter__ = AsyncMock(return_value=None)
    conn.transaction.return_value.__aexit__ = AsyncMock(return_value=False)

    pool.acquire = MagicMock()
    pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
    pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)
    pool.close = AsyncMock()

    return pool, conn


def prepared_statement(columns, records):
    statement = MagicMock()
    statement.fetch = AsyncMock(return_value=records)
    statement.get_attributes = MagicMock(
        return_value=[SimpleNamespace(name=column) for column in columns]
    )
    return statement


class TestConnection:
    """Test connection management."""

    def test_repr(self, postgres_config):
        connector = PostgresConnector(**postgres_config)

        assert "readonly@warehouse.internal:5432/acme" in repr(connector)
        assert connector.is_connected is False

    @pytest.mark.asyncio
    async def test_connect_success(self, postgres_config, mock_pool):
        pool, _ = mock_pool

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)) as create_pool:
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            await connector.connect()

        assert connector.is_connected
        create_pool.assert_awaited_once()
        kwargs = create_pool.call_args.kwargs
        assert kwargs["max_size"] == 3
        assert kwargs["command_timeout"] == 30

    @pytest.mark.asyncio
    async def test_connect_failure(self, postgres_config):
        with patch(
            "asyncpg.create_pool",
            new=AsyncMock(side_effect=asyncpg.PostgresError("Connection refused")),
        ):
            connector = PostgresConnector(**postgres_config)
            with pytest.raises(ConnectionError, match="Failed to connect"):
                await connector.connect()

        assert connector.is_connected is False

    @pytest.mark.asyncio
    async def test_close(self, postgres_config, mock_pool):
        pool, _ = mock_pool

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            await connector.close()
            await connector.close()

        pool.close.assert_awaited_once()
        assert connector.is_connected is False


class TestExecute:
    """Test query execution."""

    @pytest.mark.asyncio
    async def test_execute_returns_rows_and_columns(self, postgres_config, mock_pool):
        pool, conn = mock_pool
        conn.prepare = AsyncMock(
            return_value=prepared_statement(
                ["store_id", "orders"], [{"store_id": 12, "orders": 40}]
            )
        )

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            result = await connector.execute("SELECT store_id, COUNT(*) AS orders FROM orders LIMIT 20")

        assert result.rows == [{"store_id": 12, "orders": 40}]
        assert result.row_count == 1
        assert result.columns == ["store_id", "orders"]
        conn.transaction.assert_called_once_with(readonly=True)
        conn.execute.assert_awaited_with("SET LOCAL statement_timeout = 30000")

    @pytest.mark.asyncio
    async def test_empty_result_keeps_columns(self, postgres_config, mock_pool):
        pool, conn = mock_pool
        conn.prepare = AsyncMock(return_value=prepared_statement(["id"], []))

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            result = await connector.execute("SELECT id FROM orders WHERE false LIMIT 1")

        assert result.row_count == 0
        assert result.columns == ["id"]

    @pytest.mark.asyncio
    async def test_execute_not_connected(self, postgres_config):
        connector = PostgresConnector(**postgres_config)

        with pytest.raises(ConnectionError, match="Not connected"):
            await connector.execute("SELECT 1")

    @pytest.mark.asyncio
    async def test_query_timeout(self, postgres_config, mock_pool):
        from asyncpg.exceptions import QueryCanceledError

        pool, conn = mock_pool
        conn.prepare = AsyncMock(side_effect=QueryCanceledError("Timeout"))

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            with pytest.raises(QueryError, match="timeout"):
                await connector.execute("SELECT pg_sleep(60)", timeout=1)

    @pytest.mark.asyncio
    async def test_query_error(self, postgres_config, mock_pool):
        from asyncpg.exceptions import UndefinedTableError

        pool, conn = mock_pool
        conn.prepare = AsyncMock(side_effect=UndefinedTableError('relation "nope" does not exist'))

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            with pytest.raises(QueryError, match="Query execution failed"):
                await connector.execute("SELECT * FROM nope LIMIT 1")

    @pytest.mark.asyncio
    async def test_write_inside_read_only_transaction_fails(self, postgres_config, mock_pool):
        from asyncpg.exceptions import ReadOnlySQLTransactionError

        pool, conn = mock_pool
        statement = prepared_statement(["id"], [])
        statement.fetch = AsyncMock(
            side_effect=ReadOnlySQLTransactionError(
                "cannot execute SELECT INTO in a read-only transaction"
            )
        )
        conn.prepare = AsyncMock(return_value=statement)

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            with pytest.raises(QueryError, match="read-only transaction"):
                await connector.execute("SELECT * INTO copy FROM orders LIMIT 10")

        conn.transaction.assert_called_once_with(readonly=True)
        conn.transaction.return_value.__aexit__.assert_awaited_once()


class TestSchemaIntrospection:
    """Test schema introspection."""

    @pytest.mark.asyncio
    async def test_get_schema(self, postgres_config, mock_pool):
        pool, conn = mock_pool
        conn.fetch = AsyncMock(
            side_effect=[
                [{"table_schema": "public", "table_name": "orders", "table_type": "BASE TABLE"}],
                [
                    {"table_name": "orders", "column_name": "id", "data_type": "integer", "is_nullable": "NO"},
                    {"table_name": "orders", "column_name": "store_id", "data_type": "integer", "is_nullable": "YES"},
                ],
                [{"table_name": "orders", "column_name": "id"}],
                [
                    {
                        "table_name": "orders",
                        "column_name": "store_id",
                        "foreign_table_name": "stores",
                        "foreign_column_name": "id",
                    }
                ],
            ]
        )

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            [table] = await connector.get_schema()

        assert table.qualified_name == "public.orders"
        id_column, store_column = table.columns
        assert id_column.is_primary_key and not id_column.is_nullable
        assert store_column.foreign_table == "stores"
        assert store_column.foreign_column == "id"

    @pytest.mark.asyncio
    async def test_get_schema_error(self, postgres_config, mock_pool):
        pool, conn = mock_pool
        conn.fetch = AsyncMock(side_effect=asyncpg.PostgresError("Schema error"))

        with patch("asyncpg.create_pool", new=AsyncMock(return_value=pool)):
            connector = PostgresConnector(**postgres_config)
            await connector.connect()
            with pytest.raises(SchemaError):
                await connector.get_schema("public")
