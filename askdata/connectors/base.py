"""
Tenant Data Connector Interface

A connector owns one pool against one tenant's data database. The pipeline
only ever needs four things from it: open the pool, run a read-only
statement, describe the tables, and close the pool at shutdown.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ConnectorError(Exception):
    """Base exception for tenant data connector failures."""


class ConnectionError(ConnectorError):
    """The pool could not be opened, or was used before connect()."""


class QueryError(ConnectorError):
    """A statement failed or timed out in the tenant database."""


class SchemaError(ConnectorError):
    """information_schema could not be read."""


class ColumnInfo(BaseModel):
    """One column as rendered into the translator's schema text."""

    name: str
    data_type: str
    is_nullable: bool = True
    is_primary_key: bool = False
    foreign_table: str | None = Field(None, description="Referenced table when the column is a FK")
    foreign_column: str | None = Field(None, description="Referenced column when the column is a FK")


class TableInfo(BaseModel):
    """A table or view in the tenant database."""

    schema_name: str = Field(..., alias="schema")
    table_name: str
    columns: list[ColumnInfo]
    table_type: str = "TABLE"

    model_config = ConfigDict(populate_by_name=True)

    @property
    def qualified_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"


class QueryResult(BaseModel):
    """Rows from one executed statement."""

    rows: list[dict[str, Any]]
    row_count: int
    columns: list[str] = Field(..., description="Column names, present even for empty results")
    execution_time_ms: float


class BaseConnector(ABC):
    """
    Pooled async connection to a tenant data database.

    Usage:
        connector = PostgresConnector(host="warehouse", port=5432, ...)
        await connector.connect()
        result = await connector.execute("SELECT * FROM (SELECT 1) AS t LIMIT 1")
        await connector.close()
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        pool_size: int = 5,
        timeout: int = 30,
        **kwargs,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.pool_size = pool_size
        self.timeout = timeout
        self.kwargs = kwargs

        self._pool = None
        self._connected = False

    @abstractmethod
    async def connect(self) -> None:
        """Open the pool. Calling it again on a connected instance is a no-op."""

    @abstractmethod
    async def execute(
        self,
        query: str,
        params: list[Any] | None = None,
        timeout: int | None = None,
    ) -> QueryResult:
        """
        Raises:
            QueryError: If the statement fails or times out
            ConnectionError: If connect() has not been called
        """

    @abstractmethod
    async def get_schema(self, schema_name: str | None = None) -> list[TableInfo]:
        """
        Raises:
            SchemaError: If introspection fails
        """

    @abstractmethod
    async def close(self) -> None:
        """Close the pool. Safe to call more than once."""

    @property
    def is_connected(self) -> bool:
        return self._connected

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"<{self.__class__.__name__} {self.user}@{self.host}:{self.port}/{self.database} ({status})>"
