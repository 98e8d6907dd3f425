"""Database connectors for tenant data warehouses."""

from askdata.connectors.base import (
    BaseConnector,
    ColumnInfo,
    ConnectionError,
    ConnectorError,
    QueryError,
    QueryResult,
    SchemaError,
    TableInfo,
)
from askdata.connectors.postgres import PostgresConnector

__all__ = [
    "BaseConnector",
    "ColumnInfo",
    "ConnectionError",
    "ConnectorError",
    "QueryError",
    "QueryResult",
    "SchemaError",
    "TableInfo",
    "PostgresConnector",
]
