"""Tenant-keyed registry of long-lived data database connectors."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from askdata.connectors.base import BaseConnector
from askdata.connectors.postgres import PostgresConnector
from askdata.models.tenant import TenantContext

logger = logging.getLogger(__name__)

ConnectorFactory = Callable[[TenantContext], BaseConnector]


class TenantPoolRegistry:
    """
    One connector (and therefore one pool) per tenant id.

    Connectors are created lazily on first use and reused for the life of
    the process. Creation is serialized so two concurrent first requests for
    the same tenant never open two pools.
    """

    def __init__(
        self,
        pool_size: int = 5,
        statement_timeout: int = 30,
        connector_factory: ConnectorFactory | None = None,
    ) -> None:
        self._pool_size = pool_size
        self._statement_timeout = statement_timeout
        self._connector_factory = connector_factory or self._build_postgres_connector
        self._connectors: dict[int, BaseConnector] = {}
        self._lock = asyncio.Lock()

    async def get(self, tenant: TenantContext) -> BaseConnector:
        connector = self._connectors.get(tenant.id)
        if connector is not None:
            return connector

        async with self._lock:
            connector = self._connectors.get(tenant.id)
            if connector is None:
                connector = self._connector_factory(tenant)
                await connector.connect()
                self._connectors[tenant.id] = connector
                logger.info(
                    "Opened tenant data pool",
                    extra={"tenant_id": tenant.id, "database": tenant.data_db_name},
                )
        return connector

    def __contains__(self, tenant_id: int) -> bool:
        return tenant_id in self._connectors

    def __len__(self) -> int:
        return len(self._connectors)

    async def close(self) -> None:
        """Close every tenant pool. Only called at process shutdown."""
        connectors = list(self._connectors.items())
        self._connectors.clear()
        for tenant_id, connector in connectors:
            try:
                await connector.close()
            except Exception as e:
                logger.error(f"Error closing pool for tenant {tenant_id}: {e}")

    def _build_postgres_connector(self, tenant: TenantContext) -> PostgresConnector:
        return PostgresConnector(
            host=tenant.data_db_host,
            port=tenant.data_db_port,
            database=tenant.data_db_name,
            user=tenant.data_db_user,
            password=tenant.data_db_password.get_secret_value(),
            pool_size=self._pool_size,
            timeout=self._statement_timeout,
        )
