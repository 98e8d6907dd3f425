"""Tenant data database pools and schema description."""

from askdata.database.registry import TenantPoolRegistry
from askdata.database.schema import SchemaDescriber, render_schema

__all__ = ["SchemaDescriber", "TenantPoolRegistry", "render_schema"]
