"""Caller identity and tenant resolution."""

from askdata.tenancy.directory import TenantDirectory, parse_table_list
from askdata.tenancy.resolver import TenantContextResolver, extract_token
from askdata.tenancy.tokens import IdentityTokenCodec

__all__ = [
    "IdentityTokenCodec",
    "TenantContextResolver",
    "TenantDirectory",
    "extract_token",
    "parse_table_list",
]
