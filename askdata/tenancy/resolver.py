"""Resolve the caller and tenant before any persistence or LLM work."""

from __future__ import annotations

import logging

from askdata.models.errors import ForbiddenError, TenantNotFoundError
from askdata.models.tenant import RequestContext
from askdata.tenancy.directory import TenantDirectory
from askdata.tenancy.tokens import IdentityTokenCodec

logger = logging.getLogger(__name__)


def extract_token(authorization: str | None, cookie_token: str | None = None) -> str | None:
    """Take the bearer token from the Authorization header, else the cookie."""
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value.strip():
            return value.strip()
    return cookie_token or None


class TenantContextResolver:
    """Identity token -> membership check -> tenant configuration."""

    def __init__(self, codec: IdentityTokenCodec, directory: TenantDirectory) -> None:
        self.codec = codec
        self.directory = directory

    async def resolve(self, token: str | None) -> RequestContext:
        """
        Raises:
            AuthError: UNAUTHORIZED for a missing or invalid token
            ForbiddenError: FORBIDDEN when the user is not a tenant member
            TenantNotFoundError: TENANT_NOT_FOUND when the tenant is unknown or inactive
        """
        user = self.codec.verify(token)

        if not user.is_system_admin:
            try:
                is_member = await self.directory.is_member(user.user_id, user.tenant_id)
            except Exception as exc:
                logger.error(f"Tenant membership check failed: {exc}")
                raise ForbiddenError("Tenant access denied") from exc
            if not is_member:
                logger.info(
                    "Tenant access denied",
                    extra={"user_id": user.user_id, "tenant_id": user.tenant_id},
                )
                raise ForbiddenError("Tenant access denied")

        try:
            tenant = await self.directory.get_tenant(user.tenant_id)
        except Exception as exc:
            logger.error(f"Tenant lookup failed: {exc}")
            raise TenantNotFoundError("Tenant not found") from exc
        if tenant is None:
            raise TenantNotFoundError("Tenant not found")

        return RequestContext(user=user, tenant=tenant)
