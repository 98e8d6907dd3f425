"""Identity tokens: Fernet-encrypted JSON claims shared with the auth service."""

from __future__ import annotations

import json
import logging

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from askdata.models.errors import AuthError
from askdata.models.tenant import UserContext

logger = logging.getLogger(__name__)


class IdentityTokenCodec:
    """Issue and verify identity tokens carrying {userId, tenantId, role, email}."""

    def __init__(self, key: str | bytes | None, ttl_seconds: int = 86400) -> None:
        self._key = key
        self._ttl_seconds = ttl_seconds
        self._cipher: Fernet | None = None

    def issue(self, user: UserContext) -> str:
        claims = {
            "userId": user.user_id,
            "tenantId": user.tenant_id,
            "role": user.role,
            "email": user.email,
        }
        cipher = self._ensure_cipher()
        return cipher.encrypt(json.dumps(claims).encode("utf-8")).decode("utf-8")

    def verify(self, token: str | None) -> UserContext:
        """
        Decode a token into the caller identity.

        Raises:
            AuthError: If the token is missing, expired, tampered or malformed
        """
        if not token:
            raise AuthError("Unauthorized")
        cipher = self._ensure_cipher()
        try:
            raw = cipher.decrypt(token.encode("utf-8"), ttl=self._ttl_seconds)
        except InvalidToken as exc:
            logger.info("Rejected identity token (invalid or expired)")
            raise AuthError("Unauthorized") from exc
        try:
            claims = json.loads(raw)
            return UserContext(
                user_id=claims["userId"],
                tenant_id=claims["tenantId"],
                role=claims.get("role") or "USER",
                email=claims.get("email"),
            )
        except (ValueError, KeyError, TypeError, ValidationError) as exc:
            logger.warning("Identity token carried malformed claims")
            raise AuthError("Unauthorized") from exc

    def _ensure_cipher(self) -> Fernet:
        if self._cipher is not None:
            return self._cipher
        if not self._key:
            raise ValueError("AUTH_TOKEN_KEY must be set to verify identity tokens.")
        key = self._key
        if isinstance(key, str):
            key = key.encode("utf-8")
        try:
            self._cipher = Fernet(key)
        except (ValueError, TypeError) as exc:
            raise ValueError(
                "Invalid AUTH_TOKEN_KEY. Use a Fernet-compatible base64 key."
            ) from exc
        return self._cipher
