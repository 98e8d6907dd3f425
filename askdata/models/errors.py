"""
Error Taxonomy

Every failure that reaches the client is an AskError carrying a stable
machine-readable code, a human message, and the HTTP status it maps to.
Once an event stream is open the status only travels in-band, inside the
terminal error event.
"""

from typing import Any


class AskError(Exception):
    """Base exception for client-visible failures."""

    code: str = "INTERNAL_SERVER_ERROR"
    http_status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        http_status: int | None = None,
        extra: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status
        self.extra = extra or {}

    def to_payload(self) -> dict[str, Any]:
        """Convert to the terminal error event body."""
        payload: dict[str, Any] = {
            "ok": False,
            "status": self.http_status,
            "code": self.code,
            "message": self.message,
        }
        payload.update(self.extra)
        return payload


class MethodNotAllowedError(AskError):
    code = "METHOD_NOT_ALLOWED"
    http_status = 405


class InvalidRequestError(AskError):
    code = "INVALID_REQUEST"
    http_status = 400


class AuthError(AskError):
    """Missing or invalid identity, or a user outside the tenant."""

    code = "UNAUTHORIZED"
    http_status = 401


class ForbiddenError(AuthError):
    code = "FORBIDDEN"
    http_status = 403


class TenantNotFoundError(AuthError):
    code = "TENANT_NOT_FOUND"
    http_status = 404


class ConversationNotFoundError(AskError):
    code = "CONVERSATION_NOT_FOUND"
    http_status = 404

    def __init__(self, conversation_id: int):
        super().__init__(
            "Conversation not found",
            extra={"conversationId": conversation_id},
        )
        self.conversation_id = conversation_id


class MessageNotFoundError(AskError):
    code = "MESSAGE_NOT_FOUND"
    http_status = 404

    def __init__(self, message_id: int):
        super().__init__("Message not found", extra={"messageId": message_id})
        self.message_id = message_id


class ConversationBusyError(AskError):
    """Raised when a turn arrives while another turn holds the conversation."""

    code = "CONVERSATION_BUSY"
    http_status = 409

    def __init__(self, conversation_id: int):
        super().__init__(
            "Another question is still being answered in this conversation",
            extra={"conversationId": conversation_id},
        )
        self.conversation_id = conversation_id


class SqlGuardError(AskError):
    """Generated SQL failed the read-only guard."""

    code = "SQL_EXECUTION_ERROR"
    http_status = 400

    NOT_READ_ONLY = "SQL_NOT_READ_ONLY"
    MULTIPLE_STATEMENTS = "SQL_MULTIPLE_STATEMENTS"
    COMMENTS_NOT_ALLOWED = "SQL_COMMENTS_NOT_ALLOWED"
    UNION_NOT_ALLOWED = "SQL_UNION_NOT_ALLOWED"
    LIMIT_REQUIRED = "SQL_LIMIT_REQUIRED"

    def __init__(self, guard_code: str, message: str):
        super().__init__(message, extra={"guardCode": guard_code})
        self.guard_code = guard_code
