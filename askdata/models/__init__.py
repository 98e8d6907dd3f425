"""
Data Models

Pydantic models for requests, answer payloads, tenancy and errors.
"""

from askdata.models.chat import (
    ANSWER_PAYLOAD_VERSION,
    AnswerMeta,
    AnswerPayload,
    AskRequest,
    ChartSpec,
    DownloadEntry,
    FeedbackRequest,
    RagMeta,
    RagSource,
    SqlQueryRecord,
    StoredMessage,
    TableBlock,
    TokensMeta,
    TokenUsage,
)
from askdata.models.errors import (
    AskError,
    AuthError,
    ConversationBusyError,
    ConversationNotFoundError,
    ForbiddenError,
    InvalidRequestError,
    MessageNotFoundError,
    MethodNotAllowedError,
    SqlGuardError,
    TenantNotFoundError,
)
from askdata.models.tenant import RequestContext, TenantContext, UserContext

__all__ = [
    "ANSWER_PAYLOAD_VERSION",
    "AnswerMeta",
    "AnswerPayload",
    "AskRequest",
    "ChartSpec",
    "DownloadEntry",
    "FeedbackRequest",
    "RagMeta",
    "RagSource",
    "SqlQueryRecord",
    "StoredMessage",
    "TableBlock",
    "TokensMeta",
    "TokenUsage",
    "AskError",
    "AuthError",
    "ConversationBusyError",
    "ConversationNotFoundError",
    "ForbiddenError",
    "InvalidRequestError",
    "MessageNotFoundError",
    "MethodNotAllowedError",
    "SqlGuardError",
    "TenantNotFoundError",
    "RequestContext",
    "TenantContext",
    "UserContext",
]
