"""
Chat Routes

The streaming ask endpoint plus the read endpoints a chat client needs:
conversation list, message history, per-conversation stats, answer
feedback and token usage.
"""

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from askdata.api.sse import SSEStream
from askdata.models.chat import FeedbackRequest, StoredMessage
from askdata.models.errors import (
    ConversationNotFoundError,
    MessageNotFoundError,
    MethodNotAllowedError,
)
from askdata.models.tenant import RequestContext
from askdata.tenancy.resolver import extract_token

logger = logging.getLogger(__name__)

router = APIRouter()

TOKEN_COOKIE = "token"
STATS_LIMIT = 10

# Turns keep running after the client disconnects; hold a reference until done.
_running_turns: set[asyncio.Task] = set()


def _app_state() -> dict[str, Any]:
    from askdata.api.main import app_state

    return app_state


def _request_token(request: Request) -> str | None:
    return extract_token(
        request.headers.get("authorization"), request.cookies.get(TOKEN_COOKIE)
    )


def _require(component: str) -> Any:
    value = _app_state().get(component)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{component} not initialized",
        )
    return value


async def get_request_context(request: Request) -> RequestContext:
    resolver = _require("resolver")
    return await resolver.resolve(_request_token(request))


@router.api_route("/chat/ask", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def ask(request: Request):
    """
    Answer one question as a text/event-stream.

    Events: status, progress, then exactly one of final or error.
    """
    stream = SSEStream()

    if request.method != "POST":
        error = MethodNotAllowedError("Method not allowed")
        stream.close_with("error", error.to_payload(), error.http_status)
        return stream.response()

    pipeline = _app_state().get("pipeline")
    if pipeline is None:
        stream.stream_error(500, "INTERNAL_SERVER_ERROR", "Chat pipeline not initialized")
        return stream.response()

    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        body = None

    token = _request_token(request)
    task = asyncio.create_task(pipeline.handle_ask(token, body, stream))
    _running_turns.add(task)
    task.add_done_callback(_running_turns.discard)

    return stream.response()


@router.get("/chat/conversations")
async def list_conversations(
    limit: int = Query(default=50, ge=1, le=200),
    ctx: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    store = _require("store")
    rows = await store.list_conversations(
        tenant_id=ctx.user.tenant_id, user_id=ctx.user.user_id, limit=limit
    )
    return {
        "conversations": [
            {
                "id": row["id"],
                "title": row["title"],
                "status": row["status"],
                "createdAt": row["created_at"],
                "updatedAt": row["updated_at"],
                "lastMessage": row["last_message"],
            }
            for row in rows
        ]
    }


@router.get("/chat/conversations/{conversation_id}/messages")
async def list_messages(
    conversation_id: int,
    ctx: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    store = _require("store")
    exists = await store.conversation_exists(
        conversation_id=conversation_id,
        tenant_id=ctx.user.tenant_id,
        user_id=ctx.user.user_id,
    )
    if not exists:
        raise ConversationNotFoundError(conversation_id)

    messages = await store.list_messages(
        conversation_id=conversation_id, tenant_id=ctx.user.tenant_id
    )
    return {
        "conversationId": conversation_id,
        "messages": [StoredMessage.model_validate(m).to_wire() for m in messages],
    }


@router.get("/chat/conversations/{conversation_id}/stats")
async def conversation_stats(
    conversation_id: int,
    ctx: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    """Last ten SQL statements and token usage rows, newest first."""
    store = _require("store")
    exists = await store.conversation_exists(
        conversation_id=conversation_id,
        tenant_id=ctx.user.tenant_id,
        user_id=ctx.user.user_id,
    )
    if not exists:
        raise ConversationNotFoundError(conversation_id)

    sql_queries = await store.recent_sql_queries(
        conversation_id=conversation_id, tenant_id=ctx.user.tenant_id, limit=STATS_LIMIT
    )
    token_usage = await store.recent_token_usage(
        conversation_id=conversation_id, tenant_id=ctx.user.tenant_id, limit=STATS_LIMIT
    )
    return {
        "conversationId": conversation_id,
        "sqlQueries": [
            {
                "id": row["id"],
                "sqlText": row["sql_text"],
                "status": row["status"],
                "rowsReturned": row["rows_returned"],
                "errorMessage": row["error_message"],
                "durationMs": row["duration_ms"],
                "createdAt": row["created_at"],
            }
            for row in sql_queries
        ],
        "tokenUsage": [
            {
                "id": row["id"],
                "model": row["model"],
                "promptTokens": row["prompt_tokens"],
                "completionTokens": row["completion_tokens"],
                "totalTokens": row["total_tokens"],
                "createdAt": row["created_at"],
            }
            for row in token_usage
        ],
    }


@router.post("/chat/feedback")
async def submit_feedback(
    feedback: FeedbackRequest,
    ctx: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    store = _require("store")
    feedback_store = _require("feedback_store")

    exists = await store.conversation_exists(
        conversation_id=feedback.conversation_id,
        tenant_id=ctx.user.tenant_id,
        user_id=ctx.user.user_id,
    )
    if not exists:
        raise ConversationNotFoundError(feedback.conversation_id)

    owned_message = await store.message_in_conversation(
        message_id=feedback.message_id,
        conversation_id=feedback.conversation_id,
        tenant_id=ctx.user.tenant_id,
    )
    if not owned_message:
        raise MessageNotFoundError(feedback.message_id)

    await feedback_store.upsert_feedback(
        user_id=ctx.user.user_id,
        tenant_id=ctx.user.tenant_id,
        conversation_id=feedback.conversation_id,
        message_id=feedback.message_id,
        rating=feedback.rating,
        reason=feedback.reason,
    )
    logger.info(
        "Feedback recorded",
        extra={"message_id": feedback.message_id, "rating": feedback.rating},
    )
    return {"ok": True}


@router.get("/chat/usage")
async def usage(ctx: RequestContext = Depends(get_request_context)) -> dict[str, Any]:
    store = _require("store")
    summary = await store.usage_summary(
        tenant_id=ctx.user.tenant_id, user_id=ctx.user.user_id, days=30
    )
    return {
        "lifetimeTotalTokens": summary["lifetime_total"],
        "monthTotalTokens": summary["month_total"],
        "weekTotalTokens": summary["week_total"],
        "daily": [
            {"date": day["date"], "totalTokens": day["total_tokens"]} for day in summary["daily"]
        ],
    }
