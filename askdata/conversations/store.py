"""Core store: conversations, messages, audit rows, usage and telemetry."""

from __future__ import annotations

import json
import logging
from datetime import date
from typing import Any

import asyncpg

from askdata.models.chat import SqlQueryRecord, TokenUsage

logger = logging.getLogger(__name__)

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id BIGSERIAL PRIMARY KEY,
        tenant_id BIGINT NOT NULL,
        user_id BIGINT NOT NULL,
        title TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'active',
        conversation_summary TEXT,
        summary_updated_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS conversations_owner_idx
    ON conversations (tenant_id, user_id, updated_at DESC);
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id BIGSERIAL PRIMARY KEY,
        tenant_id BIGINT NOT NULL,
        conversation_id BIGINT NOT NULL REFERENCES conversations (id),
        role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
        content TEXT NOT NULL,
        answer_payload JSONB,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS messages_conversation_idx
    ON messages (tenant_id, conversation_id, created_at, id);
    """,
    """
    CREATE TABLE IF NOT EXISTS sql_queries (
        id BIGSERIAL PRIMARY KEY,
        tenant_id BIGINT NOT NULL,
        conversation_id BIGINT NOT NULL,
        message_id BIGINT,
        user_id BIGINT NOT NULL,
        sql_text TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('success', 'error')),
        rows_returned INTEGER NOT NULL DEFAULT 0,
        error_message TEXT,
        duration_ms INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS token_usage (
        id BIGSERIAL PRIMARY KEY,
        tenant_id BIGINT NOT NULL,
        conversation_id BIGINT NOT NULL,
        message_id BIGINT NOT NULL,
        user_id BIGINT NOT NULL,
        model TEXT NOT NULL,
        prompt_tokens INTEGER NOT NULL DEFAULT 0,
        completion_tokens INTEGER NOT NULL DEFAULT 0,
        total_tokens INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS token_usage_owner_idx
    ON token_usage (tenant_id, user_id, created_at);
    """,
    """
    CREATE TABLE IF NOT EXISTS query_logs (
        id BIGSERIAL PRIMARY KEY,
        tenant_id BIGINT NOT NULL,
        user_id BIGINT NOT NULL,
        conversation_id BIGINT NOT NULL,
        question TEXT NOT NULL,
        answer_summary TEXT,
        sql_query TEXT,
        used_rag BOOLEAN NOT NULL DEFAULT FALSE,
        model TEXT,
        prompt_tokens INTEGER NOT NULL DEFAULT 0,
        completion_tokens INTEGER NOT NULL DEFAULT 0,
        total_tokens INTEGER NOT NULL DEFAULT 0,
        latency_ms INTEGER NOT NULL DEFAULT 0,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS query_sources (
        id BIGSERIAL PRIMARY KEY,
        tenant_id BIGINT NOT NULL,
        query_log_id BIGINT NOT NULL REFERENCES query_logs (id),
        source_type TEXT,
        title TEXT,
        table_name TEXT,
        similarity_score DOUBLE PRECISION,
        source_rank INTEGER NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_long_term_memory (
        user_id BIGINT NOT NULL,
        tenant_id BIGINT NOT NULL,
        memory_summary TEXT,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (user_id, tenant_id)
    );
    """,
)


async def create_core_pool(url: str, min_size: int = 1, max_size: int = 10) -> asyncpg.Pool:
    """Create the shared asyncpg pool for the core database."""
    return await asyncpg.create_pool(
        dsn=normalize_postgres_url(url), min_size=min_size, max_size=max_size
    )


def normalize_postgres_url(url: str) -> str:
    if url.startswith("postgresql+asyncpg://"):
        return "postgresql://" + url[len("postgresql+asyncpg://") :]
    return url


class CoreStore:
    """
    Persist conversations and everything a turn writes.

    Every read filters by tenant_id in addition to the natural key.
    """

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        self._pool = pool

    async def initialize(self) -> None:
        self._ensure_pool()
        for statement in _SCHEMA_STATEMENTS:
            await self._pool.execute(statement)

    async def ping(self) -> bool:
        self._ensure_pool()
        return await self._pool.fetchval("SELECT 1") == 1

    # ------------------------------------------------------------------
    # Conversations and messages
    # ------------------------------------------------------------------

    async def create_conversation(self, *, tenant_id: int, user_id: int, title: str) -> int:
        self._ensure_pool()
        return await self._pool.fetchval(
            "INSERT INTO conversations (tenant_id, user_id, title) VALUES ($1, $2, $3) RETURNING id",
            tenant_id,
            user_id,
            title,
        )

    async def conversation_exists(
        self, *, conversation_id: int, tenant_id: int, user_id: int
    ) -> bool:
        self._ensure_pool()
        row = await self._pool.fetchrow(
            "SELECT 1 FROM conversations WHERE id = $1 AND tenant_id = $2 AND user_id = $3",
            conversation_id,
            tenant_id,
            user_id,
        )
        return row is not None

    async def add_message(
        self,
        *,
        tenant_id: int,
        conversation_id: int,
        role: str,
        content: str,
        answer_payload: dict[str, Any] | None = None,
    ) -> int:
        self._ensure_pool()
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                message_id = await self._insert_message(
                    conn, tenant_id, conversation_id, role, content, answer_payload
                )
        return message_id

    async def list_messages(self, *, conversation_id: int, tenant_id: int) -> list[dict[str, Any]]:
        self._ensure_pool()
        rows = await self._pool.fetch(
            """
            SELECT id, role, content, answer_payload, created_at
            FROM messages
            WHERE conversation_id = $1 AND tenant_id = $2
            ORDER BY created_at ASC, id ASC
            """,
            conversation_id,
            tenant_id,
        )
        return [
            {
                "id": row["id"],
                "role": row["role"],
                "content": row["content"],
                "answer_payload": self._decode_json_field(row["answer_payload"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]

    async def list_conversations(
        self, *, tenant_id: int, user_id: int, limit: int = 50
    ) -> list[dict[str, Any]]:
        self._ensure_pool()
        bounded_limit = max(1, min(limit, 200))
        rows = await self._pool.fetch(
            """
            SELECT c.id, c.title, c.status, c.created_at, c.updated_at,
                   (
                       SELECT m.content FROM messages m
                       WHERE m.conversation_id = c.id AND m.tenant_id = c.tenant_id
                       ORDER BY m.created_at DESC, m.id DESC
                       LIMIT 1
                   ) AS last_message
            FROM conversations c
            WHERE c.tenant_id = $1 AND c.user_id = $2
            ORDER BY c.updated_at DESC
            LIMIT $3
            """,
            tenant_id,
            user_id,
            bounded_limit,
        )
        return [dict(row) for row in rows]

    async def get_conversation_summary(self, *, conversation_id: int, tenant_id: int) -> str:
        self._ensure_pool()
        summary = await self._pool.fetchval(
            "SELECT conversation_summary FROM conversations WHERE id = $1 AND tenant_id = $2",
            conversation_id,
            tenant_id,
        )
        return summary or ""

    async def update_conversation_summary(
        self, *, conversation_id: int, tenant_id: int, summary: str
    ) -> None:
        self._ensure_pool()
        await self._pool.execute(
            """
            UPDATE conversations
            SET conversation_summary = $1, summary_updated_at = NOW()
            WHERE id = $2 AND tenant_id = $3
            """,
            summary,
            conversation_id,
            tenant_id,
        )

    async def get_user_memory(self, *, user_id: int, tenant_id: int) -> str:
        self._ensure_pool()
        summary = await self._pool.fetchval(
            """
            SELECT memory_summary FROM user_long_term_memory
            WHERE user_id = $1 AND tenant_id = $2
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            user_id,
            tenant_id,
        )
        return summary or ""

    # ------------------------------------------------------------------
    # Turn persistence
    # ------------------------------------------------------------------

    async def record_sql_query(self, record: SqlQueryRecord) -> int:
        self._ensure_pool()
        return await self._pool.fetchval(
            """
            INSERT INTO sql_queries (
                tenant_id, conversation_id, message_id, user_id, sql_text,
                status, rows_returned, error_message, duration_ms
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING id
            """,
            record.tenant_id,
            record.conversation_id,
            record.message_id,
            record.user_id,
            record.sql_text,
            record.status,
            record.rows_returned,
            record.error_message,
            record.duration_ms,
        )

    async def persist_assistant_turn(
        self,
        *,
        tenant_id: int,
        user_id: int,
        conversation_id: int,
        answer_text: str,
        answer_payload: dict[str, Any],
        model: str,
        usage: TokenUsage,
    ) -> tuple[int, int]:
        """Insert the assistant message, then its usage row, in one transaction."""
        self._ensure_pool()
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                message_id = await self._insert_message(
                    conn, tenant_id, conversation_id, "assistant", answer_text, answer_payload
                )
                token_usage_id = await conn.fetchval(
                    """
                    INSERT INTO token_usage (
                        tenant_id, conversation_id, message_id, user_id, model,
                        prompt_tokens, completion_tokens, total_tokens
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                    RETURNING id
                    """,
                    tenant_id,
                    conversation_id,
                    message_id,
                    user_id,
                    model,
                    usage.input_tokens,
                    usage.output_tokens,
                    usage.total_tokens,
                )
        return message_id, token_usage_id

    async def rewrite_turn_usage(
        self,
        *,
        tenant_id: int,
        message_id: int,
        token_usage_id: int,
        answer_payload: dict[str, Any],
        usage: TokenUsage,
    ) -> None:
        """Update the usage row and the stored payload together."""
        self._ensure_pool()
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    UPDATE token_usage
                    SET prompt_tokens = $1, completion_tokens = $2, total_tokens = $3
                    WHERE id = $4 AND tenant_id = $5
                    """,
                    usage.input_tokens,
                    usage.output_tokens,
                    usage.total_tokens,
                    token_usage_id,
                    tenant_id,
                )
                await conn.execute(
                    "UPDATE messages SET answer_payload = $1::jsonb WHERE id = $2 AND tenant_id = $3",
                    json.dumps(answer_payload),
                    message_id,
                    tenant_id,
                )

    # ------------------------------------------------------------------
    # Telemetry and usage
    # ------------------------------------------------------------------

    async def insert_query_log(
        self,
        *,
        tenant_id: int,
        user_id: int,
        conversation_id: int,
        question: str,
        answer_summary: str | None,
        sql: str | None,
        used_rag: bool,
        model: str,
        usage: TokenUsage,
        latency_ms: int,
    ) -> int:
        self._ensure_pool()
        return await self._pool.fetchval(
            """
            INSERT INTO query_logs (
                tenant_id, user_id, conversation_id, question, answer_summary,
                sql_query, used_rag, model, prompt_tokens, completion_tokens,
                total_tokens, latency_ms
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            RETURNING id
            """,
            tenant_id,
            user_id,
            conversation_id,
            question,
            answer_summary,
            sql,
            used_rag,
            model,
            usage.input_tokens,
            usage.output_tokens,
            usage.total_tokens,
            latency_ms,
        )

    async def insert_query_sources(
        self, *, tenant_id: int, query_log_id: int, sources: list[dict[str, Any]]
    ) -> None:
        if not sources:
            return
        self._ensure_pool()
        await self._pool.executemany(
            """
            INSERT INTO query_sources (
                tenant_id, query_log_id, source_type, title, table_name,
                similarity_score, source_rank
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            """,
            [
                (
                    tenant_id,
                    query_log_id,
                    source.get("source_type"),
                    source.get("title"),
                    source.get("table_name"),
                    source.get("similarity_score"),
                    source["source_rank"],
                )
                for source in sources
            ],
        )

    async def usage_summary(
        self, *, tenant_id: int, user_id: int, days: int = 30
    ) -> dict[str, Any]:
        self._ensure_pool()
        totals = await self._pool.fetchrow(
            """
            SELECT
                COALESCE(SUM(total_tokens), 0) AS lifetime_total,
                COALESCE(SUM(total_tokens) FILTER (
                    WHERE created_at >= date_trunc('month', CURRENT_DATE)
                ), 0) AS month_total,
                COALESCE(SUM(total_tokens) FILTER (
                    WHERE created_at >= date_trunc('week', CURRENT_DATE)
                ), 0) AS week_total
            FROM token_usage
            WHERE tenant_id = $1 AND user_id = $2
            """,
            tenant_id,
            user_id,
        )
        daily_rows = await self._pool.fetch(
            """
            SELECT created_at::date AS day, COALESCE(SUM(total_tokens), 0) AS total_tokens
            FROM token_usage
            WHERE tenant_id = $1 AND user_id = $2
            AND created_at >= CURRENT_DATE - make_interval(days => $3)
            GROUP BY created_at::date
            ORDER BY created_at::date ASC
            """,
            tenant_id,
            user_id,
            days,
        )
        return {
            "lifetime_total": int(totals["lifetime_total"]),
            "month_total": int(totals["month_total"]),
            "week_total": int(totals["week_total"]),
            "daily": [
                {
                    "date": row["day"].isoformat() if isinstance(row["day"], date) else str(row["day"]),
                    "total_tokens": int(row["total_tokens"]),
                }
                for row in daily_rows
            ],
        }

    async def recent_sql_queries(
        self, *, conversation_id: int, tenant_id: int, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Newest first."""
        self._ensure_pool()
        rows = await self._pool.fetch(
            """
            SELECT id, sql_text, status, rows_returned, error_message, duration_ms, created_at
            FROM sql_queries
            WHERE conversation_id = $1 AND tenant_id = $2
            ORDER BY created_at DESC, id DESC
            LIMIT $3
            """,
            conversation_id,
            tenant_id,
            limit,
        )
        return [dict(row) for row in rows]

    async def recent_token_usage(
        self, *, conversation_id: int, tenant_id: int, limit: int = 10
    ) -> list[dict[str, Any]]:
        """Newest first."""
        self._ensure_pool()
        rows = await self._pool.fetch(
            """
            SELECT id, model, prompt_tokens, completion_tokens, total_tokens, created_at
            FROM token_usage
            WHERE conversation_id = $1 AND tenant_id = $2
            ORDER BY created_at DESC, id DESC
            LIMIT $3
            """,
            conversation_id,
            tenant_id,
            limit,
        )
        return [dict(row) for row in rows]

    async def message_in_conversation(
        self, *, message_id: int, conversation_id: int, tenant_id: int
    ) -> bool:
        self._ensure_pool()
        row = await self._pool.fetchrow(
            """
            SELECT 1 FROM messages
            WHERE id = $1 AND conversation_id = $2 AND tenant_id = $3
            """,
            message_id,
            conversation_id,
            tenant_id,
        )
        return row is not None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _insert_message(
        self,
        conn: asyncpg.Connection,
        tenant_id: int,
        conversation_id: int,
        role: str,
        content: str,
        answer_payload: dict[str, Any] | None,
    ) -> int:
        message_id = await conn.fetchval(
            """
            INSERT INTO messages (tenant_id, conversation_id, role, content, answer_payload)
            VALUES ($1, $2, $3, $4, $5::jsonb)
            RETURNING id
            """,
            tenant_id,
            conversation_id,
            role,
            content,
            json.dumps(answer_payload) if answer_payload is not None else None,
        )
        await conn.execute(
            "UPDATE conversations SET updated_at = NOW() WHERE id = $1 AND tenant_id = $2",
            conversation_id,
            tenant_id,
        )
        return message_id

    def _ensure_pool(self) -> None:
        if self._pool is None:
            raise RuntimeError("CoreStore not initialized")

    @staticmethod
    def _decode_json_field(value: Any) -> Any:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return None
        return value
