"""Storage for per-answer thumbs up/down feedback."""

from __future__ import annotations

import asyncpg

_CREATE_FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS chat_answer_feedback (
    user_id BIGINT NOT NULL,
    tenant_id BIGINT NOT NULL,
    conversation_id BIGINT NOT NULL,
    message_id BIGINT NOT NULL,
    rating SMALLINT NOT NULL,
    comment TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (user_id, tenant_id, message_id)
);
"""


class FeedbackStore:
    """Persist answer feedback in the core database, one row per user and message."""

    def __init__(self, pool: asyncpg.Pool | None = None) -> None:
        self._pool = pool

    async def initialize(self) -> None:
        self._ensure_pool()
        await self._pool.execute(_CREATE_FEEDBACK_TABLE)

    async def upsert_feedback(
        self,
        *,
        user_id: int,
        tenant_id: int,
        conversation_id: int,
        message_id: int,
        rating: str,
        reason: str | None,
    ) -> None:
        self._ensure_pool()
        await self._pool.execute(
            """
            INSERT INTO chat_answer_feedback (
                user_id, tenant_id, conversation_id, message_id, rating, comment
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (user_id, tenant_id, message_id) DO UPDATE SET
                conversation_id = EXCLUDED.conversation_id,
                rating = EXCLUDED.rating,
                comment = EXCLUDED.comment,
                created_at = NOW()
            """,
            user_id,
            tenant_id,
            conversation_id,
            message_id,
            1 if rating == "up" else 0,
            reason,
        )

    def _ensure_pool(self) -> None:
        if self._pool is None:
            raise RuntimeError("FeedbackStore not initialized")
