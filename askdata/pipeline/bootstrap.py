"""Conversation bootstrap: ensure the thread exists, then store the question."""

import logging
from typing import Any

from askdata.models.errors import ConversationNotFoundError
from askdata.models.tenant import UserContext

logger = logging.getLogger(__name__)

MAX_TITLE_CHARS = 80
DEFAULT_TITLE = "New conversation"


def derive_title(question: str) -> str:
    text = (question or "").strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > MAX_TITLE_CHARS:
        return text[: MAX_TITLE_CHARS - 3] + "..."
    return text


class ConversationBootstrap:
    def __init__(self, store: Any) -> None:
        self.store = store

    async def ensure_conversation(
        self, *, user: UserContext, conversation_id: int | None, question: str
    ) -> int:
        """
        Create a conversation or verify the caller owns the given one.

        Raises:
            ConversationNotFoundError: If the id is not owned by (user, tenant)
        """
        if conversation_id is None:
            new_id = await self.store.create_conversation(
                tenant_id=user.tenant_id, user_id=user.user_id, title=derive_title(question)
            )
            logger.info(
                "Conversation created",
                extra={"conversation_id": new_id, "tenant_id": user.tenant_id},
            )
            return new_id

        exists = await self.store.conversation_exists(
            conversation_id=conversation_id, tenant_id=user.tenant_id, user_id=user.user_id
        )
        if not exists:
            raise ConversationNotFoundError(conversation_id)
        return conversation_id

    async def record_question(
        self, *, user: UserContext, conversation_id: int, question: str
    ) -> int:
        return await self.store.add_message(
            tenant_id=user.tenant_id,
            conversation_id=conversation_id,
            role="user",
            content=question.strip(),
        )
