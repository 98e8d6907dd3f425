"""
Conversation-Summary Maintainer

Recomputes the rolling conversation summary on a fixed message cadence, not
every turn. The transcript always includes the assistant message the current
turn just stored.
"""

import logging
from typing import Any

from pydantic import BaseModel, Field

from askdata.agents.base import BaseAgent
from askdata.models.chat import TokenUsage

logger = logging.getLogger(__name__)


class SummaryRefresh(BaseModel):
    refreshed: bool = False
    summary: str | None = None
    usage: TokenUsage = Field(default_factory=TokenUsage)


def should_refresh(message_count: int, *, min_messages: int = 2, interval: int = 12) -> bool:
    if interval <= 0:
        return False
    return message_count >= min_messages and message_count % interval == 0


def format_transcript(messages: list[dict[str, Any]]) -> str:
    return "\n\n".join(
        f"{str(m.get('role', '')).upper()}: {m.get('content') or ''}" for m in messages
    )


class ConversationSummaryMaintainer(BaseAgent):
    """Cadence-gated rewrite of Conversation.conversation_summary."""

    def __init__(
        self,
        store: Any,
        llm_provider=None,
        prompts=None,
        min_messages: int = 2,
        interval: int = 12,
    ) -> None:
        super().__init__(
            name="ConversationSummaryMaintainer", llm_provider=llm_provider, prompts=prompts
        )
        self.store = store
        self.min_messages = min_messages
        self.interval = interval

    async def execute(self, *, conversation_id: int, tenant_id: int) -> SummaryRefresh:
        """
        Refresh the summary if the message count hits the cadence.

        Never raises; a failure leaves the previous summary in place and
        reports no extra usage.
        """
        try:
            messages = await self.store.list_messages(
                conversation_id=conversation_id, tenant_id=tenant_id
            )
            if not should_refresh(
                len(messages), min_messages=self.min_messages, interval=self.interval
            ):
                return SummaryRefresh()

            existing = await self.store.get_conversation_summary(
                conversation_id=conversation_id, tenant_id=tenant_id
            )
            raw_text, usage = await self._generate(
                "agents/conversation_summary.md",
                temperature=0.2,
                existing_summary=existing or "",
                transcript=format_transcript(messages),
            )
        except Exception as e:
            logger.error(
                f"[{self.name}] Conversation summary refresh failed: {e}",
                extra={"conversation_id": conversation_id},
            )
            return SummaryRefresh()

        summary = raw_text.strip()
        if not summary:
            return SummaryRefresh(usage=usage)

        try:
            await self.store.update_conversation_summary(
                conversation_id=conversation_id, tenant_id=tenant_id, summary=summary
            )
        except Exception as e:
            logger.error(f"[{self.name}] Failed to store conversation summary: {e}")
            return SummaryRefresh(usage=usage)

        logger.info(
            f"[{self.name}] Conversation summary refreshed",
            extra={"conversation_id": conversation_id, "messages": len(messages)},
        )
        return SummaryRefresh(refreshed=True, summary=summary, usage=usage)
