"""Friendly redirect for questions that do not need the database."""

import logging

from pydantic import BaseModel, Field

from askdata.agents.base import BaseAgent
from askdata.models.chat import TokenUsage

logger = logging.getLogger(__name__)

NON_DATA_FALLBACK = (
    "Got it. This assistant is wired to answer questions by querying your data. "
    "If you'd like, ask what you want to see in the data and I'll run the query for you."
)


class NonDataReply(BaseModel):
    answer_text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class NonDataResponder(BaseAgent):
    def __init__(self, llm_provider=None, prompts=None) -> None:
        super().__init__(name="NonDataResponder", llm_provider=llm_provider, prompts=prompts)

    async def execute(self, question: str) -> NonDataReply:
        try:
            raw_text, usage = await self._generate(
                "agents/non_data.md", temperature=0.4, question=question
            )
        except Exception as e:
            logger.error(f"[{self.name}] Non-data reply failed, using fallback: {e}")
            return NonDataReply(answer_text=NON_DATA_FALLBACK)

        return NonDataReply(answer_text=raw_text.strip() or NON_DATA_FALLBACK, usage=usage)
