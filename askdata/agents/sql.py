"""
NL -> SQL Translator

Asks the model for exactly one SELECT statement given schema and context.
The output is untrusted: it only ever reaches a database through the
scoped executor's guard.
"""

import logging

from pydantic import BaseModel, Field

from askdata.agents.base import BaseAgent, strip_code_fences
from askdata.models.chat import TokenUsage

logger = logging.getLogger(__name__)


class TranslationResult(BaseModel):
    sql: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


class SQLTranslator(BaseAgent):
    """Translate a question into one read-only SQL statement."""

    def __init__(self, llm_provider=None, prompts=None, dialect: str = "PostgreSQL") -> None:
        super().__init__(name="SQLTranslator", llm_provider=llm_provider, prompts=prompts)
        self.dialect = dialect

    async def execute(
        self,
        *,
        question: str,
        schema: str,
        context: str,
        max_rows: int,
    ) -> TranslationResult:
        raw_text, usage = await self._generate(
            "agents/sql_generator.md",
            temperature=0.0,
            dialect=self.dialect,
            schema=schema or "(schema unavailable)",
            context=context,
            question=question,
            max_rows=max_rows,
        )
        sql = strip_code_fences(raw_text) or raw_text.strip()
        logger.info(f"[{self.name}] Generated SQL", extra={"sql": sql[:200]})
        return TranslationResult(sql=sql, usage=usage)
