"""
Answer Summarizer

Turns (question, SQL, sample rows) into a short natural-language answer.
Only a bounded sample of rows is shown to the model.
"""

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from askdata.agents.base import BaseAgent, safe_json_parse
from askdata.models.chat import TokenUsage

logger = logging.getLogger(__name__)


class AnswerSummary(BaseModel):
    answer_text: str
    usage: TokenUsage = Field(default_factory=TokenUsage)


def fallback_answer(row_count: int) -> str:
    if row_count == 0:
        return "The query ran successfully but returned no rows."
    noun = "row" if row_count == 1 else "rows"
    return f"The query returned {row_count} {noun}. See the table below for details."


def extract_answer_text(raw_text: str) -> str:
    """answerText from strict JSON output, else the raw trimmed text."""
    parsed = safe_json_parse(raw_text)
    if isinstance(parsed, dict):
        answer = parsed.get("answerText")
        if isinstance(answer, str) and answer.strip():
            return answer.strip()
    return (raw_text or "").strip()


class AnswerSummarizer(BaseAgent):
    """
    Summarize a query result for the user.

    The turn never ends with an empty answer: malformed JSON falls back to the
    raw model text, and an empty or failed call falls back to a row-count
    sentence.
    """

    def __init__(self, llm_provider=None, prompts=None, sample_rows: int = 50) -> None:
        super().__init__(name="AnswerSummarizer", llm_provider=llm_provider, prompts=prompts)
        self.sample_rows = sample_rows

    async def execute(
        self,
        *,
        question: str,
        sql: str,
        columns: list[str],
        rows: list[dict[str, Any]],
    ) -> AnswerSummary:
        sample = rows[: self.sample_rows]
        try:
            raw_text, usage = await self._generate(
                "agents/answer.md",
                temperature=0.2,
                question=question,
                sql=sql,
                columns_json=json.dumps(columns),
                rows_json=json.dumps(sample, default=str, indent=2),
            )
        except Exception as e:
            logger.error(f"[{self.name}] Summarization failed: {e}")
            return AnswerSummary(answer_text=fallback_answer(len(rows)))

        answer_text = extract_answer_text(raw_text) or fallback_answer(len(rows))
        return AnswerSummary(answer_text=answer_text, usage=usage)
