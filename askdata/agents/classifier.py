"""
Request Classifier

Decides with one LLM call whether a question needs the database at all.
Permissive: anything other than a clean leading NO counts as a data request.
"""

import logging
import re

from pydantic import BaseModel, Field

from askdata.agents.base import BaseAgent
from askdata.models.chat import TokenUsage

logger = logging.getLogger(__name__)

_LEADING_WORD_RE = re.compile(r"^[\W_]*([A-Za-z]+)")


class ClassificationResult(BaseModel):
    is_data_request: bool
    usage: TokenUsage = Field(default_factory=TokenUsage)


def parse_yes_no(text: str | None) -> bool:
    """Leading token YES -> True, NO -> False, anything else -> True."""
    match = _LEADING_WORD_RE.match(text or "")
    if not match:
        return True
    word = match.group(1).upper()
    if word == "NO":
        return False
    return True


class RequestClassifier(BaseAgent):
    """YES/NO classifier: does this question require querying stored data?"""

    def __init__(self, llm_provider=None, prompts=None) -> None:
        super().__init__(name="RequestClassifier", llm_provider=llm_provider, prompts=prompts)

    async def execute(self, question: str) -> ClassificationResult:
        try:
            text, usage = await self._generate(
                "agents/classifier.md",
                temperature=0.0,
                max_tokens=5,
                question=question,
            )
        except Exception as e:
            logger.error(f"[{self.name}] Classification failed, treating as data request: {e}")
            return ClassificationResult(is_data_request=True)

        is_data_request = parse_yes_no(text)
        logger.info(
            f"[{self.name}] Classified question",
            extra={"is_data_request": is_data_request, "raw": text[:20]},
        )
        return ClassificationResult(is_data_request=is_data_request, usage=usage)
