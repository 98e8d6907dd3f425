"""
Base Agent Framework

Base class for the LLM-backed steps of a chat turn. Provides provider and
prompt wiring, one-call generation with normalized usage, timing and logging.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm_provider=None):
            super().__init__(name="MyAgent", llm_provider=llm_provider)

        async def execute(self, question: str) -> MyResult:
            text, usage = await self._generate("agents/my_prompt.md", question=question)
            return MyResult(text=text, usage=usage)
"""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any

from askdata.config import get_settings
from askdata.llm.base import BaseLLMProvider
from askdata.llm.factory import LLMProviderFactory
from askdata.llm.models import LLMMessage, LLMRequest
from askdata.llm.usage import usage_from_response
from askdata.models.chat import TokenUsage
from askdata.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "system/main.md"

_FENCE_RE = re.compile(r"```[a-zA-Z]*")


def strip_code_fences(text: str) -> str:
    """Remove Markdown code fences (```sql, ```json, ```) and trim."""
    if not text:
        return ""
    return _FENCE_RE.sub("", text).replace("```", "").strip()


def safe_json_parse(text: str | None) -> Any:
    """Parse JSON from model output, tolerating code fences. None when unparseable."""
    if not text or not isinstance(text, str):
        return None
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, ValueError):
        return None


class BaseAgent(ABC):
    """
    Abstract base class for LLM-backed turn steps.

    Attributes:
        name: Identifier used in logs
        llm: Provider used for every call this agent makes
        prompts: Prompt template loader
    """

    def __init__(
        self,
        name: str,
        llm_provider: BaseLLMProvider | None = None,
        prompts: PromptLoader | None = None,
    ):
        self.name = name
        if llm_provider is None:
            self.llm = LLMProviderFactory.create_default_provider(get_settings().llm)
        else:
            self.llm = llm_provider
        self.prompts = prompts or PromptLoader()

    @property
    def model_name(self) -> str:
        return getattr(self.llm, "model", "unknown")

    @abstractmethod
    async def execute(self, *args: Any, **kwargs: Any) -> Any:
        """Run the step and return its typed result."""
        pass  # pragma: no cover - abstract method

    async def _generate(
        self,
        prompt_path: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **variables: Any,
    ) -> tuple[str, TokenUsage]:
        """
        Make exactly one LLM call with the shared system prompt.

        Returns:
            (response text, normalized usage)

        Raises:
            Exception: Whatever the provider raises; callers decide the fallback.
        """
        request = LLMRequest(
            messages=[
                LLMMessage(role="system", content=self.prompts.load(SYSTEM_PROMPT)),
                LLMMessage(role="user", content=self.prompts.render(prompt_path, **variables)),
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )

        start_time = time.perf_counter()
        response = await self.llm.generate(request)
        usage = usage_from_response(response)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            f"[{self.name}] LLM call complete",
            extra={
                "agent": self.name,
                "prompt": prompt_path,
                "duration_ms": duration_ms,
                "total_tokens": usage.total_tokens,
            },
        )
        return response.content or "", usage
