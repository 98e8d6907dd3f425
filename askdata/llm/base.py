"""
LLM Provider Interface

Each turn makes between one and five calls through a single provider
instance, shared by every agent for the life of the process.
"""

import logging
from abc import ABC, abstractmethod

from askdata.llm.models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Attributes:
        provider_name: Identifier used in logs
        model: Default model name, reported in token accounting
        temperature: Used when a request leaves temperature unset
        max_tokens: Used when a request leaves max_tokens unset
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        model: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        self.provider_name = provider_name
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        logger.info(f"LLM provider ready: {provider_name}/{model}")

    @abstractmethod
    async def generate(self, request: LLMRequest) -> LLMResponse:
        """Run one completion. Provider errors propagate to the calling step."""

    async def close(self) -> None:
        return None

    def _apply_defaults(self, request: LLMRequest) -> LLMRequest:
        updates = {}
        if request.temperature is None:
            updates["temperature"] = self.temperature
        if request.max_tokens is None:
            updates["max_tokens"] = self.max_tokens
        return request.model_copy(update=updates) if updates else request

    def _log_request(self, request: LLMRequest) -> None:
        logger.debug(
            f"{self.provider_name} request",
            extra={
                "provider": self.provider_name,
                "prompt_chars": sum(len(m.content) for m in request.messages),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )

    def _log_response(self, response: LLMResponse) -> None:
        usage = response.usage
        logger.debug(
            f"{self.provider_name} response",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "total_tokens": usage.total_tokens if usage else None,
                "finish_reason": response.finish_reason,
            },
        )
