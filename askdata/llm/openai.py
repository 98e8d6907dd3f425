"""
OpenAI LLM Provider

Chat completions through the official async SDK. Also serves any
OpenAI-compatible endpoint via LLM_OPENAI_BASE_URL.
"""

import logging

import openai
from openai import AsyncOpenAI

from askdata.llm.base import BaseLLMProvider
from askdata.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)

_FINISH_REASONS = {"stop", "length", "content_filter"}


class OpenAIProvider(BaseLLMProvider):
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
        base_url: str | None = None,
    ):
        super().__init__(
            provider_name="openai",
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=float(timeout))

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Raises:
            openai.APIError: On API errors, including timeouts
        """
        request = self._apply_defaults(request)
        self._log_request(request)

        try:
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": m.role, "content": m.content} for m in request.messages],
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout after {self.timeout}s: {e}")
            raise
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

        choice = completion.choices[0]
        reported = completion.usage
        response = LLMResponse(
            content=choice.message.content or "",
            model=completion.model,
            usage=(
                LLMUsage(
                    prompt_tokens=reported.prompt_tokens or 0,
                    completion_tokens=reported.completion_tokens or 0,
                    total_tokens=reported.total_tokens or 0,
                )
                if reported is not None
                else None
            ),
            finish_reason=choice.finish_reason if choice.finish_reason in _FINISH_REASONS else "stop",
            provider=self.provider_name,
        )
        self._log_response(response)
        return response

    async def close(self) -> None:
        await self.client.close()
