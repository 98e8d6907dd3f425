"""LLM provider abstraction and usage normalization."""

from askdata.llm.base import BaseLLMProvider
from askdata.llm.factory import LLMProviderFactory
from askdata.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from askdata.llm.openai import OpenAIProvider
from askdata.llm.usage import normalize_usage, usage_from_response

__all__ = [
    "BaseLLMProvider",
    "LLMProviderFactory",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "OpenAIProvider",
    "normalize_usage",
    "usage_from_response",
]
