"""Build the process-wide LLM provider from LLMSettings."""

import logging

from askdata.config import LLMSettings
from askdata.llm.base import BaseLLMProvider
from askdata.llm.openai import OpenAIProvider

logger = logging.getLogger(__name__)


class LLMProviderFactory:
    PROVIDERS = {
        "openai": OpenAIProvider,
    }

    @staticmethod
    def create_provider(provider_type: str, config: LLMSettings) -> BaseLLMProvider:
        """
        Raises:
            ValueError: Unknown provider type, or no API key configured
        """
        if provider_type not in LLMProviderFactory.PROVIDERS:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {sorted(LLMProviderFactory.PROVIDERS)}"
            )
        if not config.openai_api_key:
            raise ValueError("OpenAI API key not configured. Set LLM_OPENAI_API_KEY")

        logger.info(f"Creating {provider_type} provider ({config.openai_model})")
        return LLMProviderFactory.PROVIDERS[provider_type](
            api_key=config.openai_api_key,
            model=config.openai_model,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout=config.timeout,
            base_url=config.openai_base_url,
        )

    @staticmethod
    def create_default_provider(config: LLMSettings) -> BaseLLMProvider:
        return LLMProviderFactory.create_provider(config.default_provider, config)
