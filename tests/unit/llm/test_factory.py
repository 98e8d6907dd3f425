"""
Tests for LLM Provider Factory.
"""

import pytest

from askdata.config import LLMSettings
from askdata.llm.factory import LLMProviderFactory
from askdata.llm.openai import OpenAIProvider


@pytest.fixture
def mock_config():
    """LLM configuration with OpenAI configured."""
    return LLMSettings(
        default_provider="openai",
        openai_api_key="sk-test-openai-key-1234567890",
        openai_model="gpt-4o-mini",
        temperature=0.0,
        max_tokens=1500,
        timeout=20,
    )


class TestLLMProviderFactory:
    """Test provider creation."""

    def test_registry(self):
        assert LLMProviderFactory.PROVIDERS == {"openai": OpenAIProvider}

    def test_create_default_provider(self, mock_config):
        provider = LLMProviderFactory.create_default_provider(mock_config)

        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o-mini"
        assert provider.max_tokens == 1500
        assert provider.timeout == 20

    def test_unknown_provider(self, mock_config):
        with pytest.raises(ValueError, match="Unknown provider type"):
            LLMProviderFactory.create_provider("anthropic", mock_config)

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.delenv("LLM_OPENAI_API_KEY", raising=False)
        config = LLMSettings(openai_api_key=None, _env_file=None)

        with pytest.raises(ValueError, match="LLM_OPENAI_API_KEY"):
            LLMProviderFactory.create_default_provider(config)
