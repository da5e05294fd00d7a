from __future__ import annotations

from minrisk.core.config import get_settings
from minrisk.core.errors import ProviderConfigError
from minrisk.providers.llm.anthropic import AnthropicProvider
from minrisk.providers.llm.base import LLMProvider
from minrisk.providers.llm.fake import FakeLLMProvider


def get_llm_provider() -> LLMProvider:
    settings = get_settings()
    provider = (settings.llm_provider or "anthropic").lower()

    if provider == "fake":
        return FakeLLMProvider()
    if provider == "anthropic":
        return AnthropicProvider()
    raise ProviderConfigError(f"Unknown LLM provider: {settings.llm_provider}")
