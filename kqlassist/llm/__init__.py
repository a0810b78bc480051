"""
LLM Provider Module

Chat completion providers used to generate and explain KQL.

Usage:
    from kqlassist.config import get_settings
    from kqlassist.llm import LLMProviderFactory, LLMRequest

    provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    response = await provider.generate(LLMRequest.exchange(system_prompt, question))
"""

from kqlassist.llm.base import BaseLLMProvider
from kqlassist.llm.factory import LLMProviderFactory
from kqlassist.llm.local import LocalProvider
from kqlassist.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage
from kqlassist.llm.openai import AzureOpenAIProvider, OpenAIProvider

__all__ = [
    "BaseLLMProvider",
    "LLMProviderFactory",
    "LLMMessage",
    "LLMRequest",
    "LLMResponse",
    "LLMUsage",
    "OpenAIProvider",
    "AzureOpenAIProvider",
    "LocalProvider",
]
