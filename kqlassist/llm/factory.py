"""
LLM Provider Factory

Builds the configured chat provider from LLMSettings. Missing settings
are reported as ValueError before any client is created.
"""

import logging
from collections.abc import Callable

from kqlassist.config import LLMSettings
from kqlassist.llm.base import BaseLLMProvider
from kqlassist.llm.local import LocalProvider
from kqlassist.llm.openai import AzureOpenAIProvider, OpenAIProvider

logger = logging.getLogger(__name__)


def _require(value: str | None, what: str) -> str:
    if not value:
        raise ValueError(f"{what} is required but not configured")
    return value


def _build_openai(config: LLMSettings) -> BaseLLMProvider:
    return OpenAIProvider(
        api_key=_require(config.openai_api_key, "OpenAI API key (LLM_OPENAI_API_KEY)"),
        model=config.openai_model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
    )


def _build_azure_openai(config: LLMSettings) -> BaseLLMProvider:
    return AzureOpenAIProvider(
        endpoint=_require(
            config.azure_openai_endpoint, "Azure OpenAI endpoint (LLM_AZURE_OPENAI_ENDPOINT)"
        ),
        deployment=_require(
            config.azure_openai_deployment,
            "Azure OpenAI deployment (LLM_AZURE_OPENAI_DEPLOYMENT)",
        ),
        api_key=config.azure_openai_api_key,
        api_version=config.azure_openai_api_version,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
    )


def _build_local(config: LLMSettings) -> BaseLLMProvider:
    return LocalProvider(
        base_url=config.local_base_url,
        model=config.local_model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
    )


class LLMProviderFactory:
    """
    Provider selection by name.

    Usage:
        provider = LLMProviderFactory.create_default_provider(get_settings().llm)
    """

    BUILDERS: dict[str, Callable[[LLMSettings], BaseLLMProvider]] = {
        "openai": _build_openai,
        "azure-openai": _build_azure_openai,
        "local": _build_local,
    }

    @classmethod
    def create_provider(cls, provider_type: str, config: LLMSettings) -> BaseLLMProvider:
        """
        Create the provider registered under ``provider_type``.

        Raises:
            ValueError: Unknown provider, or a required setting is missing
        """
        builder = cls.BUILDERS.get(provider_type)
        if builder is None:
            raise ValueError(
                f"Unknown provider type: {provider_type}. "
                f"Available providers: {', '.join(cls.BUILDERS)}"
            )

        provider = builder(config)
        logger.info(f"Created {provider_type} LLM provider", extra={"provider": provider_type})
        return provider

    @classmethod
    def create_default_provider(cls, config: LLMSettings) -> BaseLLMProvider:
        return cls.create_provider(config.default_provider, config)
