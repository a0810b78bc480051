"""
Tests for the OpenAI and Azure OpenAI providers.

Tests provider implementations with mocked API calls.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import openai
import pytest

from kqlassist.llm.models import LLMMessage, LLMRequest
from kqlassist.llm.openai import AzureOpenAIProvider, OpenAIProvider


@pytest.fixture
def provider():
    """Create OpenAI provider instance."""
    return OpenAIProvider(
        api_key="sk-test-key-1234567890abcdefghij",
        model="gpt-4o",
        temperature=0.3,
        max_tokens=1000,
        timeout=30,
    )


def _completion(content="requests | take 1", finish_reason="stop", usage=True):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    response.choices[0].finish_reason = finish_reason
    response.model = "gpt-4o"
    if usage:
        response.usage.prompt_tokens = 10
        response.usage.completion_tokens = 5
        response.usage.total_tokens = 15
    else:
        response.usage = None
    response.id = "chatcmpl-123"
    response.created = 1234567890
    return response


class TestOpenAIProviderInit:
    """Test OpenAI provider initialization."""

    def test_initialization(self, provider):
        assert provider.model == "gpt-4o"
        assert provider.temperature == 0.3
        assert provider.max_tokens == 1000
        assert provider.timeout == 30
        assert provider.provider_name == "openai"


class TestGenerate:
    """Test generate method."""

    @pytest.mark.asyncio
    async def test_successful_generation(self, provider):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(),
        ) as mock_create:
            request = LLMRequest(messages=[LLMMessage(role="user", content="Hello!")])
            response = await provider.generate(request)

        assert response.content == "requests | take 1"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 15
        assert response.provider == "openai"
        kwargs = mock_create.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 1000
        assert kwargs["messages"] == [{"role": "user", "content": "Hello!"}]

    @pytest.mark.asyncio
    async def test_request_overrides_defaults(self, provider):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(finish_reason="length"),
        ) as mock_create:
            request = LLMRequest(
                messages=[LLMMessage(role="user", content="Hi")],
                temperature=0.7,
                max_tokens=50,
            )
            response = await provider.generate(request)

        assert mock_create.call_args.kwargs["temperature"] == 0.7
        assert mock_create.call_args.kwargs["max_tokens"] == 50
        assert response.truncated is True

    @pytest.mark.asyncio
    async def test_missing_usage(self, provider):
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            return_value=_completion(usage=False),
        ):
            response = await provider.generate(
                LLMRequest(messages=[LLMMessage(role="user", content="Hi")])
            )

        assert response.usage.total_tokens == 0

    @pytest.mark.asyncio
    async def test_api_error_propagates(self, provider):
        error = openai.APIConnectionError(request=MagicMock())
        with patch.object(
            provider.client.chat.completions,
            "create",
            new_callable=AsyncMock,
            side_effect=error,
        ):
            with pytest.raises(openai.APIError):
                await provider.generate(
                    LLMRequest(messages=[LLMMessage(role="user", content="Hi")])
                )


class TestAzureOpenAIProvider:
    """Test Azure OpenAI provider construction."""

    @pytest.mark.asyncio
    async def test_api_key_auth(self):
        provider = AzureOpenAIProvider(
            endpoint="https://example.openai.azure.com",
            deployment="gpt-4o-prod",
            api_key="azure-key",
        )

        assert provider.provider_name == "azure-openai"
        assert provider.model == "gpt-4o-prod"
        assert provider._credential is None
        await provider.aclose()

    @pytest.mark.asyncio
    async def test_azure_ad_auth(self):
        with patch("kqlassist.llm.openai.DefaultAzureCredential") as credential_cls:
            credential_cls.return_value.close = AsyncMock()
            provider = AzureOpenAIProvider(
                endpoint="https://example.openai.azure.com",
                deployment="gpt-4o-prod",
            )

            assert provider._credential is credential_cls.return_value
            await provider.aclose()

        credential_cls.return_value.close.assert_awaited_once()
