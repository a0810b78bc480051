"""
OpenAI LLM Providers

OpenAI and Azure OpenAI chat completions through the official async SDK.
Azure OpenAI authenticates with an API key when one is configured and
otherwise with an Azure AD bearer token.
"""

import logging

from azure.identity.aio import DefaultAzureCredential, get_bearer_token_provider
from openai import AsyncAzureOpenAI, AsyncOpenAI

from kqlassist.llm.base import BaseLLMProvider
from kqlassist.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)

COGNITIVE_SERVICES_SCOPE = "https://cognitiveservices.azure.com/.default"


class OpenAIProvider(BaseLLMProvider):
    """
    Chat completions against api.openai.com.

    ``model`` is the default model name; a request may override it.
    """

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.3,
        max_tokens: int = 1000,
        timeout: int = 30,
    ):
        super().__init__("openai", temperature, max_tokens, timeout)
        self.model = model
        self.client: AsyncOpenAI = AsyncOpenAI(api_key=api_key, timeout=float(timeout))
        logger.info(f"Using OpenAI model {model}")

    async def _complete(self, request: LLMRequest) -> LLMResponse:
        completion = await self.client.chat.completions.create(
            model=request.model or self.model,
            messages=[message.model_dump() for message in request.messages],
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            **request.metadata,
        )

        choice = completion.choices[0]
        usage = completion.usage
        return LLMResponse(
            content=choice.message.content or "",
            model=completion.model,
            finish_reason=self.normalize_finish_reason(choice.finish_reason),
            provider=self.provider_name,
            usage=(
                LLMUsage.from_counts(
                    usage.prompt_tokens, usage.completion_tokens, usage.total_tokens
                )
                if usage
                else LLMUsage()
            ),
            metadata={"id": completion.id, "created": completion.created},
        )

    async def aclose(self) -> None:
        await self.client.close()


class AzureOpenAIProvider(OpenAIProvider):
    """
    Chat completions against an Azure OpenAI deployment.

    The deployment name stands in for the model name.
    """

    def __init__(
        self,
        endpoint: str,
        deployment: str,
        api_key: str | None = None,
        api_version: str = "2024-06-01",
        temperature: float = 0.3,
        max_tokens: int = 1000,
        timeout: int = 30,
    ):
        BaseLLMProvider.__init__(self, "azure-openai", temperature, max_tokens, timeout)
        self.model = deployment

        self._credential: DefaultAzureCredential | None = None
        if api_key:
            auth = {"api_key": api_key}
        else:
            self._credential = DefaultAzureCredential()
            auth = {
                "azure_ad_token_provider": get_bearer_token_provider(
                    self._credential, COGNITIVE_SERVICES_SCOPE
                )
            }

        self.client = AsyncAzureOpenAI(
            azure_endpoint=endpoint,
            api_version=api_version,
            timeout=float(timeout),
            **auth,
        )
        logger.info(
            f"Using Azure OpenAI deployment {deployment} "
            f"({'api key' if api_key else 'Azure AD token'})"
        )

    async def aclose(self) -> None:
        await super().aclose()
        if self._credential is not None:
            await self._credential.close()
