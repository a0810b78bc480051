"""
Local LLM Provider

Self-hosted models: the Ollama chat API first, then any server speaking
the OpenAI-compatible ``/v1/chat/completions`` API (vLLM, llama.cpp).
"""

import logging

import httpx

from kqlassist.llm.base import BaseLLMProvider
from kqlassist.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class LocalProvider(BaseLLMProvider):
    """Chat completions from a model server on the local network."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.1:8b",
        temperature: float = 0.3,
        max_tokens: int = 1000,
        timeout: int = 30,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__("local", temperature, max_tokens, timeout)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.client = client or httpx.AsyncClient(timeout=float(timeout))
        logger.info(f"Using local model {model} at {self.base_url}")

    async def _complete(self, request: LLMRequest) -> LLMResponse:
        model = request.model or self.model
        messages = [message.model_dump() for message in request.messages]

        try:
            data = await self._post(
                "/api/chat",
                {
                    "model": model,
                    "messages": messages,
                    "stream": False,
                    "options": {
                        "temperature": request.temperature,
                        "num_predict": request.max_tokens,
                    },
                },
            )
        except httpx.HTTPError as e:
            logger.debug(f"No Ollama API at {self.base_url} ({e}), trying /v1/chat/completions")
        else:
            return LLMResponse(
                content=(data.get("message") or {}).get("content", ""),
                model=data.get("model", model),
                finish_reason=self.normalize_finish_reason(data.get("done_reason")),
                provider=self.provider_name,
                usage=LLMUsage.from_counts(data.get("prompt_eval_count"), data.get("eval_count")),
                metadata={"base_url": self.base_url, "api": "ollama"},
            )

        data = await self._post(
            "/v1/chat/completions",
            {
                "model": model,
                "messages": messages,
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )
        choice = (data.get("choices") or [{}])[0]
        usage = data.get("usage") or {}
        return LLMResponse(
            content=(choice.get("message") or {}).get("content") or "",
            model=data.get("model", model),
            finish_reason=self.normalize_finish_reason(choice.get("finish_reason")),
            provider=self.provider_name,
            usage=LLMUsage.from_counts(
                usage.get("prompt_tokens"),
                usage.get("completion_tokens"),
                usage.get("total_tokens"),
            ),
            metadata={"base_url": self.base_url, "api": "openai-compatible"},
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _post(self, path: str, payload: dict) -> dict:
        response = await self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        return response.json()
