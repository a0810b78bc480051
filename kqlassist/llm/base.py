"""
Base LLM Provider

Every provider answers ``generate(request)``. The base class fills in
sampling defaults, times the call and logs token usage; subclasses only
implement ``_complete`` against their API.
"""

import logging
import time
from abc import ABC, abstractmethod

from kqlassist.llm.models import FinishReason, LLMRequest, LLMResponse

logger = logging.getLogger(__name__)

_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "end_turn": "stop",
    "length": "length",
    "max_tokens": "length",
    "content_filter": "content_filter",
}


class BaseLLMProvider(ABC):
    """
    Chat completion backend used by the generation agents.

    Attributes:
        provider_name: "openai", "azure-openai" or "local"
        temperature: Used when a request leaves temperature unset
        max_tokens: Used when a request leaves max_tokens unset
        timeout: Per-call timeout in seconds, also applied by the agents
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.3,
        max_tokens: int = 1000,
        timeout: int = 30,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Run one chat completion.

        Provider errors propagate unchanged; the agents translate them
        into GenerationFailure.
        """
        request = self.with_defaults(request)
        logger.debug(
            f"{self.provider_name} completion requested",
            extra={
                "provider": self.provider_name,
                "messages": len(request.messages),
                "temperature": request.temperature,
                "max_tokens": request.max_tokens,
            },
        )

        started = time.perf_counter()
        try:
            response = await self._complete(request)
        except Exception as e:
            logger.warning(f"{self.provider_name} completion failed: {type(e).__name__}: {e}")
            raise

        logger.debug(
            f"{self.provider_name} completion finished ({response.finish_reason})",
            extra={
                "provider": self.provider_name,
                "model": response.model,
                "total_tokens": response.usage.total_tokens,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return response

    @abstractmethod
    async def _complete(self, request: LLMRequest) -> LLMResponse:
        """Call the provider API with a request whose defaults are filled."""

    async def aclose(self) -> None:
        """Release network resources held by the provider."""
        return None

    def with_defaults(self, request: LLMRequest) -> LLMRequest:
        """Copy of ``request`` with unset sampling fields taken from the provider."""
        updates = {}
        if request.temperature is None:
            updates["temperature"] = self.temperature
        if request.max_tokens is None:
            updates["max_tokens"] = self.max_tokens
        return request.model_copy(update=updates) if updates else request

    @staticmethod
    def normalize_finish_reason(reason: str | None) -> FinishReason:
        # Unknown or missing reasons count as a normal stop
        return _FINISH_REASONS.get(reason or "", "stop")
