"""
Base Agent Framework

Shared plumbing for the LLM-backed agents: provider and prompt access,
deadline-aware calls, logging, and translation of upstream failures.

Usage:
    class MyAgent(BaseAgent):
        def __init__(self, llm_provider):
            super().__init__(name="MyAgent", llm_provider=llm_provider)

        async def run(self, text: str) -> str:
            response = await self._call_llm(system_prompt, text, stage="my_agent")
            return response.content
"""

import logging
import time

from kqlassist.llm.base import BaseLLMProvider
from kqlassist.llm.models import LLMRequest, LLMResponse
from kqlassist.models.errors import GenerationFailure, KQLAssistError
from kqlassist.pipeline.deadline import Deadline
from kqlassist.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)


class BaseAgent:
    """
    Base class for agents that call a language model.

    Attributes:
        name: Identifier used as the error component and in logs
        llm: Provider used for completions
        prompts: Template loader
    """

    def __init__(
        self,
        name: str,
        llm_provider: BaseLLMProvider,
        prompts: PromptLoader | None = None,
    ):
        self.name = name
        self.llm = llm_provider
        self.prompts = prompts or PromptLoader()

        logger.debug(
            f"Initialized {self.name}",
            extra={"agent": self.name, "provider": llm_provider.provider_name},
        )

    async def _call_llm(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        deadline: Deadline | None = None,
        stage: str = "generate",
    ) -> LLMResponse:
        """
        Send one system + user exchange to the provider.

        Raises:
            GenerationFailure: Upstream call failed or returned no content
            DeadlineExceeded: The turn deadline ran out
        """
        deadline = deadline or Deadline.unbounded()
        request = LLMRequest.exchange(system_prompt, user_prompt, temperature=temperature)

        start_time = time.perf_counter()
        try:
            response = await deadline.run(
                self.llm.generate(request), stage, timeout=self.llm.timeout
            )
        except KQLAssistError:
            raise
        except TimeoutError as e:
            raise GenerationFailure(
                self.name,
                f"Language model did not answer within {self.llm.timeout}s",
                context={"stage": stage},
            ) from e
        except Exception as e:
            logger.error(f"{self.name} LLM call failed: {e}", exc_info=True)
            raise GenerationFailure(
                self.name,
                f"Language model call failed: {e}",
                context={"stage": stage, "provider": self.llm.provider_name},
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            f"{self.name} received completion",
            extra={
                "agent": self.name,
                "stage": stage,
                "duration_ms": round(duration_ms, 1),
                "finish_reason": response.finish_reason,
                "total_tokens": response.usage.total_tokens,
            },
        )

        if not response.content or not response.content.strip():
            raise GenerationFailure(
                self.name,
                "Language model returned empty content",
                context={"stage": stage, "finish_reason": response.finish_reason},
            )
        return response
