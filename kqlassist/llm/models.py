"""
LLM Exchange Models

Provider-neutral shapes passed to and returned by BaseLLMProvider.
Query generation only ever sends one system + user exchange, and it needs
to know whether the completion was cut short so a half-written query is
not trusted.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant"]
FinishReason = Literal["stop", "length", "content_filter", "error"]


class LLMMessage(BaseModel):
    """One chat turn."""

    role: Role
    content: str = Field(..., min_length=1)


class LLMRequest(BaseModel):
    """
    Chat completion request.

    ``temperature`` and ``max_tokens`` left as None are filled from the
    provider defaults. ``metadata`` is forwarded to the provider API as
    extra keyword arguments.
    """

    messages: list[LLMMessage] = Field(..., min_length=1)
    temperature: float | None = Field(None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(None, gt=0)
    model: str | None = Field(None, description="Model name or Azure deployment override")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def exchange(
        cls,
        system_prompt: str,
        user_prompt: str,
        temperature: float | None = None,
    ) -> "LLMRequest":
        """Build the system + user pair the agents send."""
        return cls(
            messages=[
                LLMMessage(role="system", content=system_prompt),
                LLMMessage(role="user", content=user_prompt),
            ],
            temperature=temperature,
        )


class LLMUsage(BaseModel):
    """Token accounting reported by the provider (zeros when it reports none)."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: int | None,
        completion_tokens: int | None,
        total_tokens: int | None = None,
    ) -> "LLMUsage":
        prompt = prompt_tokens or 0
        completion = completion_tokens or 0
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total_tokens if total_tokens is not None else prompt + completion,
        )


class LLMResponse(BaseModel):
    """Completion text plus where it came from and why it stopped."""

    content: str
    model: str
    finish_reason: FinishReason
    provider: str = Field(..., description="openai, azure-openai or local")
    usage: LLMUsage = Field(default_factory=LLMUsage)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        """True when the token limit cut the completion off."""
        return self.finish_reason == "length"
