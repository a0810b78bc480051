"""Tests for LLM request and response models."""

import pytest
from pydantic import ValidationError

from kqlassist.llm.models import LLMMessage, LLMRequest, LLMResponse, LLMUsage


def test_request_requires_messages():
    with pytest.raises(ValidationError):
        LLMRequest(messages=[])


def test_message_requires_content():
    with pytest.raises(ValidationError):
        LLMMessage(role="user", content="")


@pytest.mark.parametrize("finish_reason,truncated", [("stop", False), ("length", True)])
def test_response_truncated(finish_reason, truncated):
    response = LLMResponse(content="x", model="m", finish_reason=finish_reason, provider="openai")

    assert response.truncated is truncated
    assert response.usage.total_tokens == 0


def test_exchange_builds_system_and_user_messages():
    request = LLMRequest.exchange("You write KQL.", "errors today", temperature=0.7)

    assert [m.role for m in request.messages] == ["system", "user"]
    assert request.messages[1].content == "errors today"
    assert request.temperature == 0.7
    assert request.max_tokens is None


def test_usage_from_counts_derives_total():
    assert LLMUsage.from_counts(12, None).total_tokens == 12
    assert LLMUsage.from_counts(3, 4, 9).total_tokens == 9
