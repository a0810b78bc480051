"""
Unit tests for QueryGenerator.

Tests:
- Structured and fallback parsing of model output
- Confidence scoring from structure and completion status
- Prompt construction per backend
"""

import json

import pytest

from kqlassist.agents.generator import (
    QueryGenerator,
    find_json_object,
    parse_generated_query,
    score_confidence,
)
from kqlassist.models import REASONING_PLACEHOLDER, GenerationFailure


class TestScoreConfidence:
    """Confidence heuristic."""

    def test_structured_complete(self):
        assert score_confidence(structured=True, truncated=False) == 0.85

    def test_structured_truncated(self):
        assert score_confidence(structured=True, truncated=True) == 0.6

    @pytest.mark.parametrize("truncated", [False, True])
    def test_unstructured_capped(self, truncated):
        assert score_confidence(structured=False, truncated=truncated) <= 0.5


class TestParseGeneratedQuery:
    """Parsing model output."""

    def test_bare_json(self):
        query = parse_generated_query(
            '{"kql": "requests | summarize count() by bin(timestamp, 1h)", "reasoning": "hourly"}'
        )

        assert query.query_text == "requests | summarize count() by bin(timestamp, 1h)"
        assert query.reasoning == "hourly"
        assert query.confidence == 0.85

    def test_fenced_json_with_prose(self):
        content = (
            "Here you go:\n```json\n"
            + json.dumps({"query": "traces | take 5", "explanation": "sample"})
            + "\n```\nLet me know!"
        )

        query = parse_generated_query(content)

        assert query.query_text == "traces | take 5"
        assert query.reasoning == "sample"

    def test_bare_json_followed_by_braced_prose(self):
        content = (
            '{"kql": "requests | take 10", "reasoning": "simple"}\n\n'
            "Tip: use {braces} for dynamic values."
        )

        query = parse_generated_query(content)

        assert query.query_text == "requests | take 10"
        assert query.reasoning == "simple"
        assert query.confidence == 0.85

    def test_braced_prose_before_bare_json(self):
        query = parse_generated_query(
            'For {your question} here you go: {"kql": "requests | take 10"}'
        )

        assert query.query_text == "requests | take 10"
        assert query.confidence == 0.85

    def test_nested_json_in_fence(self):
        content = "```json\n" + json.dumps({"kql": "traces", "meta": {"rows": 5}}) + "\n```"

        query = parse_generated_query(content)

        assert query.query_text == "traces"

    def test_truncated_structured(self):
        query = parse_generated_query('{"kql": "requests"}', truncated=True)

        assert query.confidence == 0.6
        assert query.reasoning == REASONING_PLACEHOLDER

    def test_fenced_kql_block(self):
        query = parse_generated_query("Try this:\n```kql\nexceptions\n| take 10\n```")

        assert query.query_text == "exceptions\n| take 10"
        assert query.confidence <= 0.5
        assert query.reasoning == REASONING_PLACEHOLDER

    def test_raw_text_with_label(self):
        query = parse_generated_query("KQL: requests | where success == false")

        assert query.query_text == "requests | where success == false"
        assert query.confidence <= 0.5

    def test_json_without_query_field_falls_back(self):
        query = parse_generated_query('{"answer": "no"}')

        assert query.confidence <= 0.5
        assert query.query_text == '{"answer": "no"}'

    def test_malformed_json_never_raises(self):
        query = parse_generated_query('{"kql": "requests | take 1", ')

        assert query.confidence <= 0.5


class TestFindJsonObject:
    """Locating a JSON object in free text."""

    def test_skips_objects_the_predicate_rejects(self):
        content = 'Config was {"retries": 3}; answer: {"trends": ["up"]} done'

        data = find_json_object(content, accept=lambda d: isinstance(d, dict) and "trends" in d)

        assert data == {"trends": ["up"]}

    def test_default_predicate_wants_a_query(self):
        assert find_json_object('{"trends": ["up"]}') is None
        assert find_json_object("no braces here") is None


class TestQueryGenerator:
    """Generation through the LLM provider."""

    @pytest.mark.asyncio
    async def test_generate(self, mock_llm_provider):
        mock_llm_provider.set_response('{"kql": "requests | take 10", "reasoning": "sample"}')
        generator = QueryGenerator(mock_llm_provider, backend="log-analytics")

        query = await generator.generate("show me some requests", prior_context="earlier turn")

        assert query.query_text == "requests | take 10"
        request = mock_llm_provider.last_request
        system, user = request.messages
        assert system.role == "system"
        assert "TimeGenerated" in system.content
        assert "show me some requests" in user.content
        assert "earlier turn" in user.content
        assert request.temperature == 0.3

    @pytest.mark.asyncio
    async def test_truncated_response_lowers_confidence(self, mock_llm_provider):
        mock_llm_provider.set_response('{"kql": "requests"}', finish_reason="length")
        generator = QueryGenerator(mock_llm_provider)

        query = await generator.generate("anything")

        assert query.confidence == 0.6

    @pytest.mark.asyncio
    async def test_schema_hint_in_system_prompt(self, mock_llm_provider):
        mock_llm_provider.set_response('{"kql": "T | take 1"}')
        generator = QueryGenerator(mock_llm_provider, backend="azure-data-explorer")

        await generator.generate("rows", schema_hint='{"tables": [{"name": "StormEvents"}]}')

        system = mock_llm_provider.last_request.messages[0].content
        assert "Azure Data Explorer" in system
        assert "StormEvents" in system

    @pytest.mark.asyncio
    async def test_empty_response_is_generation_failure(self, mock_llm_provider):
        mock_llm_provider.set_response("   ")
        generator = QueryGenerator(mock_llm_provider)

        with pytest.raises(GenerationFailure):
            await generator.generate("anything")

    @pytest.mark.asyncio
    async def test_provider_error_is_generation_failure(self, mock_llm_provider):
        mock_llm_provider.generate.side_effect = RuntimeError("connection reset")
        generator = QueryGenerator(mock_llm_provider)

        with pytest.raises(GenerationFailure) as exc_info:
            await generator.generate("anything")

        assert "connection reset" in exc_info.value.message
        assert exc_info.value.component == "QueryGenerator"
