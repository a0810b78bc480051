"""
Query Generator

Turns a natural-language question into a KQL candidate with a heuristic
confidence score.

Parsing order for model output:
    1. JSON object (fenced ```json block or bare object) with a "kql" or
       "query" field and optional "reasoning"/"explanation"
    2. Fenced code block
    3. The raw text, minus leading labels such as "KQL:"

Confidence depends only on completion status and output structure:
    structured + complete   0.85
    structured + truncated  0.60
    unstructured            capped at 0.50
Malformed output lowers confidence; it never raises.
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

from kqlassist.agents.base import BaseAgent
from kqlassist.llm.base import BaseLLMProvider
from kqlassist.models.query import GeneratedQuery
from kqlassist.pipeline.deadline import Deadline
from kqlassist.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

STRUCTURED_COMPLETE_CONFIDENCE = 0.85
STRUCTURED_TRUNCATED_CONFIDENCE = 0.6
UNSTRUCTURED_CONFIDENCE_CAP = 0.5
DEFAULT_FIRST_ATTEMPT_TEMPERATURE = 0.3

_BACKEND_LABELS = {
    "application-insights": "Azure Application Insights",
    "log-analytics": "an Azure Log Analytics workspace",
    "azure-data-explorer": "Azure Data Explorer",
}

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_FENCED_BLOCK = re.compile(r"```(?:kql|kusto|sql)?[ \t]*\n?(.*?)```", re.DOTALL | re.IGNORECASE)
_LEADING_LABEL = re.compile(r"^\s*(?:kql(?:\s+query)?|kusto(?:\s+query)?|query)\s*:\s*", re.IGNORECASE)


def score_confidence(structured: bool, truncated: bool) -> float:
    """Heuristic confidence from output structure and completion status."""
    if structured:
        score = STRUCTURED_TRUNCATED_CONFIDENCE if truncated else STRUCTURED_COMPLETE_CONFIDENCE
    else:
        base = STRUCTURED_TRUNCATED_CONFIDENCE if truncated else STRUCTURED_COMPLETE_CONFIDENCE
        score = min(base, UNSTRUCTURED_CONFIDENCE_CAP)
    return min(max(score, 0.0), 1.0)


def _has_query_field(data: Any) -> bool:
    return isinstance(data, dict) and ("kql" in data or "query" in data)


def find_json_object(
    content: str, accept: Callable[[Any], bool] = _has_query_field
) -> dict[str, Any] | None:
    """Return the first JSON object in ``content`` that ``accept`` approves."""
    fenced = _FENCED_JSON.search(content)
    if fenced:
        try:
            data = json.loads(fenced.group(1))
        except json.JSONDecodeError as e:
            logger.debug(f"Invalid JSON in fenced block: {e}")
        else:
            if accept(data):
                return data

    # Prose around the object may contain braces of its own
    decoder = json.JSONDecoder()
    start = content.find("{")
    while start != -1:
        try:
            data, _ = decoder.raw_decode(content, start)
        except json.JSONDecodeError:
            data = None
        if data is not None and accept(data):
            return data
        start = content.find("{", start + 1)
    return None


def _strip_labels(text: str) -> str:
    return _LEADING_LABEL.sub("", text.strip(), count=1).strip()


def parse_generated_query(content: str, truncated: bool = False) -> GeneratedQuery:
    """
    Parse raw model output into a GeneratedQuery.

    Args:
        content: Raw completion text (non-empty)
        truncated: Whether the completion hit the token limit

    Returns:
        GeneratedQuery; structure problems only lower the confidence
    """
    data = find_json_object(content)
    if data is not None:
        query_value = data.get("kql") or data.get("query")
        if isinstance(query_value, str) and query_value.strip():
            reasoning = data.get("reasoning") or data.get("explanation")
            return GeneratedQuery(
                query_text=query_value.strip(),
                confidence=score_confidence(structured=True, truncated=truncated),
                reasoning=str(reasoning) if reasoning else None,
            )

    fenced = _FENCED_BLOCK.search(content)
    if fenced and fenced.group(1).strip():
        query_text = _strip_labels(fenced.group(1))
    else:
        query_text = _strip_labels(content)

    logger.info(
        "Model output was not structured; using fallback extraction",
        extra={"truncated": truncated, "fenced": bool(fenced)},
    )
    return GeneratedQuery(
        query_text=query_text,
        confidence=score_confidence(structured=False, truncated=truncated),
    )


class QueryGenerator(BaseAgent):
    """
    Query Generation Gateway.

    Usage:
        generator = QueryGenerator(provider, backend="log-analytics")
        query = await generator.generate("failed requests per hour today")
        print(query.query_text, query.confidence)
    """

    def __init__(
        self,
        llm_provider: BaseLLMProvider,
        backend: str = "application-insights",
        prompts: PromptLoader | None = None,
        temperature: float = DEFAULT_FIRST_ATTEMPT_TEMPERATURE,
    ):
        super().__init__(name="QueryGenerator", llm_provider=llm_provider, prompts=prompts)
        self.backend = backend
        self.temperature = temperature

    def system_prompt(self, schema_hint: str | None = None) -> str:
        return self.prompts.render(
            "system/kql_generator.md",
            backend=self.backend,
            backend_label=_BACKEND_LABELS.get(self.backend, self.backend),
            schema_hint=schema_hint,
        )

    async def generate(
        self,
        user_input: str,
        schema_hint: str | None = None,
        prior_context: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> GeneratedQuery:
        """
        Generate a KQL candidate for a question.

        Args:
            user_input: Natural-language question
            schema_hint: Optional JSON schema description of the backend
            prior_context: Optional summary of earlier turns
            deadline: Turn deadline

        Raises:
            GenerationFailure: Upstream call failed or returned no content
        """
        user_prompt = self.prompts.render(
            "agents/kql_generation.md",
            user_input=user_input,
            prior_context=prior_context,
        )
        query = await self.generate_from_prompt(
            user_prompt,
            schema_hint,
            temperature=self.temperature,
            deadline=deadline,
        )
        logger.info(
            "Generated KQL candidate",
            extra={"confidence": query.confidence, "query_length": len(query.query_text)},
        )
        return query

    async def generate_from_prompt(
        self,
        user_prompt: str,
        schema_hint: str | None = None,
        *,
        temperature: float | None = None,
        deadline: Deadline | None = None,
    ) -> GeneratedQuery:
        """Run one completion for a prepared user prompt and parse the result."""
        response = await self._call_llm(
            self.system_prompt(schema_hint),
            user_prompt,
            temperature=temperature,
            deadline=deadline,
            stage="generate",
        )
        return parse_generated_query(response.content, truncated=response.truncated)
