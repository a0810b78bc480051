"""
Query Regenerator

Produces a structurally different query after a rejection. Only the
immediately preceding query is shown to the model. The attempt number is
not bounded here; the pipeline enforces the per-turn cap.
"""

import logging

from kqlassist.agents.generator import QueryGenerator
from kqlassist.models.query import GeneratedQuery, RegenerationContext
from kqlassist.pipeline.deadline import Deadline

logger = logging.getLogger(__name__)

DEFAULT_REGENERATION_TEMPERATURE = 0.7


class QueryRegenerator:
    """
    Regeneration Controller.

    Reuses the generator's completion and parsing path with a composite
    prompt and a higher temperature.
    """

    def __init__(
        self,
        generator: QueryGenerator,
        temperature: float = DEFAULT_REGENERATION_TEMPERATURE,
    ):
        if temperature < generator.temperature:
            raise ValueError(
                f"Regeneration temperature ({temperature}) must not be lower than the "
                f"first-attempt temperature ({generator.temperature})"
            )
        self.generator = generator
        self.temperature = temperature

    def build_prompt(self, user_input: str, context: RegenerationContext) -> str:
        """Composite prompt referencing the attempt number and previous query."""
        return self.generator.prompts.render(
            "agents/kql_regeneration.md",
            user_input=user_input,
            attempt_number=context.attempt_number,
            previous_query=context.previous_query_text,
            previous_reasoning=context.previous_reasoning,
            feedback=context.feedback,
        )

    async def regenerate(
        self,
        user_input: str,
        context: RegenerationContext,
        schema_hint: str | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> GeneratedQuery:
        """
        Generate a replacement for a rejected query.

        Raises:
            GenerationFailure: Upstream call failed or returned no content
        """
        logger.info(
            f"Regenerating KQL query (attempt {context.attempt_number})",
            extra={
                "attempt": context.attempt_number,
                "has_feedback": context.feedback is not None,
            },
        )
        query = await self.generator.generate_from_prompt(
            self.build_prompt(user_input, context),
            schema_hint,
            temperature=self.temperature,
            deadline=deadline,
        )
        if query.query_text.strip() == context.previous_query_text.strip():
            logger.warning(
                "Regenerated query is identical to the rejected one",
                extra={"attempt": context.attempt_number},
            )
        return query
