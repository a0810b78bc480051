"""Plain-language explanations of KQL queries."""

import logging
from typing import Literal

from kqlassist.agents.base import BaseAgent
from kqlassist.llm.base import BaseLLMProvider
from kqlassist.pipeline.deadline import Deadline
from kqlassist.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

TechnicalLevel = Literal["beginner", "intermediate", "advanced"]

LANGUAGE_INSTRUCTIONS = {
    "en": "Respond in English.",
    "ja": "日本語で回答してください。技術用語は英語と日本語の両方を併記してください。",
    "ko": "한국어로 답변해 주세요. 기술 용어는 영어와 한국어를 모두 병기해 주세요.",
    "zh": "请用中文回答。技术术语请同时提供英文和中文。",
    "es": "Responde en español. Incluye los términos técnicos también en inglés.",
    "fr": "Répondez en français. Indiquez aussi les termes techniques en anglais.",
    "de": "Antworten Sie auf Deutsch. Nennen Sie Fachbegriffe zusätzlich auf Englisch.",
}

_LANGUAGE_ALIASES = {
    "english": "en",
    "japanese": "ja",
    "korean": "ko",
    "chinese": "zh",
    "spanish": "es",
    "french": "fr",
    "german": "de",
}


def language_instruction(language: str) -> str:
    code = language.strip().lower()
    code = _LANGUAGE_ALIASES.get(code, code)
    return LANGUAGE_INSTRUCTIONS.get(code, LANGUAGE_INSTRUCTIONS["en"])


class QueryExplainer(BaseAgent):
    """Explains a KQL query for the reviewer."""

    def __init__(self, llm_provider: BaseLLMProvider, prompts: PromptLoader | None = None):
        super().__init__(name="QueryExplainer", llm_provider=llm_provider, prompts=prompts)

    async def explain(
        self,
        query: str,
        language: str = "en",
        technical_level: TechnicalLevel = "intermediate",
        *,
        deadline: Deadline | None = None,
    ) -> str:
        """
        Explain a query.

        Raises:
            GenerationFailure: Upstream call failed or returned no content
        """
        system_prompt = self.prompts.render(
            "agents/kql_explanation.md",
            language_instruction=language_instruction(language),
            technical_level=technical_level,
        )
        response = await self._call_llm(
            system_prompt,
            f"Explain this KQL query:\n\n{query}",
            deadline=deadline,
            stage="explain",
        )
        logger.debug(
            "Generated query explanation",
            extra={"language": language, "technical_level": technical_level},
        )
        return response.content.strip()
