"""Example questions generated from the registered sheets."""

import logging

from finquery.agents.base import BaseAgent
from finquery.agents.parsing import parse_lenient, parse_strict
from finquery.llm.base import BaseLLMProvider
from finquery.models.agent import LLMError
from finquery.models.sheet import SchemaContext
from finquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

PROMPT_PATH = "agents/query_suggestions.md"


class SuggestionAgent(BaseAgent):
    """Suggest natural-language queries; always returns a list, possibly empty."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        max_tokens: int = 1000,
        count: int = 5,
        prompts: PromptLoader | None = None,
    ):
        super().__init__(name="SuggestionAgent", llm=llm, prompts=prompts, max_retries=0)
        self.max_tokens = max_tokens
        self.count = count

    async def suggest(self, schema_context: SchemaContext) -> list[str]:
        if not schema_context.sheets:
            return []

        prompt = self.render_prompt(PROMPT_PATH, schema_context=schema_context, count=self.count)
        try:
            content = await self.call_llm(prompt, max_tokens=self.max_tokens)
        except LLMError as e:
            logger.warning(f"Query suggestions unavailable: {e}")
            return []

        result = parse_lenient(content, "[", "]")
        if not result.ok:
            result = parse_strict(content)
        if not result.ok or not isinstance(result.payload, list):
            logger.warning(
                "Failed to parse suggested queries",
                extra={"agent": self.name, "error": result.error},
            )
            return []

        return [str(item).strip() for item in result.payload if str(item).strip()]
