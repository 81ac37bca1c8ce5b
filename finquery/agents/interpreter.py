"""
Query Interpreter

Turns a natural-language question plus the current sheet/column catalog
into a QuerySpec using the text-generation collaborator. Only the shape of
the model's JSON is normalized here; operators, directions and aggregation
functions are passed through for the executor to tolerate.
"""

import logging

from finquery.agents.base import BaseAgent
from finquery.agents.parsing import parse_json_object
from finquery.llm.base import BaseLLMProvider
from finquery.models.agent import InterpretationParseError
from finquery.models.query import QuerySpec
from finquery.models.sheet import SchemaContext
from finquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

PROMPT_PATH = "agents/query_interpreter.md"


class QueryInterpreterAgent(BaseAgent):
    """Natural-language query to QuerySpec."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        max_tokens: int = 1000,
        prompts: PromptLoader | None = None,
        max_retries: int = 1,
    ):
        super().__init__(
            name="QueryInterpreterAgent",
            llm=llm,
            prompts=prompts,
            max_retries=max_retries,
        )
        self.max_tokens = max_tokens

    def build_prompt(self, query_text: str, schema_context: SchemaContext) -> str:
        return self.render_prompt(PROMPT_PATH, query=query_text, schema_context=schema_context)

    async def interpret(self, query_text: str, schema_context: SchemaContext) -> QuerySpec:
        """
        Interpret a query.

        Raises:
            LLMError: The text-generation call failed
            InterpretationParseError: The response held no decodable JSON object
        """
        prompt = self.build_prompt(query_text, schema_context)
        content = await self.call_llm(prompt, max_tokens=self.max_tokens)

        result = parse_json_object(content)
        if not result.ok:
            logger.warning(
                "Could not parse interpretation",
                extra={"agent": self.name, "stage": result.stage, "error": result.error},
            )
            raise InterpretationParseError(
                agent=self.name,
                message="Failed to parse LLM response as JSON",
                context={"parse_error": result.error, "response_preview": content[:200]},
            )

        spec = QuerySpec.from_payload(result.payload)
        logger.info(
            "Interpreted query",
            extra={
                "agent": self.name,
                "parse_stage": result.stage,
                "target_sheet": spec.target_sheet,
                "filter_count": len(spec.filters),
                "confidence": spec.confidence_score,
                "needs_clarification": spec.needs_clarification,
            },
        )
        return spec
