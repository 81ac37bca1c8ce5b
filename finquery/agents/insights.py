"""
Insight Generator

Narrative summary of an executed result. Callers treat it as best-effort:
a failure here never changes the outcome of the query it describes.
"""

import json
import logging
from typing import Any

from finquery.agents.base import BaseAgent
from finquery.llm.base import BaseLLMProvider
from finquery.models.sheet import ColumnMetadata
from finquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

PROMPT_PATH = "agents/insight_generator.md"


class InsightAgent(BaseAgent):
    """Summarize result rows in prose."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        max_tokens: int = 2000,
        preview_rows: int = 3,
        prompts: PromptLoader | None = None,
    ):
        super().__init__(name="InsightAgent", llm=llm, prompts=prompts, max_retries=0)
        self.max_tokens = max_tokens
        self.preview_rows = preview_rows

    def build_prompt(
        self,
        rows: list[dict[str, Any]],
        sheet_name: str | None,
        columns: list[ColumnMetadata],
    ) -> str:
        preview = [
            json.dumps(row, indent=2, default=str) for row in rows[: self.preview_rows]
        ]
        return self.render_prompt(
            PROMPT_PATH,
            sheet_name=sheet_name,
            columns=columns,
            preview=preview,
            remaining=max(len(rows) - len(preview), 0),
            full_data=json.dumps(rows, default=str),
        )

    async def generate(
        self,
        rows: list[dict[str, Any]],
        sheet_name: str | None = None,
        columns: list[ColumnMetadata] | None = None,
    ) -> str:
        """
        Generate an insight for the given rows.

        Raises:
            LLMError: The text-generation call failed
        """
        prompt = self.build_prompt(rows, sheet_name or "Unknown sheet", columns or [])
        insight = await self.call_llm(prompt, max_tokens=self.max_tokens)
        return insight.strip()
