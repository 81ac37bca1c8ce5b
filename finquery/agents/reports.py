"""
Report Generator

Writes a Markdown report of a given type from shaped sheet rows. Known
report types come with a fixed section outline (see REPORT_SECTIONS).
"""

import json
import logging
from typing import Any

from finquery.agents.base import BaseAgent
from finquery.llm.base import BaseLLMProvider
from finquery.models.report import REPORT_SECTIONS, ReportSheetData
from finquery.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

PROMPT_PATH = "agents/report_generator.md"


class ReportAgent(BaseAgent):
    """Generate report content as Markdown."""

    def __init__(
        self,
        llm: BaseLLMProvider,
        max_tokens: int = 4000,
        prompts: PromptLoader | None = None,
    ):
        super().__init__(name="ReportAgent", llm=llm, prompts=prompts)
        self.max_tokens = max_tokens

    def build_prompt(
        self,
        report_type: str,
        data: list[ReportSheetData],
        parameters: dict[str, Any] | None = None,
    ) -> str:
        key = report_type.strip().lower()
        return self.render_prompt(
            PROMPT_PATH,
            report_label=key.replace("_", " "),
            sections=REPORT_SECTIONS.get(key, ()),
            parameters=parameters or {},
            data=json.dumps(
                [{"sheetId": item.sheet_id, "data": item.rows} for item in data],
                indent=2,
                default=str,
            ),
        )

    async def generate(
        self,
        report_type: str,
        data: list[ReportSheetData],
        parameters: dict[str, Any] | None = None,
    ) -> str:
        """
        Generate report Markdown.

        Raises:
            LLMError: The text-generation call failed
        """
        prompt = self.build_prompt(report_type, data, parameters)
        content = await self.call_llm(prompt, max_tokens=self.max_tokens)
        logger.info(
            "Generated report content",
            extra={"report_type": report_type, "sheets": len(data), "chars": len(content)},
        )
        return content.strip()
