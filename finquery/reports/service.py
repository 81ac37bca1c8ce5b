"""
Report Generation

Collects shaped rows from the requested sheets, asks the report agent for
Markdown and stores the result. A sheet that cannot be read is left out of
the report instead of failing it.
"""

import logging
from collections.abc import Sequence
from typing import Any

from finquery.agents.reports import ReportAgent
from finquery.models.agent import AgentError
from finquery.models.report import Report, ReportSheetData
from finquery.reports.store import ReportStore
from finquery.sources.base import BaseSheetSource, SourceUnavailable
from finquery.sources.shaping import shape

logger = logging.getLogger(__name__)


class ReportGenerationError(Exception):
    """The report content could not be generated; nothing was stored."""

    def __init__(self, report_type: str, cause: BaseException):
        self.report_type = report_type
        self.cause = cause
        super().__init__(f"Failed to generate {report_type} report")

    def to_dict(self, include_detail: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": "report_generation_failed",
            "message": str(self),
            "report_type": self.report_type,
        }
        if include_detail:
            payload["detail"] = str(self.cause)
        return payload


class ReportService:
    """Generate and persist reports from sheet data."""

    def __init__(self, store: ReportStore, source: BaseSheetSource, agent: ReportAgent):
        self.store = store
        self.source = source
        self.agent = agent

    async def collect(self, sheet_ids: Sequence[str]) -> list[ReportSheetData]:
        data = []
        for sheet_id in sheet_ids:
            try:
                matrix = await self.source.fetch_raw(sheet_id)
            except SourceUnavailable as e:
                logger.warning(
                    f"Skipping sheet in report: {e}",
                    extra={"sheet_id": sheet_id, "error_type": type(e).__name__},
                )
                continue
            if not matrix:
                continue
            data.append(ReportSheetData(sheet_id=sheet_id, rows=shape(matrix).rows))
        return data

    async def generate(
        self,
        user_id: str,
        title: str,
        report_type: str,
        description: str = "",
        sheet_ids: Sequence[str] = (),
        parameters: dict[str, Any] | None = None,
    ) -> Report:
        """
        Generate a report and store it for `user_id`.

        Raises:
            ReportGenerationError: The agent failed to produce content
        """
        data = await self.collect(sheet_ids)
        try:
            content = await self.agent.generate(report_type, data, parameters)
        except AgentError as e:
            raise ReportGenerationError(report_type, e) from e

        return await self.store.create(
            user_id=user_id,
            title=title,
            report_type=report_type,
            description=description,
            content=content,
        )
