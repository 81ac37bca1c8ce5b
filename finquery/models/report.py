"""Generated and hand-written financial reports."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

# Report types with a dedicated section outline; any other label gets a
# general-purpose financial report.
REPORT_SECTIONS: dict[str, tuple[str, ...]] = {
    "monthly_summary": (
        "Executive Summary",
        "Revenue Analysis",
        "Expense Breakdown",
        "Profit & Loss Statement",
        "Cash Flow Overview",
        "Key Performance Indicators",
        "Recommendations",
    ),
    "trend_analysis": (
        "Historical Trends Overview",
        "Seasonality Analysis",
        "Growth Rate Calculation",
        "Comparative Performance",
        "Future Projections",
        "Risk Factors",
        "Strategic Opportunities",
    ),
    "variance_report": (
        "Variance Summary",
        "Key Deviations Analysis",
        "Contributing Factors",
        "Impact Assessment",
        "Corrective Actions",
        "Updated Forecasts",
    ),
}


class Report(BaseModel):
    """A stored report. `content` is Markdown."""

    id: int
    title: str
    description: str = ""
    report_type: str
    content: str = ""
    created_by: str
    created_at: datetime
    updated_at: datetime


class ReportSheetData(BaseModel):
    """Shaped rows of one sheet handed to the report prompt."""

    sheet_id: str
    rows: list[dict[str, Any]] = Field(default_factory=list)
