"""
API Request/Response Models

Pydantic models for FastAPI endpoints. Query results reuse the pipeline
models and are serialized camelCase.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finquery.models.history import FeedbackType, QueryHistoryEntry
from finquery.models.sheet import ColumnMetadata, DataType, SheetMetadata

_CAMEL_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryRequest(BaseModel):
    """Request model for query submission."""

    query: str = Field(..., min_length=1, description="Natural-language question")

    model_config = {
        "json_schema_extra": {
            "examples": [{"query": "Show expenses over 1000 sorted by amount"}]
        }
    }


class FeedbackRequest(BaseModel):
    """Feedback on a past query."""

    feedback_type: FeedbackType = Field(..., description="helpful, not_helpful or incorrect")
    feedback_text: str | None = Field(
        default=None, max_length=4000, description="Optional free-text comment"
    )

    model_config = _CAMEL_CONFIG


class FeedbackResponse(BaseModel):
    """Stored feedback entry id."""

    ok: bool = True
    feedback_id: int
    query_history_id: int
    created_at: datetime | None = None

    model_config = _CAMEL_CONFIG


class HistoryResponse(BaseModel):
    """Recent queries for the calling user, newest first."""

    entries: list[QueryHistoryEntry] = Field(default_factory=list)


class SuggestionsResponse(BaseModel):
    suggestions: list[str] = Field(default_factory=list)


class SheetCreateRequest(BaseModel):
    """Register a spreadsheet by its source identifier."""

    sheet_id: str = Field(..., min_length=1, description="Spreadsheet identifier")
    name: str | None = Field(None, description="Display name (defaults to the sheet title)")
    description: str = Field(default="", description="What the sheet contains")
    access_level: str = Field(default="read", description="Access level label")
    sync: bool = Field(default=True, description="Sync column metadata after registering")


class SheetDetailResponse(BaseModel):
    sheet: SheetMetadata
    columns: list[ColumnMetadata] = Field(default_factory=list)


class ColumnUpdateRequest(BaseModel):
    """Editable column fields; at least one must be set."""

    display_name: str | None = Field(None, min_length=1)
    data_type: DataType | None = None
    description: str | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Service status: 'healthy' or 'unhealthy'")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Current timestamp (ISO 8601)")


class ReadinessResponse(BaseModel):
    """Readiness check response."""

    status: str = Field(..., description="'ready' or 'not_ready'")
    checks: dict[str, bool] = Field(default_factory=dict)


class SheetDataResponse(BaseModel):
    """Shaped rows of a sheet window."""

    headers: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)


class ReportCreateRequest(BaseModel):
    """Store a hand-written report."""

    title: str = Field(..., min_length=1)
    report_type: str = Field(..., min_length=1, description="e.g. monthly_summary")
    description: str = ""
    content: str = Field(default="", description="Markdown body")

    model_config = _CAMEL_CONFIG


class ReportUpdateRequest(BaseModel):
    """Editable report fields; at least one must be set."""

    title: str | None = Field(None, min_length=1)
    description: str | None = None
    content: str | None = None

    model_config = _CAMEL_CONFIG


class ReportGenerateRequest(BaseModel):
    """Generate a report from sheet data with the LLM."""

    title: str = Field(..., min_length=1)
    report_type: str = Field(
        ...,
        min_length=1,
        description="monthly_summary, trend_analysis, variance_report or any other label",
    )
    description: str = ""
    sheets: list[str] = Field(default_factory=list, description="Sheet ids to read")
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Extra instructions listed in the prompt"
    )

    model_config = _CAMEL_CONFIG
