"""
FinQuery Models Module

Pydantic models shared across the application.

Usage:
    from finquery.models.query import QuerySpec, ExecutionResult
    from finquery.models.sheet import ShapedTable, SchemaContext
    from finquery.models import QueryHistoryEntry
"""

from finquery.models.agent import AgentError, InterpretationParseError, LLMError
from finquery.models.history import FeedbackEntry, FeedbackType, QueryHistoryEntry
from finquery.models.pipeline import QuerySubmissionResult, ReplayResult
from finquery.models.report import Report
from finquery.models.query import (
    AggregationSpec,
    CellValue,
    ExecutionResult,
    FilterClause,
    QuerySpec,
    SortSpec,
)
from finquery.models.sheet import (
    ColumnMetadata,
    DataType,
    RawMatrix,
    SchemaContext,
    ShapedTable,
    SheetMetadata,
    SyncResult,
)

__all__ = [
    "AgentError",
    "AggregationSpec",
    "CellValue",
    "ColumnMetadata",
    "DataType",
    "ExecutionResult",
    "FeedbackEntry",
    "FeedbackType",
    "FilterClause",
    "InterpretationParseError",
    "LLMError",
    "QueryHistoryEntry",
    "QuerySpec",
    "QuerySubmissionResult",
    "RawMatrix",
    "ReplayResult",
    "Report",
    "SchemaContext",
    "ShapedTable",
    "SheetMetadata",
    "SortSpec",
    "SyncResult",
]
