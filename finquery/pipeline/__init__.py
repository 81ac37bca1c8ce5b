"""Query submission pipeline."""

from finquery.pipeline.orchestrator import (
    HistoryNotFoundError,
    PipelineError,
    QueryFailedError,
    QueryPipeline,
    ReplayUnavailableError,
)

__all__ = [
    "HistoryNotFoundError",
    "PipelineError",
    "QueryFailedError",
    "QueryPipeline",
    "ReplayUnavailableError",
]
