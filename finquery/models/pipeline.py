"""Caller-facing results of the query pipeline."""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from finquery.models.query import ExecutionResult, QuerySpec

_RESULT_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuerySubmissionResult(BaseModel):
    """
    Outcome of a successful submission.

    Either `needs_clarification` is set with a question, or an execution
    result is present. A zero-row result is still a success.
    """

    history_id: int
    query_spec: QuerySpec
    needs_clarification: bool = False
    clarification_question: str | None = None
    execution_result: ExecutionResult | None = None
    insight: str | None = None

    model_config = _RESULT_CONFIG

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReplayResult(BaseModel):
    """A stored plan re-executed against current data."""

    history_id: int
    query_text: str
    query_spec: QuerySpec
    execution_result: ExecutionResult
    insight: str | None = None
    replayed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = _RESULT_CONFIG

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
