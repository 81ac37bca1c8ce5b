"""Query history and feedback records."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from finquery.models.query import QuerySpec

FeedbackType = Literal["helpful", "not_helpful", "incorrect"]


class QueryHistoryEntry(BaseModel):
    """
    A submitted query.

    Created before interpretation starts so that every submission is
    auditable; `success` and `error_message` are filled in afterwards.
    """

    id: int
    user_id: str
    query_text: str
    query_spec: QuerySpec | None = None
    created_at: datetime
    success: bool | None = None
    error_message: str | None = None


class FeedbackEntry(BaseModel):
    """User feedback on a past query."""

    id: int
    query_history_id: int
    user_id: str
    feedback_type: FeedbackType
    feedback_text: str | None = None
    created_at: datetime | None = Field(default=None)
