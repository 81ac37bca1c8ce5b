"""Feedback routes for query interpretation quality."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from finquery.api.dependencies import get_pipeline, get_user_id
from finquery.models.api import FeedbackRequest, FeedbackResponse
from finquery.models.history import FeedbackEntry
from finquery.pipeline.orchestrator import QueryPipeline

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post(
    "/queries/{history_id}/feedback",
    response_model=FeedbackResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_feedback(
    history_id: int,
    payload: FeedbackRequest,
    user_id: str = Depends(get_user_id),
    pipeline: QueryPipeline = Depends(get_pipeline),
) -> FeedbackResponse:
    """Persist feedback; learning from it happens in the background."""
    entry = await pipeline.submit_feedback(
        history_id,
        user_id,
        payload.feedback_type,
        payload.feedback_text,
    )
    return FeedbackResponse(
        feedback_id=entry.id,
        query_history_id=entry.query_history_id,
        created_at=entry.created_at,
    )


@router.get("/queries/{history_id}/feedback", response_model=list[FeedbackEntry])
async def list_feedback(
    history_id: int,
    user_id: str = Depends(get_user_id),
    pipeline: QueryPipeline = Depends(get_pipeline),
) -> list[FeedbackEntry]:
    return await pipeline.list_feedback(history_id, user_id)
