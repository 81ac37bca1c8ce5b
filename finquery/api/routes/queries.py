"""
Query Routes

Submit natural-language queries, list and replay history, and fetch
suggested questions.
"""

import logging

from fastapi import APIRouter, Depends, Query

from finquery.api.dependencies import get_pipeline, get_user_id
from finquery.models.api import HistoryResponse, QueryRequest, SuggestionsResponse
from finquery.models.pipeline import QuerySubmissionResult, ReplayResult
from finquery.pipeline.orchestrator import QueryPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/queries",
    response_model=QuerySubmissionResult,
    response_model_exclude_none=True,
)
async def submit_query(
    payload: QueryRequest,
    user_id: str = Depends(get_user_id),
    pipeline: QueryPipeline = Depends(get_pipeline),
) -> QuerySubmissionResult:
    """
    Interpret and execute a query.

    A clarification request is a successful response with
    `needsClarification` set. Failures are reported by the
    QueryFailedError handler with the history id.
    """
    logger.info(f"Query received: {payload.query[:100]}", extra={"user_id": user_id})
    return await pipeline.submit(user_id, payload.query)


@router.get("/queries/history", response_model=HistoryResponse)
async def list_history(
    limit: int | None = Query(default=None, ge=1, le=200),
    user_id: str = Depends(get_user_id),
    pipeline: QueryPipeline = Depends(get_pipeline),
) -> HistoryResponse:
    entries = await pipeline.list_history(user_id, limit)
    return HistoryResponse(entries=entries)


@router.get("/queries/suggestions", response_model=SuggestionsResponse)
async def suggest_queries(
    pipeline: QueryPipeline = Depends(get_pipeline),
) -> SuggestionsResponse:
    return SuggestionsResponse(suggestions=await pipeline.suggest_queries())


@router.get("/queries/{history_id}", response_model=ReplayResult)
async def replay_query(
    history_id: int,
    user_id: str = Depends(get_user_id),
    pipeline: QueryPipeline = Depends(get_pipeline),
) -> ReplayResult:
    """Re-run a stored plan against the sheet's current contents."""
    return await pipeline.replay(history_id, user_id)
