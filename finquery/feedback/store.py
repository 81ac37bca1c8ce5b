"""Storage for user feedback on past queries."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from finquery.db import SystemDatabaseStore
from finquery.models.history import FeedbackEntry, FeedbackType

logger = logging.getLogger(__name__)

_CREATE_FEEDBACK_TABLE = """
CREATE TABLE IF NOT EXISTS user_feedback (
    id BIGSERIAL PRIMARY KEY,
    query_history_id BIGINT NOT NULL REFERENCES query_history (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    feedback_type TEXT NOT NULL,
    feedback_text TEXT,
    created_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_FEEDBACK_HISTORY_INDEX = """
CREATE INDEX IF NOT EXISTS user_feedback_history_idx
ON user_feedback (query_history_id);
"""


class FeedbackStore(SystemDatabaseStore):
    """
    Persist feedback entries in the system database.

    Requires the `query_history` table; initialize the history store first.
    """

    _SCHEMA = (_CREATE_FEEDBACK_TABLE, _CREATE_FEEDBACK_HISTORY_INDEX)
    _LABEL = "FeedbackStore"

    async def create_feedback(
        self,
        *,
        query_history_id: int,
        user_id: str,
        feedback_type: FeedbackType,
        feedback_text: str | None = None,
    ) -> FeedbackEntry:
        pool = self._ensure_pool()
        created_at = datetime.now(UTC)
        async with pool.acquire() as conn:
            async with conn.transaction():
                feedback_id = await conn.fetchval(
                    """
                    INSERT INTO user_feedback (
                        query_history_id, user_id, feedback_type, feedback_text, created_at
                    )
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING id
                    """,
                    query_history_id,
                    user_id,
                    feedback_type,
                    feedback_text,
                    created_at,
                )
        if feedback_id is None:
            raise RuntimeError("Failed to store feedback")

        logger.info(
            "Stored feedback",
            extra={
                "feedback_id": feedback_id,
                "query_history_id": query_history_id,
                "feedback_type": feedback_type,
            },
        )
        return FeedbackEntry(
            id=int(feedback_id),
            query_history_id=query_history_id,
            user_id=user_id,
            feedback_type=feedback_type,
            feedback_text=feedback_text,
            created_at=created_at,
        )

    async def list_for_query(self, query_history_id: int) -> list[FeedbackEntry]:
        pool = self._ensure_pool()
        rows = await pool.fetch(
            """
            SELECT id, query_history_id, user_id, feedback_type, feedback_text, created_at
            FROM user_feedback
            WHERE query_history_id = $1
            ORDER BY created_at DESC, id DESC
            """,
            query_history_id,
        )
        return [FeedbackEntry(**dict(row)) for row in rows]
