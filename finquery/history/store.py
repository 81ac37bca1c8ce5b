"""Persistence for submitted queries and their structured plans."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

import asyncpg

from finquery.db import SystemDatabaseStore, affected_rows, decode_json_field
from finquery.models.history import QueryHistoryEntry
from finquery.models.query import QuerySpec

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 200

_CREATE_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS query_history (
    id BIGSERIAL PRIMARY KEY,
    user_id TEXT NOT NULL,
    query_text TEXT NOT NULL,
    query_spec JSONB,
    success BOOLEAN,
    error_message TEXT,
    created_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_HISTORY_USER_INDEX = """
CREATE INDEX IF NOT EXISTS query_history_user_created_idx
ON query_history (user_id, created_at DESC);
"""

_SELECT_COLUMNS = """
    id, user_id, query_text, query_spec, success, error_message, created_at
"""


class QueryHistoryStore(SystemDatabaseStore):
    """
    Query history in the system database.

    The plan is stored, never the result: replaying an entry re-executes
    the plan against whatever the sheet holds at that moment.
    """

    _SCHEMA = (_CREATE_HISTORY_TABLE, _CREATE_HISTORY_USER_INDEX)
    _LABEL = "QueryHistoryStore"

    async def record(self, user_id: str, query_text: str) -> int:
        """Insert a new entry with unknown outcome and return its id."""
        pool = self._ensure_pool()
        history_id = await pool.fetchval(
            """
            INSERT INTO query_history (user_id, query_text, created_at)
            VALUES ($1, $2, $3)
            RETURNING id
            """,
            user_id,
            query_text,
            datetime.now(UTC),
        )
        if history_id is None:
            raise RuntimeError("Failed to record query history entry")
        return int(history_id)

    async def update(
        self,
        history_id: int,
        query_spec: QuerySpec | None,
        success: bool,
        error_message: str | None = None,
    ) -> bool:
        pool = self._ensure_pool()
        status = await pool.execute(
            """
            UPDATE query_history
            SET query_spec = $2::jsonb, success = $3, error_message = $4
            WHERE id = $1
            """,
            history_id,
            json.dumps(query_spec.to_payload()) if query_spec is not None else None,
            success,
            error_message,
        )
        updated = affected_rows(status) > 0
        if not updated:
            logger.warning("History entry not found for update", extra={"history_id": history_id})
        return updated

    async def get(self, history_id: int, user_id: str | None = None) -> QueryHistoryEntry | None:
        """Fetch one entry; when `user_id` is given the entry must belong to that user."""
        pool = self._ensure_pool()
        if user_id is None:
            row = await pool.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM query_history WHERE id = $1",
                history_id,
            )
        else:
            row = await pool.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM query_history WHERE id = $1 AND user_id = $2",
                history_id,
                user_id,
            )
        return self._row_to_entry(row) if row is not None else None

    async def list_by_user(self, user_id: str, limit: int = 50) -> list[QueryHistoryEntry]:
        """Entries for a user, newest first."""
        pool = self._ensure_pool()
        bounded_limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        rows = await pool.fetch(
            f"""
            SELECT {_SELECT_COLUMNS}
            FROM query_history
            WHERE user_id = $1
            ORDER BY created_at DESC, id DESC
            LIMIT $2
            """,
            user_id,
            bounded_limit,
        )
        return [self._row_to_entry(row) for row in rows]

    @classmethod
    def _row_to_entry(cls, row: asyncpg.Record | dict[str, Any]) -> QueryHistoryEntry:
        return QueryHistoryEntry(
            id=int(row["id"]),
            user_id=str(row["user_id"]),
            query_text=str(row["query_text"]),
            query_spec=cls._decode_spec(row["query_spec"], row["id"]),
            created_at=row["created_at"],
            success=row["success"],
            error_message=row["error_message"],
        )

    @staticmethod
    def _decode_spec(value: Any, history_id: Any) -> QuerySpec | None:
        payload = decode_json_field(value)
        if payload is None:
            return None
        if not isinstance(payload, dict):
            logger.error("Stored query plan is not an object", extra={"history_id": history_id})
            return None
        return QuerySpec.from_payload(payload)
