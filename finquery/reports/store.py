"""Persistence for financial reports."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import asyncpg

from finquery.db import SystemDatabaseStore, affected_rows
from finquery.models.report import Report

logger = logging.getLogger(__name__)

_CREATE_REPORT_TABLE = """
CREATE TABLE IF NOT EXISTS reports (
    id BIGSERIAL PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    report_type TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    created_by TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_REPORT_OWNER_INDEX = """
CREATE INDEX IF NOT EXISTS reports_created_by_idx
ON reports (created_by, created_at DESC);
"""

_EDITABLE_REPORT_FIELDS = ("title", "description", "content")


class ReportStore(SystemDatabaseStore):
    """
    Reports in the system database.

    Every read and write is scoped to the creating user; another user's
    report behaves as if it did not exist.
    """

    _SCHEMA = (_CREATE_REPORT_TABLE, _CREATE_REPORT_OWNER_INDEX)
    _LABEL = "ReportStore"

    async def create(
        self,
        *,
        user_id: str,
        title: str,
        report_type: str,
        description: str = "",
        content: str = "",
    ) -> Report:
        pool = self._ensure_pool()
        now = datetime.now(UTC)
        row = await pool.fetchrow(
            """
            INSERT INTO reports (
                title, description, report_type, content, created_by, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $6, $6)
            RETURNING *
            """,
            title,
            description,
            report_type,
            content,
            user_id,
            now,
        )
        if row is None:
            raise RuntimeError("Failed to store report")
        report = self._row_to_report(row)
        logger.info(
            "Stored report",
            extra={"report_id": report.id, "report_type": report_type, "user_id": user_id},
        )
        return report

    async def get(self, report_id: int, user_id: str) -> Report | None:
        pool = self._ensure_pool()
        row = await pool.fetchrow(
            "SELECT * FROM reports WHERE id = $1 AND created_by = $2",
            report_id,
            user_id,
        )
        return self._row_to_report(row) if row is not None else None

    async def list_by_user(self, user_id: str) -> list[Report]:
        """Reports created by a user, newest first."""
        pool = self._ensure_pool()
        rows = await pool.fetch(
            """
            SELECT * FROM reports
            WHERE created_by = $1
            ORDER BY created_at DESC, id DESC
            """,
            user_id,
        )
        return [self._row_to_report(row) for row in rows]

    async def update(self, report_id: int, user_id: str, **fields: Any) -> Report | None:
        """
        Update title, description and/or content.

        Returns None when the report does not exist for this user.

        Raises:
            ValueError: No editable field was given
        """
        updates = {
            name: value
            for name, value in fields.items()
            if name in _EDITABLE_REPORT_FIELDS and value is not None
        }
        if not updates:
            raise ValueError("No fields to update")

        assignments = [f"{name} = ${index}" for index, name in enumerate(updates, start=3)]
        assignments.append(f"updated_at = ${len(updates) + 3}")
        pool = self._ensure_pool()
        row = await pool.fetchrow(
            f"""
            UPDATE reports SET {", ".join(assignments)}
            WHERE id = $1 AND created_by = $2
            RETURNING *
            """,
            report_id,
            user_id,
            *updates.values(),
            datetime.now(UTC),
        )
        if row is None:
            return None
        logger.info("Updated report", extra={"report_id": report_id, "fields": list(updates)})
        return self._row_to_report(row)

    async def delete(self, report_id: int, user_id: str) -> bool:
        pool = self._ensure_pool()
        status = await pool.execute(
            "DELETE FROM reports WHERE id = $1 AND created_by = $2",
            report_id,
            user_id,
        )
        deleted = affected_rows(status) > 0
        if deleted:
            logger.info("Deleted report", extra={"report_id": report_id})
        return deleted

    @staticmethod
    def _row_to_report(row: asyncpg.Record | dict[str, Any]) -> Report:
        return Report(
            id=int(row["id"]),
            title=str(row["title"]),
            description=row["description"] or "",
            report_type=str(row["report_type"]),
            content=row["content"] or "",
            created_by=str(row["created_by"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
