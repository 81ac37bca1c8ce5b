"""
Sheet Catalog Store

Registered spreadsheets and their column metadata in the system database.
Column rows are written per sync in one transaction; a failed sync leaves
the previous metadata in place.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

import asyncpg

from finquery.db import SystemDatabaseStore, affected_rows
from finquery.models.sheet import ColumnMetadata, SheetMetadata

logger = logging.getLogger(__name__)

_CREATE_SHEET_TABLE = """
CREATE TABLE IF NOT EXISTS sheet_metadata (
    id BIGSERIAL PRIMARY KEY,
    sheet_id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    access_level TEXT NOT NULL DEFAULT 'read',
    last_synced TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL
);
"""

_CREATE_COLUMN_TABLE = """
CREATE TABLE IF NOT EXISTS column_metadata (
    id BIGSERIAL PRIMARY KEY,
    sheet_id TEXT NOT NULL,
    column_name TEXT NOT NULL,
    display_name TEXT,
    data_type TEXT NOT NULL DEFAULT 'string',
    description TEXT NOT NULL DEFAULT '',
    created_at TIMESTAMPTZ NOT NULL,
    updated_at TIMESTAMPTZ NOT NULL,
    UNIQUE (sheet_id, column_name)
);
"""

_UPSERT_COLUMN = """
INSERT INTO column_metadata (
    sheet_id, column_name, display_name, data_type, description, created_at, updated_at
)
VALUES ($1, $2, $3, $4, $5, $6, $6)
ON CONFLICT (sheet_id, column_name) DO UPDATE SET
    display_name = EXCLUDED.display_name,
    data_type = EXCLUDED.data_type,
    description = EXCLUDED.description,
    updated_at = EXCLUDED.updated_at
RETURNING id, sheet_id, column_name, display_name, data_type, description
"""

_EDITABLE_COLUMN_FIELDS = ("display_name", "data_type", "description")


class ColumnNotFoundError(LookupError):
    """No column metadata row with the given id."""

    def __init__(self, column_id: int):
        self.column_id = column_id
        super().__init__(f"Column {column_id} not found")

    def to_dict(self) -> dict[str, Any]:
        return {"column_id": self.column_id, "type": self.__class__.__name__}


class SheetCatalogStore(SystemDatabaseStore):
    """Persist sheet and column metadata."""

    _SCHEMA = (_CREATE_SHEET_TABLE, _CREATE_COLUMN_TABLE)
    _LABEL = "SheetCatalogStore"

    async def save_sheet(
        self,
        sheet_id: str,
        name: str,
        description: str = "",
        access_level: str = "read",
    ) -> SheetMetadata:
        """Insert or update a sheet by its source identifier."""
        pool = self._ensure_pool()
        now = datetime.now(UTC)
        row = await pool.fetchrow(
            """
            INSERT INTO sheet_metadata (
                sheet_id, name, description, access_level, created_at, updated_at
            )
            VALUES ($1, $2, $3, $4, $5, $5)
            ON CONFLICT (sheet_id) DO UPDATE SET
                name = EXCLUDED.name,
                description = EXCLUDED.description,
                access_level = EXCLUDED.access_level,
                updated_at = EXCLUDED.updated_at
            RETURNING *
            """,
            sheet_id,
            name,
            description,
            access_level,
            now,
        )
        if row is None:
            raise RuntimeError(f"Failed to save sheet {sheet_id}")
        logger.info("Saved sheet metadata", extra={"sheet_id": sheet_id})
        return self._row_to_sheet(row)

    async def get_sheet(self, sheet_id: str) -> SheetMetadata | None:
        pool = self._ensure_pool()
        row = await pool.fetchrow("SELECT * FROM sheet_metadata WHERE sheet_id = $1", sheet_id)
        return self._row_to_sheet(row) if row is not None else None

    async def list_sheets(self) -> list[SheetMetadata]:
        pool = self._ensure_pool()
        rows = await pool.fetch("SELECT * FROM sheet_metadata ORDER BY updated_at DESC, id DESC")
        return [self._row_to_sheet(row) for row in rows]

    async def delete_sheet(self, sheet_id: str) -> bool:
        """Remove a sheet and its columns. Returns False when the sheet was unknown."""
        pool = self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("DELETE FROM column_metadata WHERE sheet_id = $1", sheet_id)
                status = await conn.execute(
                    "DELETE FROM sheet_metadata WHERE sheet_id = $1", sheet_id
                )
        deleted = affected_rows(status) > 0
        if deleted:
            logger.info("Deleted sheet metadata", extra={"sheet_id": sheet_id})
        return deleted

    async def save_columns(
        self, sheet_id: str, columns: Sequence[ColumnMetadata]
    ) -> list[ColumnMetadata]:
        """Upsert every column in one transaction."""
        pool = self._ensure_pool()
        now = datetime.now(UTC)
        saved: list[ColumnMetadata] = []
        async with pool.acquire() as conn:
            async with conn.transaction():
                for column in columns:
                    row = await conn.fetchrow(
                        _UPSERT_COLUMN,
                        sheet_id,
                        column.column_name,
                        column.display_name,
                        column.data_type,
                        column.description,
                        now,
                    )
                    saved.append(self._row_to_column(row))
        logger.info(
            "Saved column metadata",
            extra={"sheet_id": sheet_id, "column_count": len(saved)},
        )
        return saved

    async def list_columns(self, sheet_id: str) -> list[ColumnMetadata]:
        pool = self._ensure_pool()
        rows = await pool.fetch(
            """
            SELECT id, sheet_id, column_name, display_name, data_type, description
            FROM column_metadata
            WHERE sheet_id = $1
            ORDER BY id
            """,
            sheet_id,
        )
        return [self._row_to_column(row) for row in rows]

    async def update_column(
        self,
        column_id: int,
        display_name: str | None = None,
        data_type: str | None = None,
        description: str | None = None,
    ) -> ColumnMetadata:
        """
        Edit the user-facing fields of one column.

        Raises:
            ValueError: No field was given
            ColumnNotFoundError: Unknown column id
        """
        values = {
            "display_name": display_name,
            "data_type": data_type,
            "description": description,
        }
        updates = {key: values[key] for key in _EDITABLE_COLUMN_FIELDS if values[key] is not None}
        if not updates:
            raise ValueError("No column fields to update")

        assignments = [f"{key} = ${index}" for index, key in enumerate(updates, start=2)]
        assignments.append(f"updated_at = ${len(updates) + 2}")
        pool = self._ensure_pool()
        row = await pool.fetchrow(
            f"""
            UPDATE column_metadata
            SET {", ".join(assignments)}
            WHERE id = $1
            RETURNING id, sheet_id, column_name, display_name, data_type, description
            """,
            column_id,
            *updates.values(),
            datetime.now(UTC),
        )
        if row is None:
            raise ColumnNotFoundError(column_id)
        return self._row_to_column(row)

    async def mark_synced(self, sheet_id: str) -> None:
        pool = self._ensure_pool()
        now = datetime.now(UTC)
        await pool.execute(
            "UPDATE sheet_metadata SET last_synced = $2, updated_at = $2 WHERE sheet_id = $1",
            sheet_id,
            now,
        )

    @staticmethod
    def _row_to_sheet(row: asyncpg.Record | dict[str, Any]) -> SheetMetadata:
        return SheetMetadata(
            id=row["id"],
            sheet_id=row["sheet_id"],
            name=row["name"],
            description=row["description"] or "",
            access_level=row["access_level"] or "read",
            last_synced=row["last_synced"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_column(row: asyncpg.Record | dict[str, Any]) -> ColumnMetadata:
        data_type = row["data_type"]
        return ColumnMetadata(
            id=row["id"],
            sheet_id=row["sheet_id"],
            column_name=row["column_name"],
            display_name=row["display_name"],
            data_type=data_type if data_type in ("string", "number", "date") else "string",
            description=row["description"] or "",
        )
