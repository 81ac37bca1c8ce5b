"""Unit tests for sheet and column metadata persistence."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from finquery.catalog.store import ColumnNotFoundError, SheetCatalogStore
from finquery.models.sheet import ColumnMetadata

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


def _sheet_row(**overrides):
    row = {
        "id": 1,
        "sheet_id": "sheet-expenses",
        "name": "Expenses 2024",
        "description": None,
        "access_level": "read",
        "last_synced": None,
        "created_at": NOW,
        "updated_at": NOW,
    }
    row.update(overrides)
    return row


def _column_row(**overrides):
    row = {
        "id": 10,
        "sheet_id": "sheet-expenses",
        "column_name": "Amount",
        "display_name": "Amount",
        "data_type": "number",
        "description": "",
    }
    row.update(overrides)
    return row


def _pool_with_connection(conn):
    """Pool whose acquire() and transaction() behave as async context managers."""
    transaction = MagicMock()
    transaction.__aenter__ = AsyncMock(return_value=None)
    transaction.__aexit__ = AsyncMock(return_value=False)
    conn.transaction = MagicMock(return_value=transaction)

    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)

    pool = MagicMock()
    pool.acquire = MagicMock(return_value=acquire)
    return pool


@pytest.fixture
def store():
    store = SheetCatalogStore(database_url="postgresql://example")
    store._pool = AsyncMock()
    return store


@pytest.mark.asyncio
async def test_save_sheet_upserts_by_source_id(store) -> None:
    store._pool.fetchrow = AsyncMock(return_value=_sheet_row())

    sheet = await store.save_sheet("sheet-expenses", "Expenses 2024")

    assert sheet.sheet_id == "sheet-expenses"
    assert sheet.description == ""
    sql = store._pool.fetchrow.await_args.args[0]
    assert "ON CONFLICT (sheet_id) DO UPDATE" in sql


@pytest.mark.asyncio
async def test_list_sheets_newest_first(store) -> None:
    store._pool.fetch = AsyncMock(
        return_value=[_sheet_row(id=2, sheet_id="b", name="B"), _sheet_row(id=1)]
    )

    sheets = await store.list_sheets()

    assert [sheet.sheet_id for sheet in sheets] == ["b", "sheet-expenses"]
    assert "ORDER BY updated_at DESC" in store._pool.fetch.await_args.args[0]


@pytest.mark.asyncio
async def test_get_sheet_missing(store) -> None:
    store._pool.fetchrow = AsyncMock(return_value=None)

    assert await store.get_sheet("nope") is None


@pytest.mark.asyncio
async def test_save_columns_in_one_transaction() -> None:
    conn = MagicMock()
    conn.fetchrow = AsyncMock(
        side_effect=[
            _column_row(id=10),
            _column_row(id=11, column_name="Date", display_name="Date", data_type="date"),
        ]
    )
    store = SheetCatalogStore(pool=_pool_with_connection(conn))

    saved = await store.save_columns(
        "sheet-expenses",
        [
            ColumnMetadata(sheet_id="sheet-expenses", column_name="Amount", data_type="number"),
            ColumnMetadata(sheet_id="sheet-expenses", column_name="Date", data_type="date"),
        ],
    )

    assert [column.id for column in saved] == [10, 11]
    assert saved[1].data_type == "date"
    conn.transaction.assert_called_once()
    first_args = conn.fetchrow.await_args_list[0].args
    assert "ON CONFLICT (sheet_id, column_name) DO UPDATE" in first_args[0]
    assert first_args[1:5] == ("sheet-expenses", "Amount", None, "number")


@pytest.mark.asyncio
async def test_delete_sheet_removes_columns_first() -> None:
    conn = MagicMock()
    conn.execute = AsyncMock(side_effect=["DELETE 3", "DELETE 1"])
    store = SheetCatalogStore(pool=_pool_with_connection(conn))

    assert await store.delete_sheet("sheet-expenses") is True

    statements = [call.args[0] for call in conn.execute.await_args_list]
    assert "column_metadata" in statements[0]
    assert "sheet_metadata" in statements[1]


@pytest.mark.asyncio
async def test_delete_unknown_sheet() -> None:
    conn = MagicMock()
    conn.execute = AsyncMock(side_effect=["DELETE 0", "DELETE 0"])
    store = SheetCatalogStore(pool=_pool_with_connection(conn))

    assert await store.delete_sheet("missing") is False


@pytest.mark.asyncio
async def test_update_column_sets_only_given_fields(store) -> None:
    store._pool.fetchrow = AsyncMock(
        return_value=_column_row(display_name="Amount (USD)", description="Net of tax")
    )

    column = await store.update_column(10, display_name="Amount (USD)", description="Net of tax")

    assert column.label == "Amount (USD)"
    sql, *params = store._pool.fetchrow.await_args.args
    assert "display_name = $2" in sql
    assert "description = $3" in sql
    assert "updated_at = $4" in sql
    assert "data_type" not in sql.split("RETURNING")[0]
    assert params[:3] == [10, "Amount (USD)", "Net of tax"]


@pytest.mark.asyncio
async def test_update_column_requires_a_field(store) -> None:
    with pytest.raises(ValueError, match="No column fields"):
        await store.update_column(10)


@pytest.mark.asyncio
async def test_update_unknown_column(store) -> None:
    store._pool.fetchrow = AsyncMock(return_value=None)

    with pytest.raises(ColumnNotFoundError) as exc_info:
        await store.update_column(404, data_type="date")

    assert exc_info.value.to_dict() == {"column_id": 404, "type": "ColumnNotFoundError"}


@pytest.mark.asyncio
async def test_unknown_data_type_reads_as_string(store) -> None:
    store._pool.fetch = AsyncMock(return_value=[_column_row(data_type="currency")])

    columns = await store.list_columns("sheet-expenses")

    assert columns[0].data_type == "string"
