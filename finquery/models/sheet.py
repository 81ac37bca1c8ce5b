"""
Spreadsheet Models

Raw and shaped tabular data plus the persisted sheet/column catalog used to
build the interpreter's schema context.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from finquery.models.query import CellValue

DataType = Literal["string", "number", "date"]

# Rows exactly as returned by the transport; first row holds header labels
RawMatrix = list[list[CellValue]]


@dataclass(frozen=True)
class ShapedTable:
    """
    Header row plus one mapping per data row.

    Every row contains only keys from `headers`; short rows simply lack the
    trailing keys. Recomputed on every execution, never cached.
    """

    headers: list[str] = field(default_factory=list)
    rows: list[dict[str, CellValue]] = field(default_factory=list)


class SheetMetadata(BaseModel):
    """Registered spreadsheet."""

    id: int | None = None
    sheet_id: str = Field(..., description="Spreadsheet identifier at the source")
    name: str
    description: str = ""
    access_level: str = "read"
    last_synced: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ColumnMetadata(BaseModel):
    """Column description inferred during sync and editable afterwards."""

    id: int | None = None
    sheet_id: str
    column_name: str
    display_name: str | None = None
    data_type: DataType = "string"
    description: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.column_name


class SchemaContext(BaseModel):
    """Sheets and their columns, as shown to the interpreter."""

    sheets: list[SheetMetadata] = Field(default_factory=list)
    columns: dict[str, list[ColumnMetadata]] = Field(default_factory=dict)

    def sheet_name(self, sheet_id: str) -> str | None:
        for sheet in self.sheets:
            if sheet.sheet_id == sheet_id:
                return sheet.name
        return None

    def columns_for(self, sheet_id: str) -> list[ColumnMetadata]:
        return self.columns.get(sheet_id, [])


class SyncResult(BaseModel):
    """Outcome of a column-metadata sync for one sheet."""

    sheet_id: str
    name: str
    columns: list[ColumnMetadata]
    row_count: int
