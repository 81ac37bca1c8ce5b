"""
Sheet Sync Service

Reads a sheet's header window, infers column types from the first data row
and stores the result in the catalog. Also assembles the schema context the
interpreter prompt is built from.
"""

import logging

from finquery.catalog.store import SheetCatalogStore
from finquery.config import get_settings
from finquery.models.sheet import ColumnMetadata, SchemaContext, SheetMetadata, SyncResult
from finquery.sources.base import BaseSheetSource
from finquery.sources.shaping import infer_column_types

logger = logging.getLogger(__name__)


class SheetSyncService:
    """Keep catalog metadata in step with the source."""

    def __init__(
        self,
        catalog: SheetCatalogStore,
        source: BaseSheetSource,
        header_range: str | None = None,
    ):
        self.catalog = catalog
        self.source = source
        self.header_range = header_range or get_settings().sheets.header_range

    async def register_sheet(
        self,
        sheet_id: str,
        name: str | None = None,
        description: str = "",
        access_level: str = "read",
    ) -> SheetMetadata:
        """
        Register a sheet after confirming it is reachable.

        The source title is used when no name is given.

        Raises:
            SourceUnavailable: The sheet cannot be read
        """
        title = await self.source.fetch_title(sheet_id)
        return await self.catalog.save_sheet(
            sheet_id=sheet_id,
            name=name or title,
            description=description,
            access_level=access_level,
        )

    async def sync_sheet(self, sheet_id: str) -> SyncResult:
        """Refresh column metadata for one sheet."""
        title = await self.source.fetch_title(sheet_id)
        matrix = await self.source.fetch_raw(sheet_id, self.header_range)

        headers = [("" if cell is None else str(cell)) for cell in matrix[0]] if matrix else []
        sample_row = matrix[1] if len(matrix) > 1 else None
        data_types = infer_column_types(sample_row, column_count=len(headers))

        columns = [
            ColumnMetadata(
                sheet_id=sheet_id,
                column_name=header,
                display_name=header,
                data_type=data_type,
                description="",
            )
            for header, data_type in zip(headers, data_types)
        ]

        if await self.catalog.get_sheet(sheet_id) is None:
            await self.catalog.save_sheet(sheet_id=sheet_id, name=title)
        saved = await self.catalog.save_columns(sheet_id, columns)
        await self.catalog.mark_synced(sheet_id)

        logger.info(
            f"Synced sheet {sheet_id}",
            extra={"sheet_id": sheet_id, "column_count": len(saved)},
        )
        return SyncResult(
            sheet_id=sheet_id,
            name=title,
            columns=saved,
            row_count=max(len(matrix) - 1, 0),
        )

    async def build_schema_context(self) -> SchemaContext:
        sheets = await self.catalog.list_sheets()
        columns = {}
        for sheet in sheets:
            columns[sheet.sheet_id] = await self.catalog.list_columns(sheet.sheet_id)
        return SchemaContext(sheets=sheets, columns=columns)
