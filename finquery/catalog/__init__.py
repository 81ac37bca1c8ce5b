"""Sheet registry, column metadata and sync."""

from finquery.catalog.store import ColumnNotFoundError, SheetCatalogStore
from finquery.catalog.sync import SheetSyncService

__all__ = ["ColumnNotFoundError", "SheetCatalogStore", "SheetSyncService"]
