"""
Tabular data sources.

Transports return raw matrices; `shape` turns them into headered rows and
`infer_column_types` classifies columns during sync.
"""

from finquery.sources.base import (
    BaseSheetSource,
    SheetNotFoundError,
    SourceTransportError,
    SourceUnavailable,
)
from finquery.sources.google_sheets import GoogleSheetsSource
from finquery.sources.shaping import infer_column_types, shape

__all__ = [
    "BaseSheetSource",
    "GoogleSheetsSource",
    "SheetNotFoundError",
    "SourceTransportError",
    "SourceUnavailable",
    "infer_column_types",
    "shape",
]
