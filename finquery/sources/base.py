"""
Base Sheet Source

Abstract interface for the spreadsheet transport. A source returns raw
matrices (first row = header labels); shaping happens in
`finquery.sources.shaping`.

All sources must implement:
- fetch_raw(): Read a rectangular window of cell values
- fetch_title(): Read the spreadsheet's display title (used to verify access)
- close(): Release transport resources
"""

import logging
from abc import ABC, abstractmethod

from finquery.models.sheet import RawMatrix

logger = logging.getLogger(__name__)


class SourceUnavailable(Exception):
    """The data source could not be read."""

    def __init__(self, source_id: str, message: str):
        self.source_id = source_id
        self.message = message
        super().__init__(f"Source '{source_id}' unavailable: {message}")

    def to_dict(self) -> dict[str, str]:
        return {
            "source_id": self.source_id,
            "message": self.message,
            "type": self.__class__.__name__,
        }


class SheetNotFoundError(SourceUnavailable):
    """Identifier is invalid, or the sheet does not exist or is not shared."""

    pass


class SourceTransportError(SourceUnavailable):
    """Network failure, timeout or unexpected response from the transport."""

    pass


class BaseSheetSource(ABC):
    """Abstract base class for spreadsheet transports."""

    def __init__(self, default_range: str = "A1:Z1000"):
        self.default_range = default_range

    @abstractmethod
    async def fetch_raw(self, source_id: str, range: str | None = None) -> RawMatrix:
        """
        Fetch cell values for a sheet.

        Args:
            source_id: Spreadsheet identifier
            range: A1-notation window (defaults to `default_range`)

        Raises:
            SheetNotFoundError: Sheet missing or not accessible
            SourceTransportError: Transport failure
        """
        pass  # pragma: no cover - abstract method

    @abstractmethod
    async def fetch_title(self, source_id: str) -> str:
        """Return the spreadsheet title. Raises like fetch_raw."""
        pass  # pragma: no cover - abstract method

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "BaseSheetSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
