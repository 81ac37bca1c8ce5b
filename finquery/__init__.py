"""FinQuery: natural-language queries over spreadsheet-backed financial data."""

__version__ = "0.1.0"
