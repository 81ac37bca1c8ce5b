"""Query history persistence."""

from finquery.history.store import QueryHistoryStore

__all__ = ["QueryHistoryStore"]
