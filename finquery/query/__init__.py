"""Deterministic execution of query plans against shaped tabular data."""

from finquery.query.coercion import coerce_to_number, is_truthy, loose_equals, to_text
from finquery.query.executor import QueryExecutor

__all__ = ["QueryExecutor", "coerce_to_number", "is_truthy", "loose_equals", "to_text"]
