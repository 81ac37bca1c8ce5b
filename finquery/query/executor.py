"""
Query Executor

Applies a QuerySpec to a ShapedTable: filter, then sort, then aggregate.
Execution is a pure function of its inputs. Values the interpreter did not
validate (unknown operators, directions or functions) are tolerated here.
"""

import logging
from collections.abc import Callable, Sequence
from functools import cmp_to_key, lru_cache
from typing import Any

from pyuca import Collator

from finquery.models.query import (
    AggregationSpec,
    ExecutionResult,
    FilterClause,
    QuerySpec,
    SortSpec,
)
from finquery.models.sheet import ShapedTable
from finquery.query.coercion import (
    coerce_to_number,
    is_truthy,
    loose_equals,
    normalize_number,
    to_text,
)

logger = logging.getLogger(__name__)

Row = dict[str, Any]

_MISSING = object()


def _equals(cell: Any, value: Any) -> bool:
    return loose_equals(cell, value)


def _not_equals(cell: Any, value: Any) -> bool:
    return not loose_equals(cell, value)


def _contains(cell: Any, value: Any) -> bool:
    return to_text(value).lower() in to_text(cell).lower()


def _greater_than(cell: Any, value: Any) -> bool:
    left, right = coerce_to_number(cell), coerce_to_number(value)
    return left is not None and right is not None and left > right


def _less_than(cell: Any, value: Any) -> bool:
    left, right = coerce_to_number(cell), coerce_to_number(value)
    return left is not None and right is not None and left < right


FILTER_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": _equals,
    "not_equals": _not_equals,
    "contains": _contains,
    "greater_than": _greater_than,
    "less_than": _less_than,
}

AGGREGATE_LABELS = {
    "sum": "Sum",
    "average": "Average",
    "min": "Minimum",
    "max": "Maximum",
}


class QueryExecutor:
    """Deterministic filter/sort/aggregate engine over shaped rows."""

    def execute(self, table: ShapedTable, spec: QuerySpec) -> ExecutionResult:
        rows = list(table.rows)
        total_count = len(rows)

        filtered = [row for row in rows if self.matches(row, spec.filters)]
        filtered_count = len(filtered)

        if spec.sorting is not None:
            filtered = self.sort_rows(filtered, spec.sorting)

        final_rows = filtered
        if spec.aggregation is not None:
            final_rows = self.aggregate(filtered, spec.aggregation)

        logger.debug(
            "Executed query plan",
            extra={
                "target_sheet": spec.target_sheet,
                "total_count": total_count,
                "filtered_count": filtered_count,
                "result_rows": len(final_rows),
            },
        )

        return ExecutionResult(
            headers=list(table.headers),
            rows=[dict(row) for row in final_rows],
            total_count=total_count,
            filtered_count=filtered_count,
        )

    @staticmethod
    def matches(row: Row, filters: Sequence[FilterClause]) -> bool:
        """True when the row satisfies every clause."""
        for clause in filters:
            cell = row.get(clause.column, _MISSING) if clause.column is not None else _MISSING
            # A missing or falsy cell fails regardless of operator
            if cell is _MISSING or not is_truthy(cell):
                return False
            predicate = FILTER_OPERATORS.get(clause.operator)
            if predicate is None:
                continue
            if not predicate(cell, clause.value):
                return False
        return True

    @staticmethod
    def sort_rows(rows: list[Row], sorting: SortSpec) -> list[Row]:
        """Stable sort on one column; numeric when both sides coerce, else text."""
        column = sorting.column
        descending = sorting.direction == "desc"

        def compare(left: Row, right: Row) -> int:
            result = _compare_cells(
                left.get(column, _MISSING) if column is not None else _MISSING,
                right.get(column, _MISSING) if column is not None else _MISSING,
            )
            return -result if descending else result

        return sorted(rows, key=cmp_to_key(compare))

    @staticmethod
    def aggregate(rows: list[Row], aggregation: AggregationSpec) -> list[Row]:
        """Collapse rows into one summary row; unknown functions pass rows through."""
        function = aggregation.function
        if function == "count":
            return [{"count": len(rows), "aggregation": "Count"}]

        label = AGGREGATE_LABELS.get(function)
        if label is None:
            logger.debug(
                "Unknown aggregation function, rows left unaggregated",
                extra={"function": function},
            )
            return rows

        column = aggregation.column or "value"
        values = [_aggregate_operand(row.get(column)) for row in rows]

        if not values:
            result = 0.0
        elif function == "sum":
            result = sum(values)
        elif function == "average":
            result = sum(values) / len(values)
        elif function == "min":
            result = min(values)
        else:
            result = max(values)

        return [{column: normalize_number(result), "aggregation": f"{label} of {column}"}]


def _compare_cells(left: Any, right: Any) -> int:
    left_number = None if left is _MISSING else coerce_to_number(left)
    right_number = None if right is _MISSING else coerce_to_number(right)
    if left_number is not None and right_number is not None:
        return (left_number > right_number) - (left_number < right_number)

    left_text = to_text(left).lower() if left is not _MISSING and is_truthy(left) else ""
    right_text = to_text(right).lower() if right is not _MISSING and is_truthy(right) else ""
    left_key, right_key = _collator().sort_key(left_text), _collator().sort_key(right_text)
    return (left_key > right_key) - (left_key < right_key)


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Default Unicode collation element table, loaded once
    return Collator()


def _aggregate_operand(value: Any) -> float:
    # Blank and unparseable cells count as 0
    if not is_truthy(value):
        return 0.0
    number = coerce_to_number(value)
    return 0.0 if number is None else number
