"""Turn raw cell matrices into headered rows and infer column types."""

import re
from collections.abc import Sequence

from finquery.models.query import CellValue
from finquery.models.sheet import DataType, RawMatrix, ShapedTable
from finquery.query.coercion import is_numeral

_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def shape(matrix: RawMatrix) -> ShapedTable:
    """
    Map each data row onto the header row.

    Headers are taken verbatim. Cells beyond the header width are dropped,
    and short rows simply lack the trailing keys.
    """
    if not matrix:
        return ShapedTable(headers=[], rows=[])

    headers = ["" if label is None else str(label) for label in matrix[0]]
    width = len(headers)
    rows = []
    for raw_row in matrix[1:]:
        row: dict[str, CellValue] = {}
        for index, cell in enumerate(raw_row[:width]):
            row[headers[index]] = cell
        rows.append(row)

    return ShapedTable(headers=headers, rows=rows)


def infer_data_type(value: CellValue) -> DataType:
    if isinstance(value, (bool, int, float)):
        return "number"
    text = "" if value is None else str(value)
    if text.strip() == "" or is_numeral(text):
        return "number"
    if _DATE_PREFIX.match(text):
        return "date"
    return "string"


def infer_column_types(
    sample_row: Sequence[CellValue] | None,
    column_count: int | None = None,
) -> list[DataType]:
    """
    Classify each column from a single sample row.

    Without a sample row every column is `string`. When `column_count`
    exceeds the sample width the remaining columns are `string` too.
    """
    if not sample_row:
        return ["string"] * (column_count or 0)

    types = [infer_data_type(cell) for cell in sample_row]
    if column_count is None:
        return types
    if len(types) < column_count:
        types.extend(["string"] * (column_count - len(types)))
    return types[:column_count]
