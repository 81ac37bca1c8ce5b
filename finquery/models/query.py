"""
Query Plan and Result Models

QuerySpec is the structured plan produced by the interpreter. It is frozen
once built and can be re-executed any number of times against current data.
Field values are not validated: unknown operators, directions
and aggregation functions flow through and are tolerated by the executor.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Loosely-typed spreadsheet cell: null, number, string or boolean
CellValue = str | int | float | bool | None

_PLAN_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


class FilterClause(BaseModel):
    """Single row predicate. Operators: equals, contains, greater_than, less_than, not_equals."""

    column: str | None = None
    operator: str = ""
    value: Any = None

    model_config = _PLAN_CONFIG


class SortSpec(BaseModel):
    """Single-column sort. Only `desc` reverses the order."""

    column: str | None = None
    direction: str = "asc"

    model_config = _PLAN_CONFIG


class AggregationSpec(BaseModel):
    """Collapse rows into one summary row: sum, average, count, min or max."""

    function: str = ""
    column: str | None = None

    model_config = _PLAN_CONFIG


class QuerySpec(BaseModel):
    """Structured plan derived from a natural-language query."""

    target_sheet: str | None = None
    interpretation_text: str = Field(default="", alias="interpretation")
    required_columns: tuple[str, ...] = ()
    filters: tuple[FilterClause, ...] = ()
    sorting: SortSpec | None = None
    aggregation: AggregationSpec | None = None
    time_range: Any = None
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    needs_clarification: bool = False
    clarification_question: str | None = None

    model_config = _PLAN_CONFIG

    @property
    def is_executable(self) -> bool:
        """True when the plan names a sheet and does not ask for clarification."""
        return bool(self.target_sheet) and not self.needs_clarification

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "QuerySpec":
        """
        Build a plan from a decoded model response or a stored plan.

        Shapes are normalized (a non-list `filters` becomes empty, a non-object
        `sorting` becomes None, the confidence score is clamped) but values are
        passed through untouched.
        """
        return cls(
            target_sheet=_optional_text(payload.get("targetSheet")),
            interpretation=_text(payload.get("interpretation")),
            required_columns=tuple(
                str(item) for item in _as_list(payload.get("requiredColumns")) if item is not None
            ),
            filters=tuple(
                FilterClause(
                    column=_optional_text(item.get("column")),
                    operator=_text(item.get("operator")),
                    value=item.get("value"),
                )
                for item in _as_list(payload.get("filters"))
                if isinstance(item, dict)
            ),
            sorting=_sort_spec(payload.get("sorting")),
            aggregation=_aggregation_spec(payload.get("aggregation")),
            time_range=payload.get("timeRange"),
            confidence_score=_confidence(payload.get("confidenceScore")),
            needs_clarification=_flag(payload.get("needsClarification")),
            clarification_question=_optional_text(payload.get("clarificationQuestion")),
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize with the camelCase keys used by the model prompt and storage."""
        return self.model_dump(mode="json", by_alias=True)


class ExecutionResult(BaseModel):
    """Rows after filter/sort/aggregation plus pre-aggregation counts."""

    headers: list[str] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    total_count: int = 0
    filtered_count: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value)
    return text if text.strip() else None


def _sort_spec(value: Any) -> SortSpec | None:
    if not isinstance(value, dict):
        return None
    return SortSpec(
        column=_optional_text(value.get("column")),
        direction=_text(value.get("direction")) or "asc",
    )


def _aggregation_spec(value: Any) -> AggregationSpec | None:
    if not isinstance(value, dict):
        return None
    return AggregationSpec(
        function=_text(value.get("function")),
        column=_optional_text(value.get("column")),
    )


def _confidence(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        score = float(value)
    except (TypeError, ValueError):
        return 0.0
    if score != score:
        return 0.0
    return min(max(score, 0.0), 1.0)


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "1"}
    return bool(value)
