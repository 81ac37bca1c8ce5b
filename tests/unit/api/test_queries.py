"""Unit tests for query endpoints."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from finquery.api.main import app
from finquery.models.agent import InterpretationParseError
from finquery.models.history import QueryHistoryEntry
from finquery.models.pipeline import QuerySubmissionResult, ReplayResult
from finquery.models.query import ExecutionResult, QuerySpec
from finquery.pipeline.orchestrator import (
    HistoryNotFoundError,
    QueryFailedError,
    ReplayUnavailableError,
)
from finquery.sources.base import SheetNotFoundError, SourceTransportError

HEADERS = {"X-User-Id": "user-1"}


def _spec(**payload):
    return QuerySpec.from_payload({"targetSheet": "sheet-revenue", **payload})


class TestSubmitQuery:
    def setup_method(self) -> None:
        self.client = TestClient(app)
        self.pipeline = AsyncMock()

    def _post(self, body, headers=HEADERS):
        with patch("finquery.api.main.app_state", {"pipeline": self.pipeline}):
            return self.client.post("/api/v1/queries", json=body, headers=headers)

    def test_returns_camel_case_result(self) -> None:
        self.pipeline.submit = AsyncMock(
            return_value=QuerySubmissionResult(
                history_id=7,
                query_spec=_spec(aggregation={"function": "sum", "column": "revenue"}),
                execution_result=ExecutionResult(
                    headers=["month", "revenue"],
                    rows=[{"revenue": 300, "aggregation": "Sum of revenue"}],
                    total_count=2,
                    filtered_count=2,
                ),
                insight="Revenue is growing.",
            )
        )

        response = self._post({"query": "total revenue"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["historyId"] == 7
        assert payload["needsClarification"] is False
        assert payload["querySpec"]["targetSheet"] == "sheet-revenue"
        assert payload["executionResult"]["totalCount"] == 2
        assert payload["executionResult"]["rows"] == [
            {"revenue": 300, "aggregation": "Sum of revenue"}
        ]
        assert payload["insight"] == "Revenue is growing."
        self.pipeline.submit.assert_awaited_once_with("user-1", "total revenue")

    def test_clarification_response(self) -> None:
        self.pipeline.submit = AsyncMock(
            return_value=QuerySubmissionResult(
                history_id=8,
                query_spec=QuerySpec.from_payload({"needsClarification": True}),
                needs_clarification=True,
                clarification_question="Which sheet would you like to query?",
            )
        )

        response = self._post({"query": "numbers please"})

        assert response.status_code == 200
        payload = response.json()
        assert payload["needsClarification"] is True
        assert payload["clarificationQuestion"] == "Which sheet would you like to query?"
        assert "executionResult" not in payload

    def test_source_failure_is_distinct_from_empty_result(self) -> None:
        self.pipeline.submit = AsyncMock(
            side_effect=QueryFailedError(
                7, SourceTransportError("sheet-revenue", "timed out")
            )
        )

        response = self._post({"query": "total revenue"})

        assert response.status_code == 502
        assert response.json() == {
            "historyId": 7,
            "error": "source_unavailable",
            "message": "timed out",
            "type": "SourceTransportError",
        }

    def test_interpretation_failure(self) -> None:
        self.pipeline.submit = AsyncMock(
            side_effect=QueryFailedError(
                9,
                InterpretationParseError(
                    agent="QueryInterpreterAgent", message="Failed to parse LLM response as JSON"
                ),
            )
        )

        response = self._post({"query": "???"})

        assert response.status_code == 422
        assert response.json()["error"] == "interpretation_failed"

    def test_missing_user_header(self) -> None:
        response = self._post({"query": "total revenue"}, headers={})

        assert response.status_code == 401
        self.pipeline.submit.assert_not_awaited()

    def test_empty_query_rejected(self) -> None:
        response = self._post({"query": ""})

        assert response.status_code == 422

    def test_pipeline_unavailable(self) -> None:
        with patch("finquery.api.main.app_state", {"pipeline": None}):
            response = self.client.post(
                "/api/v1/queries", json={"query": "total revenue"}, headers=HEADERS
            )

        assert response.status_code == 503


class TestHistoryAndReplay:
    def setup_method(self) -> None:
        self.client = TestClient(app)
        self.pipeline = AsyncMock()

    def _get(self, path):
        with patch("finquery.api.main.app_state", {"pipeline": self.pipeline}):
            return self.client.get(path, headers=HEADERS)

    def test_list_history(self) -> None:
        self.pipeline.list_history = AsyncMock(
            return_value=[
                QueryHistoryEntry(
                    id=7,
                    user_id="user-1",
                    query_text="total revenue",
                    query_spec=_spec(),
                    created_at=datetime(2024, 3, 1, tzinfo=UTC),
                    success=True,
                )
            ]
        )

        response = self._get("/api/v1/queries/history?limit=10")

        assert response.status_code == 200
        entries = response.json()["entries"]
        assert entries[0]["id"] == 7
        assert entries[0]["query_spec"]["targetSheet"] == "sheet-revenue"
        self.pipeline.list_history.assert_awaited_once_with("user-1", 10)

    def test_history_limit_bounds(self) -> None:
        response = self._get("/api/v1/queries/history?limit=500")

        assert response.status_code == 422

    def test_suggestions(self) -> None:
        self.pipeline.suggest_queries = AsyncMock(return_value=["Total revenue by month"])

        response = self._get("/api/v1/queries/suggestions")

        assert response.status_code == 200
        assert response.json() == {"suggestions": ["Total revenue by month"]}

    def test_replay(self) -> None:
        self.pipeline.replay = AsyncMock(
            return_value=ReplayResult(
                history_id=7,
                query_text="total revenue",
                query_spec=_spec(),
                execution_result=ExecutionResult(
                    headers=["month", "revenue"],
                    rows=[{"month": "Jan", "revenue": "100"}],
                    total_count=1,
                    filtered_count=1,
                ),
            )
        )

        response = self._get("/api/v1/queries/7")

        assert response.status_code == 200
        payload = response.json()
        assert payload["historyId"] == 7
        assert payload["executionResult"]["rows"][0]["month"] == "Jan"
        assert "replayedAt" in payload
        self.pipeline.replay.assert_awaited_once_with(7, "user-1")

    def test_replay_unknown_entry(self) -> None:
        self.pipeline.replay = AsyncMock(side_effect=HistoryNotFoundError(99))

        response = self._get("/api/v1/queries/99")

        assert response.status_code == 404
        assert response.json()["error"] == "history_not_found"
        assert response.json()["historyId"] == 99

    def test_replay_without_plan(self) -> None:
        self.pipeline.replay = AsyncMock(
            side_effect=ReplayUnavailableError(7, "no stored query plan")
        )

        response = self._get("/api/v1/queries/7")

        assert response.status_code == 409
        assert response.json()["reason"] == "no stored query plan"

    def test_replay_sheet_gone(self) -> None:
        self.pipeline.replay = AsyncMock(
            side_effect=SheetNotFoundError("sheet-revenue", "not shared")
        )

        response = self._get("/api/v1/queries/7")

        assert response.status_code == 404
        assert response.json()["error"] == "sheet_not_found"
