"""
Unit Tests for CLI

Tests the FinQuery CLI commands with the runtime replaced by mocks.
"""

import json
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from finquery.cli import CLIRuntime, cli
from finquery.models.history import FeedbackEntry, QueryHistoryEntry
from finquery.models.pipeline import QuerySubmissionResult, ReplayResult
from finquery.models.query import ExecutionResult, QuerySpec
from finquery.models.sheet import ColumnMetadata, SheetMetadata, SyncResult
from finquery.pipeline.orchestrator import HistoryNotFoundError, QueryFailedError
from finquery.sources.base import SourceTransportError


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def runtime():
    return CLIRuntime(
        pipeline=AsyncMock(),
        history_store=AsyncMock(),
        catalog=AsyncMock(),
        sync_service=AsyncMock(),
    )


@pytest.fixture
def patched_runtime(runtime):
    @asynccontextmanager
    async def fake_open_runtime(with_pipeline=True):
        yield runtime

    with patch("finquery.cli.open_runtime", fake_open_runtime):
        yield runtime


def _result(**overrides):
    values = {
        "history_id": 7,
        "query_spec": QuerySpec.from_payload(
            {"targetSheet": "sheet-revenue", "interpretation": "Revenue by month"}
        ),
        "execution_result": ExecutionResult(
            headers=["month", "revenue"],
            rows=[{"month": "Jan", "revenue": "100"}, {"month": "Feb", "revenue": "200"}],
            total_count=2,
            filtered_count=2,
        ),
    }
    values.update(overrides)
    return QuerySubmissionResult(**values)


class TestCLIBasics:
    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "ask" in result.output
        assert "sheets" in result.output

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "FinQuery" in result.output

    def test_requires_system_database(self, runner):
        result = runner.invoke(cli, ["history"])
        assert result.exit_code != 0
        assert "SYSTEM_DATABASE_URL is not set" in result.output


class TestAskCommand:
    def test_prints_rows_and_history_id(self, runner, patched_runtime):
        patched_runtime.pipeline.submit = AsyncMock(return_value=_result())

        result = runner.invoke(cli, ["ask", "revenue by month", "--user", "ada"])

        assert result.exit_code == 0, result.output
        assert "Revenue by month" in result.output
        assert "Feb" in result.output
        assert "History id: 7" in result.output
        patched_runtime.pipeline.submit.assert_awaited_once_with("ada", "revenue by month")

    def test_json_output(self, runner, patched_runtime):
        patched_runtime.pipeline.submit = AsyncMock(return_value=_result())

        result = runner.invoke(cli, ["ask", "revenue by month", "--json"])

        assert result.exit_code == 0, result.output
        payload = json.loads(result.output)
        assert payload["historyId"] == 7
        assert payload["executionResult"]["filteredCount"] == 2

    def test_clarification(self, runner, patched_runtime):
        patched_runtime.pipeline.submit = AsyncMock(
            return_value=_result(
                query_spec=QuerySpec.from_payload({"needsClarification": True}),
                needs_clarification=True,
                clarification_question="Which sheet would you like to query?",
                execution_result=None,
            )
        )

        result = runner.invoke(cli, ["ask", "numbers"])

        assert result.exit_code == 0, result.output
        assert "Which sheet would you like to query?" in result.output

    def test_no_rows(self, runner, patched_runtime):
        patched_runtime.pipeline.submit = AsyncMock(
            return_value=_result(
                execution_result=ExecutionResult(headers=["month"], total_count=2)
            )
        )

        result = runner.invoke(cli, ["ask", "revenue over 1000"])

        assert result.exit_code == 0, result.output
        assert "No rows matched" in result.output

    def test_failure_exits_nonzero(self, runner, patched_runtime):
        patched_runtime.pipeline.submit = AsyncMock(
            side_effect=QueryFailedError(7, SourceTransportError("sheet-revenue", "timed out"))
        )

        result = runner.invoke(cli, ["ask", "revenue"])

        assert result.exit_code == 1
        assert "source_unavailable" in result.output
        assert "timed out" in result.output


class TestHistoryReplayFeedback:
    def test_history_table(self, runner, patched_runtime):
        patched_runtime.history_store.list_by_user = AsyncMock(
            return_value=[
                QueryHistoryEntry(
                    id=7,
                    user_id="cli",
                    query_text="total revenue",
                    created_at=datetime(2024, 3, 1, 9, 30, tzinfo=UTC),
                    success=False,
                    error_message="sheet unavailable",
                )
            ]
        )

        result = runner.invoke(cli, ["history", "--user", "cli", "--limit", "5"])

        assert result.exit_code == 0, result.output
        assert "total revenue" in result.output
        assert "failed" in result.output
        patched_runtime.history_store.list_by_user.assert_awaited_once_with("cli", 5)

    def test_empty_history(self, runner, patched_runtime):
        patched_runtime.history_store.list_by_user = AsyncMock(return_value=[])

        result = runner.invoke(cli, ["history"])

        assert "No queries yet" in result.output

    def test_replay(self, runner, patched_runtime):
        patched_runtime.pipeline.replay = AsyncMock(
            return_value=ReplayResult(
                history_id=7,
                query_text="total revenue",
                query_spec=QuerySpec.from_payload({"targetSheet": "sheet-revenue"}),
                execution_result=ExecutionResult(
                    headers=["revenue"], rows=[{"revenue": 600}], total_count=2, filtered_count=2
                ),
            )
        )

        result = runner.invoke(cli, ["replay", "7", "--user", "ada"])

        assert result.exit_code == 0, result.output
        assert "600" in result.output
        patched_runtime.pipeline.replay.assert_awaited_once_with(7, "ada")

    def test_replay_unknown(self, runner, patched_runtime):
        patched_runtime.pipeline.replay = AsyncMock(side_effect=HistoryNotFoundError(99))

        result = runner.invoke(cli, ["replay", "99"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_feedback(self, runner, patched_runtime):
        patched_runtime.pipeline.submit_feedback = AsyncMock(
            return_value=FeedbackEntry(
                id=3, query_history_id=7, user_id="cli", feedback_type="incorrect"
            )
        )

        result = runner.invoke(cli, ["feedback", "7", "incorrect", "-t", "Wrong month"])

        assert result.exit_code == 0, result.output
        assert "Feedback 3 recorded" in result.output
        patched_runtime.pipeline.submit_feedback.assert_awaited_once_with(
            7, "cli", "incorrect", "Wrong month"
        )

    def test_feedback_type_is_validated(self, runner, patched_runtime):
        result = runner.invoke(cli, ["feedback", "7", "meh"])

        assert result.exit_code == 2


class TestSheetsCommands:
    def test_list(self, runner, patched_runtime):
        patched_runtime.catalog.list_sheets = AsyncMock(
            return_value=[SheetMetadata(sheet_id="sheet-expenses", name="Expenses 2024")]
        )

        result = runner.invoke(cli, ["sheets", "list"])

        assert result.exit_code == 0, result.output
        assert "Expenses 2024" in result.output
        assert "never" in result.output

    def test_add_and_sync(self, runner, patched_runtime):
        patched_runtime.sync_service.register_sheet = AsyncMock(
            return_value=SheetMetadata(sheet_id="sheet-expenses", name="Expenses 2024")
        )
        patched_runtime.sync_service.sync_sheet = AsyncMock(
            return_value=SyncResult(
                sheet_id="sheet-expenses",
                name="Expenses 2024",
                columns=[
                    ColumnMetadata(
                        sheet_id="sheet-expenses", column_name="Amount", data_type="number"
                    )
                ],
                row_count=1,
            )
        )

        result = runner.invoke(cli, ["sheets", "add", "sheet-expenses"])

        assert result.exit_code == 0, result.output
        assert "Registered Expenses 2024" in result.output
        assert "Amount" in result.output
        patched_runtime.sync_service.register_sheet.assert_awaited_once_with(
            sheet_id="sheet-expenses", name=None, description=""
        )

    def test_add_without_sync(self, runner, patched_runtime):
        patched_runtime.sync_service.register_sheet = AsyncMock(
            return_value=SheetMetadata(sheet_id="sheet-expenses", name="Expenses 2024")
        )

        result = runner.invoke(cli, ["sheets", "add", "sheet-expenses", "--no-sync"])

        assert result.exit_code == 0, result.output
        patched_runtime.sync_service.sync_sheet.assert_not_awaited()

    def test_sync_failure(self, runner, patched_runtime):
        patched_runtime.sync_service.sync_sheet = AsyncMock(
            side_effect=SourceTransportError("sheet-expenses", "timed out")
        )

        result = runner.invoke(cli, ["sheets", "sync", "sheet-expenses"])

        assert result.exit_code == 1
        assert "timed out" in result.output
