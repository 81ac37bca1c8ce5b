"""
Unit tests for QueryPipeline orchestrator.

Tests pipeline execution including:
- History recorded before interpretation and marked afterwards
- Clarification path with the default question
- Failures kept distinct from empty results
- Replay against current data
- Feedback persistence and hand-off to the learning worker
"""

import json
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from finquery.history.store import QueryHistoryStore
from finquery.models.agent import InterpretationParseError
from finquery.models.history import FeedbackEntry, QueryHistoryEntry
from finquery.models.query import QuerySpec
from finquery.models.sheet import SchemaContext
from finquery.pipeline.orchestrator import (
    DEFAULT_CLARIFICATION_QUESTION,
    HistoryNotFoundError,
    QueryFailedError,
    QueryPipeline,
    ReplayUnavailableError,
)
from finquery.sources.base import SheetNotFoundError

REVENUE_MATRIX = [["month", "revenue"], ["Jan", "100"], ["Feb", "200"]]


def _spec(**payload):
    return QuerySpec.from_payload({"targetSheet": "sheet-revenue", **payload})


def _entry(query_spec=None, **overrides):
    values = {
        "id": 7,
        "user_id": "user-1",
        "query_text": "total revenue",
        "query_spec": query_spec,
        "created_at": datetime(2024, 3, 1, tzinfo=UTC),
        "success": True,
    }
    values.update(overrides)
    return QueryHistoryEntry(**values)


@pytest.fixture
def history_store():
    store = AsyncMock()
    store.record = AsyncMock(return_value=7)
    store.update = AsyncMock(return_value=True)
    return store


@pytest.fixture
def sync_service(sample_schema_context):
    service = AsyncMock()
    service.build_schema_context = AsyncMock(return_value=sample_schema_context)
    return service


@pytest.fixture
def source():
    source = AsyncMock()
    source.fetch_raw = AsyncMock(return_value=REVENUE_MATRIX)
    return source


@pytest.fixture
def interpreter():
    interpreter = AsyncMock()
    interpreter.interpret = AsyncMock(
        return_value=_spec(aggregation={"function": "sum", "column": "revenue"})
    )
    return interpreter


@pytest.fixture
def insight_agent():
    agent = AsyncMock()
    agent.generate = AsyncMock(return_value="Revenue doubled month over month.")
    return agent


@pytest.fixture
def pipeline(history_store, sync_service, source, interpreter, insight_agent):
    return QueryPipeline(
        history_store=history_store,
        sync_service=sync_service,
        source=source,
        interpreter=interpreter,
        insight_agent=insight_agent,
    )


class TestSubmit:
    """Test the submission graph."""

    @pytest.mark.asyncio
    async def test_successful_aggregation(self, pipeline, history_store, source, interpreter):
        result = await pipeline.submit("user-1", "total revenue")

        assert result.history_id == 7
        assert result.needs_clarification is False
        assert result.execution_result.rows == [{"revenue": 300, "aggregation": "Sum of revenue"}]
        assert result.execution_result.total_count == 2
        assert result.execution_result.filtered_count == 2
        assert result.insight == "Revenue doubled month over month."

        history_store.record.assert_awaited_once_with("user-1", "total revenue")
        interpreter.interpret.assert_awaited_once()
        source.fetch_raw.assert_awaited_once_with("sheet-revenue")
        args = history_store.update.await_args.args
        assert args[0] == 7
        assert args[1].target_sheet == "sheet-revenue"
        assert args[2] is True

    @pytest.mark.asyncio
    async def test_insight_receives_sheet_context(
        self, pipeline, interpreter, insight_agent, sample_schema_context
    ):
        interpreter.interpret.return_value = QuerySpec.from_payload(
            {"targetSheet": "sheet-expenses"}
        )

        await pipeline.submit("user-1", "all expenses")

        kwargs = insight_agent.generate.await_args.kwargs
        assert kwargs["sheet_name"] == "Expenses 2024"
        assert kwargs["columns"] == sample_schema_context.columns_for("sheet-expenses")

    @pytest.mark.asyncio
    async def test_clarification_uses_default_question(
        self, pipeline, history_store, source, interpreter
    ):
        interpreter.interpret.return_value = QuerySpec.from_payload(
            {"targetSheet": None, "needsClarification": True}
        )

        result = await pipeline.submit("user-1", "show me the numbers")

        assert result.needs_clarification is True
        assert result.clarification_question == DEFAULT_CLARIFICATION_QUESTION
        assert result.execution_result is None
        source.fetch_raw.assert_not_awaited()
        assert history_store.update.await_args.args[2] is True

    @pytest.mark.asyncio
    async def test_clarification_keeps_model_question(self, pipeline, interpreter):
        interpreter.interpret.return_value = QuerySpec.from_payload(
            {
                "targetSheet": "sheet-revenue",
                "needsClarification": True,
                "clarificationQuestion": "Which fiscal year?",
            }
        )

        result = await pipeline.submit("user-1", "revenue last year")

        assert result.clarification_question == "Which fiscal year?"

    @pytest.mark.asyncio
    async def test_missing_target_sheet_asks_for_clarification(self, pipeline, interpreter):
        interpreter.interpret.return_value = QuerySpec.from_payload({"interpretation": "?"})

        result = await pipeline.submit("user-1", "hmm")

        assert result.needs_clarification is True

    @pytest.mark.asyncio
    async def test_zero_rows_is_success(self, pipeline, history_store, interpreter, insight_agent):
        interpreter.interpret.return_value = _spec(
            filters=[{"column": "revenue", "operator": "greater_than", "value": "1000"}]
        )

        result = await pipeline.submit("user-1", "revenue over 1000")

        assert result.execution_result.rows == []
        assert result.execution_result.filtered_count == 0
        assert result.insight is None
        insight_agent.generate.assert_not_awaited()
        assert history_store.update.await_args.args[2] is True

    @pytest.mark.asyncio
    async def test_source_failure_is_reported_and_recorded(self, pipeline, history_store, source):
        source.fetch_raw.side_effect = SheetNotFoundError("sheet-revenue", "not shared")

        with pytest.raises(QueryFailedError) as exc_info:
            await pipeline.submit("user-1", "total revenue")

        error = exc_info.value
        assert error.kind == "source_unavailable"
        assert error.history_id == 7
        assert error.to_dict()["error"] == "source_unavailable"
        history_id, spec, success, message = history_store.update.await_args.args
        assert history_id == 7
        assert spec.target_sheet == "sheet-revenue"
        assert success is False
        assert message == "not shared"

    @pytest.mark.asyncio
    async def test_interpretation_failure(self, pipeline, history_store, interpreter, source):
        interpreter.interpret.side_effect = InterpretationParseError(
            agent="QueryInterpreterAgent", message="Failed to parse LLM response as JSON"
        )

        with pytest.raises(QueryFailedError) as exc_info:
            await pipeline.submit("user-1", "gibberish")

        assert exc_info.value.kind == "interpretation_failed"
        assert exc_info.value.message == "Failed to parse LLM response as JSON"
        source.fetch_raw.assert_not_awaited()
        args = history_store.update.await_args.args
        assert args[1] is None
        assert args[2] is False

    @pytest.mark.asyncio
    async def test_history_failure_stops_everything(self, pipeline, history_store, interpreter):
        history_store.record.side_effect = RuntimeError("database down")

        with pytest.raises(RuntimeError, match="database down"):
            await pipeline.submit("user-1", "total revenue")

        interpreter.interpret.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_insight_failure_does_not_change_outcome(self, pipeline, insight_agent):
        insight_agent.generate.side_effect = RuntimeError("model overloaded")

        result = await pipeline.submit("user-1", "total revenue")

        assert result.insight is None
        assert result.execution_result.rows[0]["revenue"] == 300

    @pytest.mark.asyncio
    async def test_history_update_failure_is_logged_not_raised(self, pipeline, history_store):
        history_store.update.side_effect = RuntimeError("connection lost")

        result = await pipeline.submit("user-1", "total revenue")

        assert result.execution_result is not None


class TestReplay:
    """Test re-executing stored plans."""

    @pytest.mark.asyncio
    async def test_replay_reads_current_data(self, pipeline, history_store, source, interpreter):
        history_store.get = AsyncMock(
            return_value=_entry(_spec(aggregation={"function": "sum", "column": "revenue"}))
        )
        source.fetch_raw.return_value = [["month", "revenue"], ["Jan", "100"], ["Feb", "500"]]

        result = await pipeline.replay(7, user_id="user-1")

        assert result.execution_result.rows[0]["revenue"] == 600
        assert result.query_text == "total revenue"
        assert result.replayed_at is not None
        history_store.get.assert_awaited_once_with(7, user_id="user-1")
        interpreter.interpret.assert_not_awaited()
        history_store.record.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replay_of_unchanged_data_matches_submission(
        self, pipeline, history_store, interpreter
    ):
        interpreter.interpret.return_value = _spec(
            filters=[{"column": "revenue", "operator": "greater_than", "value": 50}],
            sorting={"column": "revenue", "direction": "desc"},
        )
        submitted = await pipeline.submit("user-1", "revenue over 50, largest first")

        stored_spec = history_store.update.await_args.args[1]
        decoded = QueryHistoryStore._decode_spec(json.dumps(stored_spec.to_payload()), 7)
        history_store.get = AsyncMock(return_value=_entry(decoded))

        replayed = await pipeline.replay(7, user_id="user-1")

        assert decoded == stored_spec
        assert [row["month"] for row in submitted.execution_result.rows] == ["Feb", "Jan"]
        assert replayed.execution_result == submitted.execution_result

    @pytest.mark.asyncio
    async def test_unknown_entry(self, pipeline, history_store):
        history_store.get = AsyncMock(return_value=None)

        with pytest.raises(HistoryNotFoundError):
            await pipeline.replay(99)

    @pytest.mark.asyncio
    async def test_entry_without_plan(self, pipeline, history_store):
        history_store.get = AsyncMock(return_value=_entry(None, success=False))

        with pytest.raises(ReplayUnavailableError, match="no stored query plan"):
            await pipeline.replay(7)

    @pytest.mark.asyncio
    async def test_plan_without_target(self, pipeline, history_store):
        history_store.get = AsyncMock(
            return_value=_entry(QuerySpec.from_payload({"needsClarification": True}))
        )

        with pytest.raises(ReplayUnavailableError, match="no target sheet"):
            await pipeline.replay(7)

    @pytest.mark.asyncio
    async def test_source_errors_propagate(self, pipeline, history_store, source):
        history_store.get = AsyncMock(return_value=_entry(_spec()))
        source.fetch_raw.side_effect = SheetNotFoundError("sheet-revenue", "deleted")

        with pytest.raises(SheetNotFoundError):
            await pipeline.replay(7)


class TestFeedback:
    """Test feedback persistence and learning hand-off."""

    @pytest.fixture
    def feedback_store(self):
        store = AsyncMock()
        store.create_feedback = AsyncMock(
            return_value=FeedbackEntry(
                id=3,
                query_history_id=7,
                user_id="user-1",
                feedback_type="incorrect",
                feedback_text="Wrong sheet",
            )
        )
        return store

    @pytest.mark.asyncio
    async def test_feedback_is_stored_then_queued(
        self, pipeline, history_store, feedback_store
    ):
        worker = MagicMock()
        pipeline.feedback_store = feedback_store
        pipeline.learning_worker = worker
        history_store.get = AsyncMock(return_value=_entry(_spec()))

        feedback = await pipeline.submit_feedback(7, "user-1", "incorrect", "Wrong sheet")

        assert feedback.id == 3
        feedback_store.create_feedback.assert_awaited_once_with(
            query_history_id=7,
            user_id="user-1",
            feedback_type="incorrect",
            feedback_text="Wrong sheet",
        )
        task = worker.submit.call_args.args[0]
        assert task.feedback_id == 3
        assert task.query_text == "total revenue"
        assert task.query_spec.target_sheet == "sheet-revenue"

    @pytest.mark.asyncio
    async def test_feedback_on_unknown_entry(self, pipeline, history_store, feedback_store):
        pipeline.feedback_store = feedback_store
        history_store.get = AsyncMock(return_value=None)

        with pytest.raises(HistoryNotFoundError):
            await pipeline.submit_feedback(99, "user-1", "helpful")

        feedback_store.create_feedback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_feedback_without_store(self, pipeline):
        with pytest.raises(RuntimeError, match="Feedback store not configured"):
            await pipeline.submit_feedback(7, "user-1", "helpful")

    @pytest.mark.asyncio
    async def test_list_feedback_checks_ownership_first(
        self, pipeline, history_store, feedback_store
    ):
        pipeline.feedback_store = feedback_store
        feedback_store.list_for_query = AsyncMock(return_value=[])
        history_store.get = AsyncMock(return_value=None)

        with pytest.raises(HistoryNotFoundError):
            await pipeline.list_feedback(7, "user-2")

        history_store.get.assert_awaited_once_with(7, user_id="user-2")
        feedback_store.list_for_query.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_feedback(self, pipeline, history_store, feedback_store):
        pipeline.feedback_store = feedback_store
        stored = feedback_store.create_feedback.return_value
        feedback_store.list_for_query = AsyncMock(return_value=[stored])
        history_store.get = AsyncMock(return_value=_entry(_spec()))

        assert await pipeline.list_feedback(7, "user-1") == [stored]
        feedback_store.list_for_query.assert_awaited_once_with(7)


class TestHistoryAndSuggestions:
    @pytest.mark.asyncio
    async def test_list_history_uses_default_limit(self, pipeline, history_store):
        history_store.list_by_user = AsyncMock(return_value=[_entry()])

        entries = await pipeline.list_history("user-1")

        assert [entry.id for entry in entries] == [7]
        history_store.list_by_user.assert_awaited_once_with("user-1", 50)

    @pytest.mark.asyncio
    async def test_suggestions_without_agent(self, pipeline):
        assert await pipeline.suggest_queries() == []

    @pytest.mark.asyncio
    async def test_suggestions_with_agent(self, pipeline, sync_service):
        agent = AsyncMock()
        agent.suggest = AsyncMock(return_value=["Total revenue by month"])
        pipeline.suggestion_agent = agent

        assert await pipeline.suggest_queries() == ["Total revenue by month"]
        agent.suggest.assert_awaited_once()
        assert isinstance(agent.suggest.await_args.args[0], SchemaContext)
