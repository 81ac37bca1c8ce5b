"""
FinQuery Pipeline Orchestrator

LangGraph state machine for one query submission:
- interpret → (clarify | execute) → insight → complete
- Any failure after the history entry is recorded routes to error_handler,
  which marks the entry failed before the error is raised to the caller
- Insight generation is best-effort and never changes the outcome

Replay, feedback, history listing and suggestions share the same
collaborators but are plain coroutines.
"""

import logging
import time
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph

from finquery.agents.insights import InsightAgent
from finquery.agents.interpreter import QueryInterpreterAgent
from finquery.agents.suggestions import SuggestionAgent
from finquery.catalog.sync import SheetSyncService
from finquery.feedback.learning import FeedbackLearningTask, FeedbackLearningWorker
from finquery.feedback.store import FeedbackStore
from finquery.history.store import QueryHistoryStore
from finquery.models.agent import AgentError
from finquery.models.history import FeedbackEntry, FeedbackType, QueryHistoryEntry
from finquery.models.pipeline import QuerySubmissionResult, ReplayResult
from finquery.models.query import ExecutionResult, QuerySpec
from finquery.models.sheet import SchemaContext
from finquery.query.executor import QueryExecutor
from finquery.sources.base import BaseSheetSource, SourceUnavailable
from finquery.sources.shaping import shape

logger = logging.getLogger(__name__)

DEFAULT_CLARIFICATION_QUESTION = "Which sheet would you like to query?"


# ============================================================================
# Errors
# ============================================================================


class PipelineError(Exception):
    """Base class for errors raised to pipeline callers."""

    def to_dict(self) -> dict[str, Any]:
        return {"message": str(self), "type": self.__class__.__name__}


class HistoryNotFoundError(PipelineError):
    """No history entry with this id for this user."""

    def __init__(self, history_id: int):
        self.history_id = history_id
        super().__init__(f"Query history entry {history_id} not found")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "historyId": self.history_id}


class ReplayUnavailableError(PipelineError):
    """The entry exists but holds no executable plan."""

    def __init__(self, history_id: int, reason: str):
        self.history_id = history_id
        self.reason = reason
        super().__init__(f"Query {history_id} cannot be replayed: {reason}")

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "historyId": self.history_id, "reason": self.reason}


class QueryFailedError(PipelineError):
    """
    A submission failed after its history entry was recorded.

    `kind` separates data-source failures from interpretation failures so
    callers can tell them apart from a zero-row success.
    """

    def __init__(self, history_id: int, cause: BaseException):
        self.history_id = history_id
        self.cause = cause
        self.kind = failure_kind(cause)
        self.message = error_message(cause)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "historyId": self.history_id,
            "error": self.kind,
            "message": self.message,
            "type": type(self.cause).__name__,
        }


def failure_kind(error: BaseException) -> str:
    if isinstance(error, SourceUnavailable):
        return "source_unavailable"
    if isinstance(error, AgentError):
        return "interpretation_failed"
    return "internal_error"


def error_message(error: BaseException) -> str:
    message = getattr(error, "message", None)
    return str(message) if message else (str(error) or type(error).__name__)


# ============================================================================
# Pipeline State Schema
# ============================================================================


class PipelineState(TypedDict, total=False):
    """State carried through one submission."""

    # Input
    history_id: int
    user_id: str
    query_text: str

    # Interpreter output
    schema_context: SchemaContext | None
    query_spec: QuerySpec | None
    needs_clarification: bool
    clarification_question: str | None

    # Executor output
    execution_result: ExecutionResult | None
    insight: str | None

    # Error handling
    error: BaseException | None
    current_step: str | None
    step_timings: dict[str, float]


# ============================================================================
# Pipeline
# ============================================================================


class QueryPipeline:
    """Interpret, execute and record natural-language queries."""

    def __init__(
        self,
        history_store: QueryHistoryStore,
        sync_service: SheetSyncService,
        source: BaseSheetSource,
        interpreter: QueryInterpreterAgent,
        insight_agent: InsightAgent | None = None,
        suggestion_agent: SuggestionAgent | None = None,
        feedback_store: FeedbackStore | None = None,
        learning_worker: FeedbackLearningWorker | None = None,
        executor: QueryExecutor | None = None,
        clarification_question: str = DEFAULT_CLARIFICATION_QUESTION,
        history_limit: int = 50,
    ):
        self.history_store = history_store
        self.sync_service = sync_service
        self.source = source
        self.interpreter = interpreter
        self.insight_agent = insight_agent
        self.suggestion_agent = suggestion_agent
        self.feedback_store = feedback_store
        self.learning_worker = learning_worker
        self.executor = executor or QueryExecutor()
        self.clarification_question = clarification_question
        self.history_limit = history_limit

        self.graph = self._build_graph()

        logger.info("QueryPipeline initialized")

    def _build_graph(self):
        workflow = StateGraph(PipelineState)

        workflow.add_node("interpret", self._run_interpret)
        workflow.add_node("clarify", self._run_clarify)
        workflow.add_node("execute", self._run_execute)
        workflow.add_node("insight", self._run_insight)
        workflow.add_node("complete", self._run_complete)
        workflow.add_node("error_handler", self._handle_error)

        workflow.set_entry_point("interpret")

        workflow.add_conditional_edges(
            "interpret",
            self._route_after_interpret,
            {
                "clarify": "clarify",
                "execute": "execute",
                "error": "error_handler",
            },
        )
        workflow.add_conditional_edges(
            "execute",
            self._route_after_execute,
            {
                "insight": "insight",
                "complete": "complete",
                "error": "error_handler",
            },
        )
        workflow.add_edge("insight", "complete")
        workflow.add_edge("clarify", END)
        workflow.add_edge("complete", END)
        workflow.add_edge("error_handler", END)

        return workflow.compile()

    # ========================================================================
    # Public API
    # ========================================================================

    async def submit(self, user_id: str, query_text: str) -> QuerySubmissionResult:
        """
        Run a query end to end.

        The history entry is recorded first; if that fails nothing else runs.

        Raises:
            QueryFailedError: Interpretation or data fetch failed
        """
        history_id = await self.history_store.record(user_id, query_text)

        logger.info(
            f"Starting pipeline for query: {query_text[:100]}",
            extra={"history_id": history_id, "user_id": user_id},
        )
        start_time = time.time()

        result = await self.graph.ainvoke(
            {
                "history_id": history_id,
                "user_id": user_id,
                "query_text": query_text,
                "schema_context": None,
                "query_spec": None,
                "needs_clarification": False,
                "clarification_question": None,
                "execution_result": None,
                "insight": None,
                "error": None,
                "current_step": None,
                "step_timings": {},
            }
        )

        total_time = (time.time() - start_time) * 1000
        error = result.get("error")
        if error is not None:
            logger.info(
                f"Pipeline failed in {total_time:.1f}ms",
                extra={"history_id": history_id, "step": result.get("current_step")},
            )
            raise QueryFailedError(history_id, error)

        logger.info(
            f"Pipeline complete in {total_time:.1f}ms",
            extra={"history_id": history_id, "step_timings": result.get("step_timings")},
        )
        return QuerySubmissionResult(
            history_id=history_id,
            query_spec=result["query_spec"],
            needs_clarification=result.get("needs_clarification", False),
            clarification_question=result.get("clarification_question"),
            execution_result=result.get("execution_result"),
            insight=result.get("insight"),
        )

    async def replay(self, history_id: int, user_id: str | None = None) -> ReplayResult:
        """
        Re-execute a stored plan against current data.

        Raises:
            HistoryNotFoundError: Unknown entry (or not owned by `user_id`)
            ReplayUnavailableError: Entry has no executable plan
            SourceUnavailable: The sheet could not be read
        """
        entry = await self._load_entry(history_id, user_id)
        spec = entry.query_spec
        if spec is None:
            raise ReplayUnavailableError(history_id, "no stored query plan")
        if not spec.target_sheet:
            raise ReplayUnavailableError(history_id, "stored plan has no target sheet")

        execution_result = await self._fetch_and_execute(spec)
        schema_context = await self._schema_context_for_insight()
        insight = await self._generate_insight(spec, execution_result, schema_context)

        logger.info(
            "Replayed query",
            extra={"history_id": history_id, "row_count": len(execution_result.rows)},
        )
        return ReplayResult(
            history_id=history_id,
            query_text=entry.query_text,
            query_spec=spec,
            execution_result=execution_result,
            insight=insight,
        )

    async def submit_feedback(
        self,
        history_id: int,
        user_id: str,
        feedback_type: FeedbackType,
        feedback_text: str | None = None,
    ) -> FeedbackEntry:
        """
        Store feedback and queue it for learning.

        The entry id is returned once persistence succeeds; forwarding to the
        model happens later in the learning worker.
        """
        if self.feedback_store is None:
            raise RuntimeError("Feedback store not configured")

        entry = await self._load_entry(history_id, user_id)
        feedback = await self.feedback_store.create_feedback(
            query_history_id=history_id,
            user_id=user_id,
            feedback_type=feedback_type,
            feedback_text=feedback_text,
        )

        if self.learning_worker is not None:
            self.learning_worker.submit(
                FeedbackLearningTask(
                    feedback_id=feedback.id,
                    query_history_id=history_id,
                    query_text=entry.query_text,
                    query_spec=entry.query_spec,
                    feedback_type=feedback_type,
                    feedback_text=feedback_text,
                )
            )
        return feedback

    async def list_feedback(self, history_id: int, user_id: str) -> list[FeedbackEntry]:
        """Feedback on one of the caller's entries, newest first."""
        if self.feedback_store is None:
            raise RuntimeError("Feedback store not configured")
        await self._load_entry(history_id, user_id)
        return await self.feedback_store.list_for_query(history_id)

    async def list_history(self, user_id: str, limit: int | None = None) -> list[QueryHistoryEntry]:
        return await self.history_store.list_by_user(user_id, limit or self.history_limit)

    async def suggest_queries(self) -> list[str]:
        if self.suggestion_agent is None:
            return []
        schema_context = await self.sync_service.build_schema_context()
        return await self.suggestion_agent.suggest(schema_context)

    # ========================================================================
    # Graph Nodes
    # ========================================================================

    async def _run_interpret(self, state: PipelineState) -> PipelineState:
        state["current_step"] = "interpret"
        start = time.time()
        try:
            schema_context = await self.sync_service.build_schema_context()
            state["schema_context"] = schema_context
            state["query_spec"] = await self.interpreter.interpret(
                state["query_text"], schema_context
            )
        except Exception as e:
            state["error"] = e
        state["step_timings"]["interpret"] = (time.time() - start) * 1000
        return state

    async def _run_clarify(self, state: PipelineState) -> PipelineState:
        state["current_step"] = "clarify"
        spec = state["query_spec"]
        state["needs_clarification"] = True
        state["clarification_question"] = spec.clarification_question or self.clarification_question
        await self._mark_history(state["history_id"], spec, success=True)
        return state

    async def _run_execute(self, state: PipelineState) -> PipelineState:
        state["current_step"] = "execute"
        start = time.time()
        try:
            state["execution_result"] = await self._fetch_and_execute(state["query_spec"])
        except Exception as e:
            state["error"] = e
        state["step_timings"]["execute"] = (time.time() - start) * 1000
        return state

    async def _run_insight(self, state: PipelineState) -> PipelineState:
        state["current_step"] = "insight"
        start = time.time()
        state["insight"] = await self._generate_insight(
            state["query_spec"], state["execution_result"], state.get("schema_context")
        )
        state["step_timings"]["insight"] = (time.time() - start) * 1000
        return state

    async def _run_complete(self, state: PipelineState) -> PipelineState:
        state["current_step"] = "complete"
        await self._mark_history(state["history_id"], state["query_spec"], success=True)
        return state

    async def _handle_error(self, state: PipelineState) -> PipelineState:
        error = state["error"]
        logger.error(
            f"Pipeline error in {state.get('current_step')}: {error_message(error)}",
            extra={
                "history_id": state["history_id"],
                "error_type": type(error).__name__,
                "error_kind": failure_kind(error),
            },
        )
        await self._mark_history(
            state["history_id"],
            state.get("query_spec"),
            success=False,
            error_message=error_message(error),
        )
        return state

    # ========================================================================
    # Conditional Edge Logic
    # ========================================================================

    def _route_after_interpret(self, state: PipelineState) -> str:
        if state.get("error") is not None:
            return "error"
        if not state["query_spec"].is_executable:
            return "clarify"
        return "execute"

    def _route_after_execute(self, state: PipelineState) -> str:
        if state.get("error") is not None:
            return "error"
        result = state.get("execution_result")
        if self.insight_agent is not None and result is not None and result.rows:
            return "insight"
        return "complete"

    # ========================================================================
    # Helpers
    # ========================================================================

    async def _fetch_and_execute(self, spec: QuerySpec) -> ExecutionResult:
        matrix = await self.source.fetch_raw(spec.target_sheet)
        return self.executor.execute(shape(matrix), spec)

    async def _generate_insight(
        self,
        spec: QuerySpec,
        execution_result: ExecutionResult,
        schema_context: SchemaContext | None,
    ) -> str | None:
        if self.insight_agent is None or not execution_result.rows:
            return None
        sheet_name = None
        columns = []
        if schema_context is not None and spec.target_sheet:
            sheet_name = schema_context.sheet_name(spec.target_sheet)
            columns = schema_context.columns_for(spec.target_sheet)
        try:
            return await self.insight_agent.generate(
                execution_result.rows, sheet_name=sheet_name, columns=columns
            )
        except Exception as e:
            logger.warning(
                f"Insight generation failed: {e}",
                extra={"target_sheet": spec.target_sheet, "error_type": type(e).__name__},
            )
            return None

    async def _schema_context_for_insight(self) -> SchemaContext | None:
        if self.insight_agent is None:
            return None
        try:
            return await self.sync_service.build_schema_context()
        except Exception as e:
            logger.warning(f"Schema context unavailable for insight: {e}")
            return None

    async def _load_entry(self, history_id: int, user_id: str | None) -> QueryHistoryEntry:
        entry = await self.history_store.get(history_id, user_id=user_id)
        if entry is None:
            raise HistoryNotFoundError(history_id)
        return entry

    async def _mark_history(
        self,
        history_id: int,
        spec: QuerySpec | None,
        success: bool,
        error_message: str | None = None,
    ) -> None:
        try:
            await self.history_store.update(history_id, spec, success, error_message)
        except Exception:
            logger.exception(
                "Failed to update query history",
                extra={"history_id": history_id, "success": success},
            )
