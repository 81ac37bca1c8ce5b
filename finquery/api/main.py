"""
FastAPI Application

Main FastAPI application for FinQuery with:
- Lifespan management for stores, sheet source, LLM provider, learning worker and reports
- CORS middleware for frontend integration
- Exception handlers that keep failed queries distinguishable from empty results

Usage:
    uvicorn finquery.api.main:app --reload --port 8000
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finquery import __version__
from finquery.agents import InsightAgent, QueryInterpreterAgent, ReportAgent, SuggestionAgent
from finquery.api.routes import feedback, health, queries, reports, sheets
from finquery.catalog.store import ColumnNotFoundError, SheetCatalogStore
from finquery.catalog.sync import SheetSyncService
from finquery.config import get_settings
from finquery.feedback.learning import FeedbackLearningWorker
from finquery.feedback.store import FeedbackStore
from finquery.history.store import QueryHistoryStore
from finquery.llm.factory import LLMProviderFactory
from finquery.models.agent import AgentError
from finquery.pipeline.orchestrator import (
    HistoryNotFoundError,
    QueryFailedError,
    QueryPipeline,
    ReplayUnavailableError,
)
from finquery.reports.service import ReportGenerationError, ReportService
from finquery.reports.store import ReportStore
from finquery.sources.base import SheetNotFoundError, SourceUnavailable
from finquery.sources.google_sheets import GoogleSheetsSource

logger = logging.getLogger(__name__)

# Global state for pipeline and components
app_state = {
    "pipeline": None,
    "llm": None,
    "source": None,
    "history_store": None,
    "catalog_store": None,
    "feedback_store": None,
    "sync_service": None,
    "learning_worker": None,
    "report_store": None,
    "report_service": None,
}

_QUERY_FAILURE_STATUS = {
    "source_unavailable": status.HTTP_502_BAD_GATEWAY,
    "interpretation_failed": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Lifespan context manager for startup and shutdown.

    Initializes:
    - System database stores (history, catalog, feedback, reports)
    - Google Sheets source
    - LLM provider, agents and the feedback learning worker
    - Query pipeline
    """
    config = get_settings()
    logger.info("Starting FinQuery API server...")

    try:
        logger.info("Initializing sheet source...")
        source = GoogleSheetsSource.from_settings(config.sheets)
        app_state["source"] = source

        logger.info("Initializing system database stores...")
        if config.system_database.url:
            history_store = QueryHistoryStore()
            await history_store.initialize()
            app_state["history_store"] = history_store

            catalog_store = SheetCatalogStore()
            await catalog_store.initialize()
            app_state["catalog_store"] = catalog_store
            app_state["sync_service"] = SheetSyncService(catalog=catalog_store, source=source)

            # References query_history, so created after it
            feedback_store = FeedbackStore()
            await feedback_store.initialize()
            app_state["feedback_store"] = feedback_store

            report_store = ReportStore()
            await report_store.initialize()
            app_state["report_store"] = report_store
        else:
            logger.warning(
                "SYSTEM_DATABASE_URL not set; history, catalog, feedback and reports disabled."
            )

        logger.info("Initializing LLM provider...")
        try:
            llm = LLMProviderFactory.create_default_provider(config.llm)
            app_state["llm"] = llm
        except ValueError as e:
            logger.warning(f"LLM provider unavailable: {e}")
            llm = None

        if llm is not None and config.feedback.learning_enabled:
            worker = FeedbackLearningWorker(
                llm=llm,
                queue_size=config.feedback.learning_queue_size,
                max_attempts=config.feedback.learning_max_attempts,
                retry_delay_seconds=config.feedback.learning_retry_delay_seconds,
                max_tokens=config.feedback.learning_max_tokens,
            )
            worker.start()
            app_state["learning_worker"] = worker
        else:
            logger.info("Feedback learning disabled")

        logger.info("Initializing pipeline orchestrator...")
        if llm is not None and app_state["history_store"] is not None:
            app_state["pipeline"] = QueryPipeline(
                history_store=app_state["history_store"],
                sync_service=app_state["sync_service"],
                source=source,
                interpreter=QueryInterpreterAgent(
                    llm, max_tokens=config.pipeline.interpret_max_tokens
                ),
                insight_agent=InsightAgent(
                    llm,
                    max_tokens=config.pipeline.insight_max_tokens,
                    preview_rows=config.pipeline.insight_preview_rows,
                ),
                suggestion_agent=SuggestionAgent(
                    llm, max_tokens=config.pipeline.suggestion_max_tokens
                ),
                feedback_store=app_state["feedback_store"],
                learning_worker=app_state["learning_worker"],
                clarification_question=config.pipeline.default_clarification_question,
                history_limit=config.pipeline.history_limit,
            )
        else:
            logger.warning("Pipeline not initialized; LLM provider or system database is missing.")

        if llm is not None and app_state["report_store"] is not None:
            app_state["report_service"] = ReportService(
                store=app_state["report_store"],
                source=source,
                agent=ReportAgent(llm, max_tokens=config.pipeline.report_max_tokens),
            )

        logger.info("FinQuery API server started successfully")

        yield  # Application runs here

    finally:
        logger.info("Shutting down FinQuery API server...")

        if app_state["learning_worker"]:
            try:
                await app_state["learning_worker"].stop()
            except Exception as e:
                logger.error(f"Error stopping learning worker: {e}")

        for key in (
            "llm",
            "source",
            "report_store",
            "feedback_store",
            "catalog_store",
            "history_store",
        ):
            component = app_state[key]
            if component is None:
                continue
            try:
                await component.close()
                logger.info(f"Closed {key}")
            except Exception as e:
                logger.error(f"Error closing {key}: {e}")

        for key in app_state:
            app_state[key] = None

        logger.info("FinQuery API server shut down complete")


# Create FastAPI app
app = FastAPI(
    title="FinQuery API",
    description="Natural-language queries over spreadsheet-backed financial data",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for frontend
cors_origins_env = os.getenv("CORS_ORIGINS", "")
cors_origins = (
    [origin.strip() for origin in cors_origins_env.split(",") if origin.strip()]
    if cors_origins_env
    else ["http://localhost:3000", "http://localhost:3001"]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(QueryFailedError)
async def query_failed_handler(request: Request, exc: QueryFailedError) -> JSONResponse:
    """Failed submission; the history entry is already marked failed."""
    logger.error(
        f"Query failed: {exc}",
        extra={"history_id": exc.history_id, "error_kind": exc.kind},
    )
    return JSONResponse(
        status_code=_QUERY_FAILURE_STATUS.get(
            exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR
        ),
        content=exc.to_dict(),
    )


@app.exception_handler(HistoryNotFoundError)
async def history_not_found_handler(request: Request, exc: HistoryNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "history_not_found", **exc.to_dict()},
    )


@app.exception_handler(ReplayUnavailableError)
async def replay_unavailable_handler(
    request: Request, exc: ReplayUnavailableError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"error": "replay_unavailable", **exc.to_dict()},
    )


@app.exception_handler(SourceUnavailable)
async def source_unavailable_handler(request: Request, exc: SourceUnavailable) -> JSONResponse:
    """Sheet read failures outside a submission (replay, register, sync)."""
    logger.error(f"Sheet source error: {exc}")
    not_found = isinstance(exc, SheetNotFoundError)
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND if not_found else status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "sheet_not_found" if not_found else "source_unavailable",
            **exc.to_dict(),
        },
    )


@app.exception_handler(ColumnNotFoundError)
async def column_not_found_handler(request: Request, exc: ColumnNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": "column_not_found", "message": str(exc), **exc.to_dict()},
    )


@app.exception_handler(ReportGenerationError)
async def report_generation_handler(
    request: Request, exc: ReportGenerationError
) -> JSONResponse:
    """Provider failure detail is hidden in production."""
    logger.error(f"Report generation failed: {exc.cause}", extra={"report_type": exc.report_type})
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=exc.to_dict(include_detail=not get_settings().is_production),
    )


@app.exception_handler(AgentError)
async def agent_error_handler(request: Request, exc: AgentError) -> JSONResponse:
    """Handle agent errors with context."""
    logger.error(
        f"Agent error: {exc}",
        extra={"agent": exc.agent, "recoverable": exc.recoverable},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "agent_error",
            "message": exc.message,
            "agent": exc.agent,
            "recoverable": exc.recoverable,
        },
    )


# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(queries.router, prefix="/api/v1", tags=["queries"])
app.include_router(feedback.router, prefix="/api/v1", tags=["feedback"])
app.include_router(sheets.router, prefix="/api/v1", tags=["sheets"])
app.include_router(reports.router, prefix="/api/v1", tags=["reports"])


# Root endpoint
@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "FinQuery API",
        "version": __version__,
        "description": "Natural-language queries over spreadsheet-backed financial data",
        "docs": "/docs",
    }
