"""Request-scoped helpers shared by the routers."""

from fastapi import Header, HTTPException, status

from finquery.catalog.store import SheetCatalogStore
from finquery.catalog.sync import SheetSyncService
from finquery.pipeline.orchestrator import QueryPipeline
from finquery.reports.service import ReportService
from finquery.reports.store import ReportStore
from finquery.sources.base import BaseSheetSource


def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity, set by the authenticating proxy in front of the API."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    return x_user_id.strip()


def get_pipeline() -> QueryPipeline:
    from finquery.api.main import app_state

    pipeline = app_state.get("pipeline")
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Query pipeline is unavailable. Check LLM and SYSTEM_DATABASE_URL settings.",
        )
    return pipeline


def get_catalog() -> SheetCatalogStore:
    from finquery.api.main import app_state

    catalog = app_state.get("catalog_store")
    if catalog is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sheet catalog is unavailable. Ensure SYSTEM_DATABASE_URL is set.",
        )
    return catalog


def get_sync_service() -> SheetSyncService:
    from finquery.api.main import app_state

    sync_service = app_state.get("sync_service")
    if sync_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sheet sync is unavailable. Ensure SYSTEM_DATABASE_URL is set.",
        )
    return sync_service


def get_source() -> BaseSheetSource:
    from finquery.api.main import app_state

    source = app_state.get("source")
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sheet source is unavailable.",
        )
    return source


def get_report_store() -> ReportStore:
    from finquery.api.main import app_state

    report_store = app_state.get("report_store")
    if report_store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reports are unavailable. Ensure SYSTEM_DATABASE_URL is set.",
        )
    return report_store


def get_report_service() -> ReportService:
    from finquery.api.main import app_state

    report_service = app_state.get("report_service")
    if report_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Report generation is unavailable. Check LLM and SYSTEM_DATABASE_URL settings.",
        )
    return report_service
