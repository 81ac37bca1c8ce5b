"""
Health Check Routes

FastAPI endpoints for service health and readiness checks.
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from finquery import __version__
from finquery.models.api import HealthResponse, ReadinessResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health() -> HealthResponse:
    """
    Basic liveness check.

    Returns 200 OK if the service is running.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness() -> JSONResponse:
    """
    Readiness check for service dependencies.

    Returns:
        200 OK when the pipeline and stores are initialized
        503 Service Unavailable otherwise
    """
    from finquery.api.main import app_state

    checks = {
        "pipeline": app_state.get("pipeline") is not None,
        "history_store": app_state.get("history_store") is not None,
        "catalog_store": app_state.get("catalog_store") is not None,
        "feedback_store": app_state.get("feedback_store") is not None,
        "learning_worker": bool(
            app_state.get("learning_worker") is not None
            and app_state["learning_worker"].is_running
        ),
    }
    all_ready = all(value for key, value in checks.items() if key != "learning_worker")
    if not all_ready:
        logger.warning("Readiness check failed", extra={"checks": checks})

    response = ReadinessResponse(status="ready" if all_ready else "not_ready", checks=checks)
    return JSONResponse(
        status_code=status.HTTP_200_OK if all_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=response.model_dump(),
    )
