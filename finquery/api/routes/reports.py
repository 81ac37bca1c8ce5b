"""Report routes: CRUD for the caller's reports plus LLM generation."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from finquery.api.dependencies import get_report_service, get_report_store, get_user_id
from finquery.models.api import ReportCreateRequest, ReportGenerateRequest, ReportUpdateRequest
from finquery.models.report import Report
from finquery.reports.service import ReportService
from finquery.reports.store import ReportStore

router = APIRouter()


def _not_found(report_id: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Report not found: {report_id}",
    )


@router.get("/reports", response_model=list[Report])
async def list_reports(
    user_id: str = Depends(get_user_id),
    store: ReportStore = Depends(get_report_store),
) -> list[Report]:
    return await store.list_by_user(user_id)


@router.post("/reports", response_model=Report, status_code=status.HTTP_201_CREATED)
async def create_report(
    payload: ReportCreateRequest,
    user_id: str = Depends(get_user_id),
    store: ReportStore = Depends(get_report_store),
) -> Report:
    return await store.create(
        user_id=user_id,
        title=payload.title,
        report_type=payload.report_type,
        description=payload.description,
        content=payload.content,
    )


@router.post("/reports/generate", response_model=Report, status_code=status.HTTP_201_CREATED)
async def generate_report(
    payload: ReportGenerateRequest,
    user_id: str = Depends(get_user_id),
    service: ReportService = Depends(get_report_service),
) -> Report:
    """Generate Markdown from the listed sheets. ReportGenerationError maps to 502."""
    return await service.generate(
        user_id,
        title=payload.title,
        report_type=payload.report_type,
        description=payload.description,
        sheet_ids=payload.sheets,
        parameters=payload.parameters,
    )


@router.get("/reports/{report_id}", response_model=Report)
async def get_report(
    report_id: int,
    user_id: str = Depends(get_user_id),
    store: ReportStore = Depends(get_report_store),
) -> Report:
    report = await store.get(report_id, user_id)
    if report is None:
        raise _not_found(report_id)
    return report


@router.put("/reports/{report_id}", response_model=Report)
async def update_report(
    report_id: int,
    payload: ReportUpdateRequest,
    user_id: str = Depends(get_user_id),
    store: ReportStore = Depends(get_report_store),
) -> Report:
    update_payload = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not update_payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one field must be provided for update.",
        )
    report = await store.update(report_id, user_id, **update_payload)
    if report is None:
        raise _not_found(report_id)
    return report


@router.delete("/reports/{report_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_report(
    report_id: int,
    user_id: str = Depends(get_user_id),
    store: ReportStore = Depends(get_report_store),
) -> None:
    if not await store.delete(report_id, user_id):
        raise _not_found(report_id)
