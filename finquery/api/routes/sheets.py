"""Sheet registry and column metadata routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from finquery.api.dependencies import get_catalog, get_source, get_sync_service
from finquery.catalog.store import SheetCatalogStore
from finquery.catalog.sync import SheetSyncService
from finquery.models.api import (
    ColumnUpdateRequest,
    SheetCreateRequest,
    SheetDataResponse,
    SheetDetailResponse,
)
from finquery.models.sheet import ColumnMetadata, SheetMetadata, SyncResult
from finquery.sources.base import BaseSheetSource
from finquery.sources.shaping import shape

router = APIRouter()


@router.get("/sheets", response_model=list[SheetMetadata])
async def list_sheets(catalog: SheetCatalogStore = Depends(get_catalog)) -> list[SheetMetadata]:
    return await catalog.list_sheets()


@router.post("/sheets", response_model=SheetDetailResponse, status_code=status.HTTP_201_CREATED)
async def register_sheet(
    payload: SheetCreateRequest,
    catalog: SheetCatalogStore = Depends(get_catalog),
    sync_service: SheetSyncService = Depends(get_sync_service),
) -> SheetDetailResponse:
    """Register a sheet after checking it can be read, then sync its columns."""
    sheet = await sync_service.register_sheet(
        sheet_id=payload.sheet_id,
        name=payload.name,
        description=payload.description,
        access_level=payload.access_level,
    )
    columns: list[ColumnMetadata] = []
    if payload.sync:
        result = await sync_service.sync_sheet(payload.sheet_id)
        columns = result.columns
        sheet = await catalog.get_sheet(payload.sheet_id) or sheet
    return SheetDetailResponse(sheet=sheet, columns=columns)


@router.get("/sheets/{sheet_id}", response_model=SheetDetailResponse)
async def get_sheet(
    sheet_id: str,
    catalog: SheetCatalogStore = Depends(get_catalog),
) -> SheetDetailResponse:
    sheet = await catalog.get_sheet(sheet_id)
    if sheet is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sheet not found: {sheet_id}",
        )
    return SheetDetailResponse(sheet=sheet, columns=await catalog.list_columns(sheet_id))


@router.delete("/sheets/{sheet_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sheet(
    sheet_id: str,
    catalog: SheetCatalogStore = Depends(get_catalog),
) -> None:
    if not await catalog.delete_sheet(sheet_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sheet not found: {sheet_id}",
        )


@router.post("/sheets/{sheet_id}/sync", response_model=SyncResult)
async def sync_sheet(
    sheet_id: str,
    sync_service: SheetSyncService = Depends(get_sync_service),
) -> SyncResult:
    return await sync_service.sync_sheet(sheet_id)


@router.get("/sheets/{sheet_id}/columns", response_model=list[ColumnMetadata])
async def list_columns(
    sheet_id: str,
    catalog: SheetCatalogStore = Depends(get_catalog),
) -> list[ColumnMetadata]:
    return await catalog.list_columns(sheet_id)


@router.get("/sheets/{sheet_id}/data", response_model=SheetDataResponse)
async def get_sheet_data(
    sheet_id: str,
    range: str | None = Query(default=None, description="A1-notation window"),
    catalog: SheetCatalogStore = Depends(get_catalog),
    source: BaseSheetSource = Depends(get_source),
) -> SheetDataResponse:
    """Current rows of a registered sheet, shaped onto its header row."""
    if await catalog.get_sheet(sheet_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sheet not found: {sheet_id}",
        )
    table = shape(await source.fetch_raw(sheet_id, range))
    return SheetDataResponse(headers=table.headers, rows=table.rows)


@router.patch("/columns/{column_id}", response_model=ColumnMetadata)
async def update_column(
    column_id: int,
    payload: ColumnUpdateRequest,
    catalog: SheetCatalogStore = Depends(get_catalog),
) -> ColumnMetadata:
    """Edit display name, type or description. ColumnNotFoundError maps to 404."""
    update_payload = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not update_payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one field must be provided for update.",
        )
    return await catalog.update_column(column_id, **update_payload)
