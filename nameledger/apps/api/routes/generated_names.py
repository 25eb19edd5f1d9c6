from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from nameledger.apps.api.deps import get_db, get_names_service
from nameledger.core.config import DEFAULT_USER
from nameledger.domain.models import GeneratedNameRecord, as_utc
from nameledger.domain.names import GeneratedName
from nameledger.domain.queries import GeneratedNameFilter
from nameledger.persistence.repos import generated_names as generated_names_repo
from nameledger.services.generated_names import GeneratedNamesService


router = APIRouter(prefix="/generated-names", tags=["generated-names"])


class ComponentResponse(BaseModel):
    name: str
    value: str
    sort_order: int


class GeneratedNameResponse(BaseModel):
    id: int
    created_on: str
    resource_name: str
    resource_type_name: str | None
    user: str
    message: str | None
    ip_address: str | None
    user_agent: str | None
    session_id: str | None
    request_id: str | None
    created_by: str
    updated_on: str | None
    is_deleted: bool
    components: list[ComponentResponse]


class GeneratedNamesPage(BaseModel):
    items: list[GeneratedNameResponse]
    total_count: int
    page: int
    page_size: int
    total_pages: int
    has_previous_page: bool
    has_next_page: bool
    start_item: int
    end_item: int


class LogGeneratedNameRequest(BaseModel):
    resource_name: str = Field(min_length=1, max_length=255)
    resource_type_name: str = Field(default="", max_length=255)
    user: str = Field(default=DEFAULT_USER, min_length=1, max_length=100)
    message: str | None = Field(default=None, max_length=2000)
    created_on: datetime | None = None
    components: list[list[str]] = Field(default_factory=list)


class LogGeneratedNameResponse(BaseModel):
    success: bool
    id: int | None
    storage: str
    error: str | None = None


def _to_response(record: GeneratedNameRecord) -> GeneratedNameResponse:
    return GeneratedNameResponse(
        id=record.id,
        created_on=record.created_on.isoformat(),
        resource_name=record.resource_name,
        resource_type_name=record.resource_type_name,
        user=record.user,
        message=record.message,
        ip_address=record.ip_address,
        user_agent=record.user_agent,
        session_id=record.session_id,
        request_id=record.request_id,
        created_by=record.created_by,
        updated_on=record.updated_on.isoformat() if record.updated_on else None,
        is_deleted=record.is_deleted,
        components=[
            ComponentResponse(
                name=component.component_name,
                value=component.component_value,
                sort_order=component.sort_order,
            )
            for component in record.components
        ],
    )


@router.get("")
async def list_generated_names(
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=500),
    user: str | None = None,
    resource_type: str | None = None,
    resource_name: str | None = None,
    from_date: datetime | None = Query(default=None, alias="from"),
    to_date: datetime | None = Query(default=None, alias="to"),
    ip_address: str | None = None,
    search: str | None = None,
    component_name: str | None = None,
    component_value: str | None = None,
    include_deleted: bool = False,
    db: AsyncSession = Depends(get_db),
) -> GeneratedNamesPage:
    criteria = GeneratedNameFilter(
        user=user,
        resource_type=resource_type,
        resource_name=resource_name,
        from_date=from_date,
        to_date=to_date,
        ip_address=ip_address,
        search_term=search,
        component_name=component_name,
        component_value=component_value,
        include_deleted=include_deleted,
    )
    result = await generated_names_repo.list_generated_names(db, page, page_size, criteria)
    return GeneratedNamesPage(
        items=[_to_response(record) for record in result.items],
        total_count=result.total_count,
        page=result.page,
        page_size=result.page_size,
        total_pages=result.total_pages,
        has_previous_page=result.has_previous_page,
        has_next_page=result.has_next_page,
        start_item=result.start_item,
        end_item=result.end_item,
    )


@router.get("/search")
async def search_generated_names(
    request: Request,
    q: str = Query(min_length=1),
    db: AsyncSession = Depends(get_db),
) -> list[GeneratedNameResponse]:
    limit = request.app.state.settings.search_result_limit
    records = await generated_names_repo.search_generated_names(db, q, limit=limit)
    return [_to_response(record) for record in records]


@router.get("/stats")
async def usage_statistics(
    from_date: datetime = Query(alias="from"),
    to_date: datetime = Query(alias="to"),
    db: AsyncSession = Depends(get_db),
) -> dict[str, int]:
    from_date, to_date = as_utc(from_date), as_utc(to_date)
    if from_date > to_date:
        raise HTTPException(status_code=400, detail="'from' must not be after 'to'")
    return await generated_names_repo.usage_statistics(db, from_date, to_date)


@router.post("", status_code=201)
async def log_generated_name(
    payload: LogGeneratedNameRequest,
    request: Request,
    service: GeneratedNamesService = Depends(get_names_service),
) -> LogGeneratedNameResponse:
    name_kwargs = payload.model_dump(exclude_none=True)
    name = GeneratedName(**name_kwargs)
    result = await service.log_generated_name(name, request)
    if not result.success:
        raise HTTPException(
            status_code=503,
            detail={"code": "NAME_LOG_FAILED", "message": result.error or "Failed to log generated name"},
        )
    return LogGeneratedNameResponse(success=True, id=result.name.id, storage=result.storage)


@router.get("/{record_id}")
async def get_generated_name(
    record_id: int,
    include_deleted: bool = False,
    db: AsyncSession = Depends(get_db),
) -> GeneratedNameResponse:
    record = await generated_names_repo.get_generated_name(db, record_id, include_deleted=include_deleted)
    if record is None:
        raise HTTPException(status_code=404, detail="Generated name not found")
    return _to_response(record)


@router.delete("/{record_id}", status_code=204)
async def delete_generated_name(
    record_id: int,
    soft: bool = False,
    db: AsyncSession = Depends(get_db),
) -> None:
    if soft:
        deleted = await generated_names_repo.soft_delete_generated_name(db, record_id)
    else:
        deleted = await generated_names_repo.delete_generated_name(db, record_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Generated name not found")
