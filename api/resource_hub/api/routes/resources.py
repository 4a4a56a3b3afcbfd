from fastapi import APIRouter, Depends, Query, Response, status as http_status

from resource_hub.api.errors import to_http_exception
from resource_hub.core.config import get_settings
from resource_hub.schemas.base import CountOut
from resource_hub.schemas.resources import (
    ResourceBulkTagRequest,
    ResourceBulkUpdateRequest,
    ResourceCreate,
    ResourceOut,
    ResourcePatch,
    ResourceStatus,
    VerificationEventCreate,
    VerificationEventOut,
)
from resource_hub.services.export import render_resources_csv
from resource_hub.services.filters import ResourceFilter
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()

MAX_PAGE_SIZE = get_settings().max_page_size


def resource_filter(
    search: str | None = Query(default=None, min_length=1),
    category: str | None = Query(default=None, min_length=1),
    resource_status: ResourceStatus | None = Query(default=None, alias="status"),
    is_favorite: bool | None = Query(default=None, alias="isFavorite"),
    tag: str | None = Query(default=None, min_length=1),
) -> ResourceFilter:
    return ResourceFilter(
        search=search,
        category=category,
        status=resource_status,
        is_favorite=is_favorite,
        tag=tag,
    )


@router.get("", response_model=list[ResourceOut])
async def list_resources(
    filters: ResourceFilter = Depends(resource_filter),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    repository=Depends(get_repository),
) -> list[ResourceOut]:
    try:
        rows = await repository.list_resources(filters=filters, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ResourceOut(**row) for row in rows]


@router.get("/count", response_model=CountOut)
async def count_resources(
    filters: ResourceFilter = Depends(resource_filter),
    repository=Depends(get_repository),
) -> CountOut:
    try:
        count = await repository.count_resources(filters=filters)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return CountOut(count=count)


@router.get("/status-counts", response_model=dict[str, int])
async def count_resources_by_status(
    filters: ResourceFilter = Depends(resource_filter),
    repository=Depends(get_repository),
) -> dict[str, int]:
    try:
        return await repository.count_resources_by_status(filters=filters)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc


@router.get("/export/csv")
async def export_resources_csv(repository=Depends(get_repository)) -> Response:
    try:
        rows = await repository.list_resources(filters=ResourceFilter())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(
        content=render_resources_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="resources.csv"'},
    )


@router.put("/bulk", response_model=list[ResourceOut])
async def bulk_update_resources(
    payload: ResourceBulkUpdateRequest,
    repository=Depends(get_repository),
) -> list[ResourceOut]:
    try:
        rows = await repository.bulk_update_resources(ids=payload.ids, changes=payload.updates.to_changes())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ResourceOut(**row) for row in rows]


@router.post("/bulk/tags", response_model=list[ResourceOut])
async def bulk_add_tag(
    payload: ResourceBulkTagRequest,
    repository=Depends(get_repository),
) -> list[ResourceOut]:
    try:
        rows = await repository.bulk_add_tag(ids=payload.ids, tag=payload.tag)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ResourceOut(**row) for row in rows]


@router.post("", response_model=ResourceOut, status_code=http_status.HTTP_201_CREATED)
async def create_resource(payload: ResourceCreate, repository=Depends(get_repository)) -> ResourceOut:
    try:
        row = await repository.create_resource(values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ResourceOut(**row)


@router.get("/{resource_id}", response_model=ResourceOut)
async def get_resource(resource_id: int, repository=Depends(get_repository)) -> ResourceOut:
    try:
        row = await repository.get_resource(resource_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ResourceOut(**row)


@router.put("/{resource_id}", response_model=ResourceOut)
async def update_resource(
    resource_id: int,
    payload: ResourcePatch,
    repository=Depends(get_repository),
) -> ResourceOut:
    try:
        row = await repository.update_resource(resource_id, changes=payload.to_changes())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ResourceOut(**row)


@router.delete("/{resource_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_resource(resource_id: int, repository=Depends(get_repository)) -> Response:
    try:
        await repository.delete_resource(resource_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.get("/{resource_id}/verification-events", response_model=list[VerificationEventOut])
async def list_verification_events(
    resource_id: int,
    repository=Depends(get_repository),
) -> list[VerificationEventOut]:
    try:
        rows = await repository.list_verification_events(resource_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [VerificationEventOut(**row) for row in rows]


@router.post(
    "/{resource_id}/verification-events",
    response_model=VerificationEventOut,
    status_code=http_status.HTTP_201_CREATED,
)
async def create_verification_event(
    resource_id: int,
    payload: VerificationEventCreate,
    repository=Depends(get_repository),
) -> VerificationEventOut:
    try:
        row = await repository.create_verification_event(resource_id, values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return VerificationEventOut(**row)
