"""Unauthenticated read surface.

Every query here goes through ``ResourceFilter.for_public()``, which always
excludes closed resources and narrows the row to the public column set.
"""

from fastapi import APIRouter, Depends, Query

from resource_hub.api.errors import to_http_exception
from resource_hub.api.routes.resources import MAX_PAGE_SIZE, resource_filter
from resource_hub.core.config import get_settings
from resource_hub.schemas.base import CountOut
from resource_hub.schemas.resources import PublicResourceOut
from resource_hub.services.filters import ResourceFilter
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


def public_resource_filter(filters: ResourceFilter = Depends(resource_filter)) -> ResourceFilter:
    return filters.for_public()


@router.get("/resources", response_model=list[PublicResourceOut])
async def list_public_resources(
    filters: ResourceFilter = Depends(public_resource_filter),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    repository=Depends(get_repository),
) -> list[PublicResourceOut]:
    page_size = limit if limit is not None else get_settings().public_page_size
    try:
        rows = await repository.list_resources(filters=filters, limit=page_size, offset=offset)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [PublicResourceOut(**row) for row in rows]


@router.get("/resources/count", response_model=CountOut)
async def count_public_resources(
    filters: ResourceFilter = Depends(public_resource_filter),
    repository=Depends(get_repository),
) -> CountOut:
    try:
        count = await repository.count_resources(filters=filters)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return CountOut(count=count)


@router.get("/resources/{resource_id}", response_model=PublicResourceOut)
async def get_public_resource(resource_id: int, repository=Depends(get_repository)) -> PublicResourceOut:
    try:
        row = await repository.get_resource(resource_id, public=True)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return PublicResourceOut(**row)


@router.get("/categories", response_model=list[str])
async def list_public_categories(repository=Depends(get_repository)) -> list[str]:
    try:
        return await repository.list_resource_categories(public=True)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc


@router.get("/tags", response_model=list[str])
async def list_public_tags(repository=Depends(get_repository)) -> list[str]:
    try:
        return await repository.list_resource_tags(public=True)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
