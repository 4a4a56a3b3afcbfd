"""Curated tag and category vocabularies.

These are maintained independently of the free-form values stored on
resources; nothing here validates or rewrites resource rows.
"""

from fastapi import APIRouter, Depends, Response, status as http_status

from resource_hub.api.errors import to_http_exception
from resource_hub.schemas.vocabulary import (
    ManagedCategoryCreate,
    ManagedCategoryOut,
    ManagedTagCreate,
    ManagedTagOut,
)
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("/managed-tags", response_model=list[ManagedTagOut])
async def list_managed_tags(repository=Depends(get_repository)) -> list[ManagedTagOut]:
    try:
        rows = await repository.list_managed_tags()
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ManagedTagOut(**row) for row in rows]


@router.post("/managed-tags", response_model=ManagedTagOut, status_code=http_status.HTTP_201_CREATED)
async def create_managed_tag(payload: ManagedTagCreate, repository=Depends(get_repository)) -> ManagedTagOut:
    try:
        row = await repository.create_managed_tag(values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ManagedTagOut(**row)


@router.delete("/managed-tags/{tag_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_managed_tag(tag_id: int, repository=Depends(get_repository)) -> Response:
    try:
        await repository.delete_managed_tag(tag_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)


@router.get("/managed-categories", response_model=list[ManagedCategoryOut])
async def list_managed_categories(repository=Depends(get_repository)) -> list[ManagedCategoryOut]:
    try:
        rows = await repository.list_managed_categories()
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ManagedCategoryOut(**row) for row in rows]


@router.post("/managed-categories", response_model=ManagedCategoryOut, status_code=http_status.HTTP_201_CREATED)
async def create_managed_category(
    payload: ManagedCategoryCreate,
    repository=Depends(get_repository),
) -> ManagedCategoryOut:
    try:
        row = await repository.create_managed_category(values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ManagedCategoryOut(**row)


@router.delete("/managed-categories/{category_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_managed_category(category_id: int, repository=Depends(get_repository)) -> Response:
    try:
        await repository.delete_managed_category(category_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
