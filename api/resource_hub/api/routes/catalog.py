from fastapi import APIRouter, Depends

from resource_hub.api.errors import to_http_exception
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("/categories", response_model=list[str])
async def list_categories(repository=Depends(get_repository)) -> list[str]:
    try:
        return await repository.list_resource_categories()
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc


@router.get("/tags", response_model=list[str])
async def list_tags(repository=Depends(get_repository)) -> list[str]:
    try:
        return await repository.list_resource_tags()
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
