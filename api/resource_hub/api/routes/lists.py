from fastapi import APIRouter, Depends, Response, status as http_status

from resource_hub.api.errors import to_http_exception
from resource_hub.schemas.lists import ListCreate, ListDetailOut, ListItemCreate, ListOut
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("", response_model=list[ListOut])
async def list_lists(repository=Depends(get_repository)) -> list[ListOut]:
    try:
        rows = await repository.list_lists()
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ListOut(**row) for row in rows]


@router.post("", response_model=ListOut, status_code=http_status.HTTP_201_CREATED)
async def create_list(payload: ListCreate, repository=Depends(get_repository)) -> ListOut:
    try:
        row = await repository.create_list(values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ListOut(**row)


@router.get("/{list_id}", response_model=ListDetailOut)
async def get_list(list_id: int, repository=Depends(get_repository)) -> ListDetailOut:
    try:
        row = await repository.get_list(list_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ListDetailOut(**row)


@router.post("/{list_id}/items", response_model=ListDetailOut, status_code=http_status.HTTP_201_CREATED)
async def add_list_item(
    list_id: int,
    payload: ListItemCreate,
    repository=Depends(get_repository),
) -> ListDetailOut:
    try:
        await repository.add_resource_to_list(
            list_id,
            payload.resource_id,
            sort_order=payload.sort_order,
            notes=payload.notes,
        )
        row = await repository.get_list(list_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ListDetailOut(**row)


@router.delete("/{list_id}/items/{resource_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def remove_list_item(list_id: int, resource_id: int, repository=Depends(get_repository)) -> Response:
    try:
        await repository.remove_resource_from_list(list_id, resource_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
