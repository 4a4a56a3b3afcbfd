from fastapi import APIRouter, Depends, Query, Response, status as http_status

from resource_hub.api.errors import to_http_exception
from resource_hub.api.routes.resources import MAX_PAGE_SIZE
from resource_hub.schemas.base import CountOut
from resource_hub.schemas.signals import SignalCreate, SignalLane, SignalOut, SignalPatch, SignalType
from resource_hub.services.filters import SignalFilter
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


def signal_filter(
    signal_type: SignalType | None = Query(default=None, alias="type"),
    lane: SignalLane | None = Query(default=None),
    search: str | None = Query(default=None, min_length=1),
) -> SignalFilter:
    return SignalFilter(type=signal_type, lane=lane, search=search)


@router.get("", response_model=list[SignalOut])
async def list_signals(
    filters: SignalFilter = Depends(signal_filter),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    repository=Depends(get_repository),
) -> list[SignalOut]:
    try:
        rows = await repository.list_signals(filters=filters, limit=limit, offset=offset)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [SignalOut(**row) for row in rows]


@router.get("/count", response_model=CountOut)
async def count_signals(
    filters: SignalFilter = Depends(signal_filter),
    repository=Depends(get_repository),
) -> CountOut:
    try:
        count = await repository.count_signals(filters=filters)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return CountOut(count=count)


@router.get("/{signal_id}", response_model=SignalOut)
async def get_signal(signal_id: int, repository=Depends(get_repository)) -> SignalOut:
    try:
        row = await repository.get_signal(signal_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return SignalOut(**row)


@router.post("", response_model=SignalOut, status_code=http_status.HTTP_201_CREATED)
async def create_signal(payload: SignalCreate, repository=Depends(get_repository)) -> SignalOut:
    try:
        row = await repository.create_signal(values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return SignalOut(**row)


@router.put("/{signal_id}", response_model=SignalOut)
async def update_signal(
    signal_id: int,
    payload: SignalPatch,
    repository=Depends(get_repository),
) -> SignalOut:
    try:
        row = await repository.update_signal(signal_id, changes=payload.to_changes())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return SignalOut(**row)


@router.delete("/{signal_id}", status_code=http_status.HTTP_204_NO_CONTENT)
async def delete_signal(signal_id: int, repository=Depends(get_repository)) -> Response:
    try:
        await repository.delete_signal(signal_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=http_status.HTTP_204_NO_CONTENT)
