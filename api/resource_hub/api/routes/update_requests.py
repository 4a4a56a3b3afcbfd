from fastapi import APIRouter, Body, Depends, Query, status as http_status

from resource_hub.api.errors import to_http_exception
from resource_hub.api.routes.resources import MAX_PAGE_SIZE
from resource_hub.schemas.base import CountOut
from resource_hub.schemas.update_requests import (
    UpdateRequestCreate,
    UpdateRequestOut,
    UpdateRequestReviewRequest,
    UpdateRequestStatus,
)
from resource_hub.services.filters import UpdateRequestFilter
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


@router.get("", response_model=list[UpdateRequestOut])
async def list_update_requests(
    request_status: UpdateRequestStatus | None = Query(default=None, alias="status"),
    limit: int | None = Query(default=None, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(default=0, ge=0),
    repository=Depends(get_repository),
) -> list[UpdateRequestOut]:
    try:
        rows = await repository.list_update_requests(
            filters=UpdateRequestFilter(status=request_status),
            limit=limit,
            offset=offset,
        )
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [UpdateRequestOut(**row) for row in rows]


@router.get("/count", response_model=CountOut)
async def count_update_requests(
    request_status: UpdateRequestStatus | None = Query(default=None, alias="status"),
    repository=Depends(get_repository),
) -> CountOut:
    try:
        count = await repository.count_update_requests(filters=UpdateRequestFilter(status=request_status))
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return CountOut(count=count)


@router.get("/{request_id}", response_model=UpdateRequestOut)
async def get_update_request(request_id: int, repository=Depends(get_repository)) -> UpdateRequestOut:
    try:
        row = await repository.get_update_request(request_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return UpdateRequestOut(**row)


@router.post("", response_model=UpdateRequestOut, status_code=http_status.HTTP_201_CREATED)
async def create_update_request(
    payload: UpdateRequestCreate,
    repository=Depends(get_repository),
) -> UpdateRequestOut:
    values = payload.model_dump(exclude={"proposed_changes"})
    values["proposed_changes"] = payload.proposed_changes.to_wire()
    try:
        row = await repository.create_update_request(values=values)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return UpdateRequestOut(**row)


@router.post("/{request_id}/review", response_model=UpdateRequestOut)
async def start_update_request_review(
    request_id: int,
    payload: UpdateRequestReviewRequest | None = Body(default=None),
    repository=Depends(get_repository),
) -> UpdateRequestOut:
    reviewer = payload.reviewed_by_user_id if payload else None
    try:
        row = await repository.start_update_request_review(request_id, reviewed_by_user_id=reviewer)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return UpdateRequestOut(**row)


@router.post("/{request_id}/accept", response_model=UpdateRequestOut)
async def accept_update_request(
    request_id: int,
    payload: UpdateRequestReviewRequest | None = Body(default=None),
    repository=Depends(get_repository),
) -> UpdateRequestOut:
    reviewer = payload.reviewed_by_user_id if payload else None
    try:
        row = await repository.accept_update_request(request_id, reviewed_by_user_id=reviewer)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return UpdateRequestOut(**row)


@router.post("/{request_id}/reject", response_model=UpdateRequestOut)
async def reject_update_request(
    request_id: int,
    payload: UpdateRequestReviewRequest | None = Body(default=None),
    repository=Depends(get_repository),
) -> UpdateRequestOut:
    reviewer = payload.reviewed_by_user_id if payload else None
    try:
        row = await repository.reject_update_request(request_id, reviewed_by_user_id=reviewer)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return UpdateRequestOut(**row)
