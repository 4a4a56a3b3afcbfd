from fastapi import APIRouter, Depends, status as http_status

from resource_hub.api.errors import to_http_exception
from resource_hub.schemas.providers import ProviderLookupRequest, ProviderOut, ProviderRegisterRequest
from resource_hub.schemas.resources import ResourceOut
from resource_hub.schemas.update_requests import UpdateRequestOut
from resource_hub.services.filters import ResourceFilter, UpdateRequestFilter
from resource_hub.services.repository import RepositoryError, get_repository

router = APIRouter()


# Email lookup is the whole portal "login"; it grants no credentials.
@router.post("/lookup", response_model=ProviderOut)
async def lookup_provider(payload: ProviderLookupRequest, repository=Depends(get_repository)) -> ProviderOut:
    try:
        row = await repository.get_provider_by_email(payload.email)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ProviderOut(**row)


@router.post("/register", response_model=ProviderOut, status_code=http_status.HTTP_201_CREATED)
async def register_provider(payload: ProviderRegisterRequest, repository=Depends(get_repository)) -> ProviderOut:
    try:
        row = await repository.register_provider(values=payload.model_dump())
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ProviderOut(**row)


@router.get("/{provider_id}", response_model=ProviderOut)
async def get_provider(provider_id: int, repository=Depends(get_repository)) -> ProviderOut:
    try:
        row = await repository.get_provider(provider_id)
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return ProviderOut(**row)


@router.get("/{provider_id}/resources", response_model=list[ResourceOut])
async def list_provider_resources(provider_id: int, repository=Depends(get_repository)) -> list[ResourceOut]:
    try:
        await repository.get_provider(provider_id)
        rows = await repository.list_resources(filters=ResourceFilter(provider_id=provider_id))
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [ResourceOut(**row) for row in rows]


@router.get("/{provider_id}/update-requests", response_model=list[UpdateRequestOut])
async def list_provider_update_requests(
    provider_id: int,
    repository=Depends(get_repository),
) -> list[UpdateRequestOut]:
    try:
        provider = await repository.get_provider(provider_id)
        if not provider["email"]:
            return []
        rows = await repository.list_update_requests(filters=UpdateRequestFilter(submitted_by=provider["email"]))
    except RepositoryError as exc:
        raise to_http_exception(exc) from exc
    return [UpdateRequestOut(**row) for row in rows]
