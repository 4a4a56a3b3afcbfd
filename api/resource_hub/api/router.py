from fastapi import APIRouter

from resource_hub.api.routes import (
    catalog,
    health,
    lists,
    providers,
    public,
    resources,
    signals,
    update_requests,
    vocabulary,
)

api_router = APIRouter()
api_router.include_router(health.router, tags=["health"])
api_router.include_router(resources.router, prefix="/resources", tags=["resources"])
api_router.include_router(catalog.router, tags=["resources"])
api_router.include_router(public.router, prefix="/public", tags=["public"])
api_router.include_router(providers.router, prefix="/providers", tags=["providers"])
api_router.include_router(update_requests.router, prefix="/update-requests", tags=["update-requests"])
api_router.include_router(signals.router, prefix="/signals", tags=["signals"])
api_router.include_router(lists.router, prefix="/lists", tags=["lists"])
api_router.include_router(vocabulary.router, tags=["vocabulary"])
