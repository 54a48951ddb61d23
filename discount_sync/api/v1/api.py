from fastapi import APIRouter

from discount_sync.api.v1.endpoints import integrations, logs, sync

api_router = APIRouter()
api_router.include_router(sync.router, prefix="/sync", tags=["sync"])
api_router.include_router(integrations.router, prefix="/integrations", tags=["integrations"])
api_router.include_router(logs.router, prefix="/logs")
