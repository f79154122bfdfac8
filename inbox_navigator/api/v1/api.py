from fastapi import APIRouter
from inbox_navigator.api.v1.endpoints import alerts, deadlines, documents, search, sync

api_router = APIRouter(prefix="/api/v1")

# Include all endpoint routers
api_router.include_router(sync.router)
api_router.include_router(search.router)
api_router.include_router(deadlines.router)
api_router.include_router(alerts.router)
api_router.include_router(documents.router)
