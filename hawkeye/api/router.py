"""Master API router."""

from fastapi import APIRouter

from .routes.alerts import router as alerts_router
from .routes.monitoring import router as monitoring_router
from .websockets.events import router as ws_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(monitoring_router)
api_router.include_router(alerts_router)

# WebSocket router is mounted at root level (no prefix)
websocket_router = ws_router
