"""Monitoring routes: scheduler status and on-demand scans."""

from fastapi import APIRouter, Depends

from ...constants import SCAN_CATEGORIES
from ...container import Services
from ...dependencies import get_services

router = APIRouter(prefix="/monitoring", tags=["monitoring"])


def _check_category(category: str) -> None:
    if category not in SCAN_CATEGORIES:
        raise ValueError(f"Unknown scan category: {category}")


@router.get("/status")
async def monitoring_status(services: Services = Depends(get_services)):
    return {
        **services.monitoring.get_status(),
        "realtime": services.publisher.get_stats(),
        "websocket_connections": services.ws_manager.connection_count,
    }


@router.post("/scan/{category}")
async def scan_category(category: str, services: Services = Depends(get_services)):
    """Run one category across all targets now."""
    _check_category(category)
    summary = await services.monitoring.run_category_now(category)
    if summary is None:
        return {"category": category, "skipped": True, "reason": "scan already running"}
    return summary.to_dict()


@router.post("/scan/{category}/users/{user_id}")
async def scan_for_user(category: str, user_id: int, services: Services = Depends(get_services)):
    """Manual scan of one category for one user."""
    _check_category(category)
    summary = await services.monitoring.run_manual_scan(user_id, category)
    return summary.to_dict()
