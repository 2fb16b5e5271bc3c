"""Alert routes: dispatch trigger and lifecycle operations."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ...alerting.lifecycle import alert_to_dict
from ...container import Services
from ...dependencies import get_services

router = APIRouter(prefix="/alerts", tags=["alerts"])


class UpdateStatusRequest(BaseModel):
    status: str = Field(pattern=r"^(acknowledged|investigating|resolved|false_positive)$")
    actor: str = "user"


class AddNoteRequest(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    author: str = "user"


class ResetRequest(BaseModel):
    actor: Optional[str] = "user"


@router.post("/process")
async def process_alerts(services: Services = Depends(get_services)):
    """Run a notification dispatch pass now."""
    summary = await services.dispatcher.process_pending()
    if summary is None:
        return {"skipped": True, "reason": "dispatch already running"}
    return summary.to_dict()


@router.get("/stats/{user_id}")
async def alert_stats(user_id: int, services: Services = Depends(get_services)):
    return await services.lifecycle.get_stats(user_id)


@router.get("/{alert_id}")
async def get_alert(alert_id: int, services: Services = Depends(get_services)):
    alert = await services.lifecycle.get(alert_id)
    actions = await services.lifecycle.list_actions(alert_id)
    notes = await services.lifecycle.list_notes(alert_id)
    return {
        **alert_to_dict(alert),
        "actions": [
            {
                "action": a.action,
                "description": a.description,
                "performed_by": a.performed_by,
                "performed_at": a.performed_at.isoformat(),
            }
            for a in actions
        ],
        "notes": [
            {"content": n.content, "author": n.author, "created_at": n.created_at.isoformat()}
            for n in notes
        ],
    }


@router.patch("/{alert_id}/status")
async def update_status(alert_id: int, body: UpdateStatusRequest, services: Services = Depends(get_services)):
    alert = await services.lifecycle.update_status(alert_id, body.status, actor=body.actor)
    return alert_to_dict(alert)


@router.post("/{alert_id}/read")
async def mark_read(alert_id: int, services: Services = Depends(get_services)):
    await services.lifecycle.mark_read(alert_id)
    return {"id": alert_id, "is_read": True}


@router.post("/{alert_id}/notes")
async def add_note(alert_id: int, body: AddNoteRequest, services: Services = Depends(get_services)):
    note = await services.lifecycle.add_note(alert_id, body.content, body.author)
    return {"id": note.id, "alert_id": alert_id, "content": note.content, "author": note.author}


@router.post("/{alert_id}/reset-notifications")
async def reset_notifications(alert_id: int, body: ResetRequest, services: Services = Depends(get_services)):
    await services.lifecycle.reset_notifications(alert_id, actor=body.actor or "user")
    return {"id": alert_id, "notified": False}
