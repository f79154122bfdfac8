"""
Dashboard API endpoints for schedule-change alerts.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from inbox_navigator.api.deps import get_store
from inbox_navigator.exceptions import NotFoundError
from inbox_navigator.services.db_service import DocumentStore

router = APIRouter(prefix="/alerts", tags=["Dashboard"])


class AlertResponse(BaseModel):
    id: str
    email_id: str
    type: str
    course: Optional[str]
    message: Optional[str]
    date: Optional[str]
    details: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class AlertsListResponse(BaseModel):
    total: int
    alerts: List[AlertResponse]


@router.get("", response_model=AlertsListResponse)
async def list_alerts(user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    """Alerts of a user, newest first."""
    alerts = await store.get_alerts(user_id)
    return AlertsListResponse(total=len(alerts), alerts=alerts)


@router.delete("/{alert_id}")
async def delete_alert(alert_id: str, user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    """Dismiss an alert."""
    if not await store.delete_alert(user_id, alert_id):
        raise NotFoundError(f"Alert {alert_id} not found")
    return {"status": "deleted", "id": alert_id}
