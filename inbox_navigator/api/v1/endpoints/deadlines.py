"""
Dashboard API endpoints for deadlines.

List view is ordered by due date; a deadline can be removed or
exported to the user's calendar.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from inbox_navigator.api.deps import get_calendar_service, get_store
from inbox_navigator.exceptions import NotFoundError
from inbox_navigator.services.calendar_service import CalendarService
from inbox_navigator.services.db_service import DocumentStore

router = APIRouter(prefix="/deadlines", tags=["Dashboard"])


# ============ Response Schemas ============

class DeadlineResponse(BaseModel):
    id: str
    email_id: str
    title: str
    course: Optional[str]
    due_date: str
    due_time: Optional[str]
    description: Optional[str]
    type: Optional[str]
    priority: Optional[str]
    added_to_calendar: bool
    calendar_event_id: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class DeadlinesListResponse(BaseModel):
    total: int
    deadlines: List[DeadlineResponse]


class CalendarExportResponse(BaseModel):
    deadline_id: str
    event_id: str
    added_to_calendar: bool = True


# ============ Endpoints ============

@router.get("", response_model=DeadlinesListResponse)
async def list_deadlines(user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    """All deadlines of a user, soonest first."""
    deadlines = await store.get_deadlines(user_id)
    return DeadlinesListResponse(total=len(deadlines), deadlines=deadlines)


@router.delete("/{deadline_id}")
async def delete_deadline(deadline_id: str, user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    """
    Delete a deadline.

    **Returns:**
    - 200: Deleted
    - 404: Deadline not found
    """
    if not await store.delete_deadline(user_id, deadline_id):
        raise NotFoundError(f"Deadline {deadline_id} not found")
    return {"status": "deleted", "id": deadline_id}


@router.post("/{deadline_id}/calendar", response_model=CalendarExportResponse)
async def add_deadline_to_calendar(
    deadline_id: str,
    user_id: str = Query(...),
    calendar_service: CalendarService = Depends(get_calendar_service),
):
    """Create a calendar event (with reminders) for a deadline."""
    event_id = await calendar_service.add_deadline(user_id, deadline_id)
    return CalendarExportResponse(deadline_id=deadline_id, event_id=event_id)
