"""
Email sync endpoints.

Triggers an incremental sync for a user and reports the stored
sync status.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from inbox_navigator.api.deps import get_store, get_sync_service
from inbox_navigator.schemas import SyncResult
from inbox_navigator.services.db_service import DocumentStore
from inbox_navigator.services.sync_service import SyncService

router = APIRouter(prefix="/sync", tags=["Sync"])


# ============ Schemas ============

class SyncRequest(BaseModel):
    user_id: str


class SyncStatusResponse(BaseModel):
    """Watermark and counts of the most recent sync."""
    user_id: str
    last_sync: Optional[datetime]
    emails_synced: int = 0
    deadlines_found: int = 0
    alerts_found: int = 0
    documents_found: int = 0
    failed: int = 0

    class Config:
        from_attributes = True


# ============ Endpoints ============

@router.post("/emails", response_model=SyncResult)
async def sync_emails(body: SyncRequest, sync_service: SyncService = Depends(get_sync_service)):
    """
    Run an incremental sync for a user.

    Fetches emails newer than the last sync (or the last 30 days on the
    first run) and ingests them one by one. Partial failures are
    reported in the summary rather than as an error status.
    """
    return await sync_service.sync_emails(body.user_id)


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(
    user_id: str = Query(..., description="User whose sync status to read"),
    store: DocumentStore = Depends(get_store),
):
    """Last sync of a user; `last_sync` is null before the first sync."""
    status = await store.get_sync_status(user_id)
    if status is None:
        return SyncStatusResponse(user_id=user_id, last_sync=None)
    return status
