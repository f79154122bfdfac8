"""
Dashboard API endpoints for documents (email attachments).
"""

from datetime import datetime
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel

from inbox_navigator.api.deps import get_mail_connector, get_store
from inbox_navigator.exceptions import NotFoundError
from inbox_navigator.services.db_service import DocumentStore

router = APIRouter(prefix="/documents", tags=["Dashboard"])


class DocumentResponse(BaseModel):
    id: str
    email_id: str
    filename: str
    course: Optional[str]
    type: str
    category: Optional[str]
    url: Optional[str]
    mime_type: Optional[str]
    size: Optional[int]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class DocumentsListResponse(BaseModel):
    total: int
    documents: List[DocumentResponse]


@router.get("", response_model=DocumentsListResponse)
async def list_documents(user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    """Documents of a user in the order they were catalogued."""
    documents = await store.get_documents(user_id)
    return DocumentsListResponse(total=len(documents), documents=documents)


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback name and the UTF-8 name (RFC 5987)."""
    fallback = filename.encode("ascii", "replace").decode("ascii")
    fallback = "".join("_" if c in '"\\?' or ord(c) < 32 else c for c in fallback) or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.get("/{document_id}/content")
async def download_document(
    document_id: str,
    user_id: str = Query(...),
    store: DocumentStore = Depends(get_store),
    mail_connector=Depends(get_mail_connector),
):
    """Download the attachment bytes through the mail connector."""
    document = await store.get_document(user_id, document_id)
    if document is None:
        raise NotFoundError(f"Document {document_id} not found")

    content = await mail_connector.fetch_attachment(user_id, document.email_id, document.attachment_id)
    return Response(
        content=content,
        media_type=document.mime_type or "application/octet-stream",
        headers={"Content-Disposition": content_disposition(document.filename)},
    )
