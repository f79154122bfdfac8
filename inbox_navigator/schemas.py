"""
Pydantic schemas shared by services and API.

EmailRecord is the connector-neutral input of the ingestion pipeline;
the result models are what the services hand back to callers.
"""

from typing import List, Optional
from pydantic import BaseModel, Field


class AttachmentDescriptor(BaseModel):
    """Attachment metadata as reported by the mail connector."""
    filename: str = ""
    mime_type: Optional[str] = None
    size: int = 0
    attachment_id: Optional[str] = Field(None, description="Connector reference used for download")
    url: Optional[str] = None


class EmailRecord(BaseModel):
    """Raw email from the mail connector (read-only input)."""
    id: Optional[str] = Field(None, description="Mail-system message id")
    thread_id: Optional[str] = None
    subject: str = ""
    sender: str = ""
    date: Optional[str] = None
    body: str = ""
    snippet: str = ""
    attachments: List[AttachmentDescriptor] = Field(default_factory=list)


class ReminderHint(BaseModel):
    """Time expression found in an email, offered for calendar sync."""
    has_reminder: bool = False
    extracted_time: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None


class IngestionResult(BaseModel):
    """Outcome of ingesting one email."""
    email_id: str
    course_name: Optional[str] = None
    category: str = "general"
    deadlines: int = 0
    alerts: int = 0
    documents: int = 0
    reminder: ReminderHint = Field(default_factory=ReminderHint)
    agent_failures: List[str] = Field(default_factory=list)


class SyncResult(BaseModel):
    """Summary of one batch sync run."""
    status: str = "processed"  # processed | up_to_date
    query: Optional[str] = None
    processed: int = 0
    failed: int = 0
    retried: int = 0
    deadlines: int = 0
    alerts: int = 0
    documents: int = 0
    agent_failures: int = 0
    failed_email_ids: List[str] = Field(default_factory=list)


class ChatSource(BaseModel):
    """Email used as context for a chat answer."""
    email_id: str
    subject: Optional[str] = None
    sender: Optional[str] = None
    date: Optional[str] = None
    score: float


class ChatAnswer(BaseModel):
    """Answer from the inbox chat assistant."""
    answer: str
    sources: List[ChatSource] = Field(default_factory=list)
