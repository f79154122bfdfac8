"""
SQLAlchemy models for the inbox navigator.

Every table is scoped by user_id; there are no cross-user relationships.

This package contains:
- EmailEmbedding: one vectorised email per (user, email id)
- Deadline, ScheduleChange, Document: records extracted from an email
- SyncStatus: per-user watermark and counts of the last sync
- FailedEmail: emails whose ingestion failed, queued for retry
"""

from inbox_navigator.models.email_embedding import EmailEmbedding
from inbox_navigator.models.deadline import Deadline, DeadlineType, Priority
from inbox_navigator.models.schedule_change import ScheduleChange, AlertType
from inbox_navigator.models.document import Document, DocumentType, DocumentCategory
from inbox_navigator.models.sync_status import SyncStatus
from inbox_navigator.models.failed_email import FailedEmail

__all__ = [
    "EmailEmbedding",
    "Deadline",
    "DeadlineType",
    "Priority",
    "ScheduleChange",
    "AlertType",
    "Document",
    "DocumentType",
    "DocumentCategory",
    "SyncStatus",
    "FailedEmail",
]
