"""
Deadline model - one due date extracted from an email.

Priority is derived from the due date when the record is written;
added_to_calendar is only changed by the calendar export.
"""

import enum

from sqlalchemy import Column, String, Text, DateTime, Boolean, Index
from inbox_navigator.database import Base
from inbox_navigator.timeutils import utcnow


class DeadlineType(str, enum.Enum):
    """Kind of deadline."""
    ASSIGNMENT = "assignment"
    EXAM = "exam"
    PROJECT = "project"
    SUBMISSION = "submission"


class Priority(str, enum.Enum):
    """Urgency bucket derived from the due date."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Deadline(Base):
    """Deadline extracted from an email (many per email)."""
    __tablename__ = "deadlines"

    user_id = Column(String(128), primary_key=True)
    id = Column(String(160), primary_key=True)  # "<email_id>_deadline_<n>"

    email_id = Column(String(128), nullable=False)

    title = Column(String(512), nullable=False)
    course = Column(String(255), default="Unknown")
    due_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    due_time = Column(String(5))  # HH:MM, optional
    description = Column(Text)
    type = Column(String(20), default=DeadlineType.ASSIGNMENT.value)
    priority = Column(String(10), default=Priority.LOW.value)

    # Calendar export
    added_to_calendar = Column(Boolean, default=False, nullable=False)
    calendar_event_id = Column(String(255))

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_deadlines_user_due", "user_id", "due_date"),
        Index("ix_deadlines_user_email", "user_id", "email_id"),
    )

    def __repr__(self):
        return f"<Deadline(id={self.id}, title={self.title}, due={self.due_date})>"
