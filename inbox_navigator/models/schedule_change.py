"""
ScheduleChange model - a schedule alert (cancellation, reschedule, ...).
"""

import enum

from sqlalchemy import Column, String, Text, DateTime, Index
from inbox_navigator.database import Base
from inbox_navigator.timeutils import utcnow


class AlertType(str, enum.Enum):
    """Type of schedule change."""
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    ROOM_CHANGE = "room_change"
    URGENT = "urgent"


class ScheduleChange(Base):
    """Alert detected in an email, at most one per type per email."""
    __tablename__ = "schedule_changes"

    user_id = Column(String(128), primary_key=True)
    id = Column(String(160), primary_key=True)  # "<email_id>_alert_<type>"

    email_id = Column(String(128), nullable=False)

    type = Column(String(20), nullable=False)
    course = Column(String(255), default="Unknown")
    message = Column(String(998))  # Usually the email subject
    date = Column(String(32))  # Occurrence date, ISO-8601
    details = Column(Text)  # Truncated body excerpt

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_schedule_changes_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<ScheduleChange(id={self.id}, type={self.type})>"
