"""
FailedEmail model - retry queue for emails whose ingestion failed.

The watermark still advances past a failed email, so the original
message is kept here and replayed on later syncs.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from inbox_navigator.database import Base
from inbox_navigator.timeutils import utcnow


class FailedEmail(Base):
    """Email queued for another ingestion attempt."""
    __tablename__ = "failed_emails"

    user_id = Column(String(128), primary_key=True)
    email_id = Column(String(128), primary_key=True)

    payload = Column(JSON, nullable=False)  # Serialized EmailRecord
    error = Column(Text)
    attempts = Column(Integer, default=1, nullable=False)

    last_attempt_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<FailedEmail(user={self.user_id}, email={self.email_id}, attempts={self.attempts})>"
