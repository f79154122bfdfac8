"""
SyncStatus model - per-user watermark for incremental sync.

The next sync fetches emails strictly after last_sync.
"""

from sqlalchemy import Column, Integer, String, DateTime
from inbox_navigator.database import Base
from inbox_navigator.timeutils import utcnow


class SyncStatus(Base):
    """
    Singleton per user with the result of the most recent sync.

    Persists across server restarts, unlike in-memory variables.
    """
    __tablename__ = "sync_status"

    user_id = Column(String(128), primary_key=True)

    last_sync = Column(DateTime(timezone=True), nullable=False)

    # Counts from the most recent run
    emails_synced = Column(Integer, default=0, nullable=False)
    deadlines_found = Column(Integer, default=0, nullable=False)
    alerts_found = Column(Integer, default=0, nullable=False)
    documents_found = Column(Integer, default=0, nullable=False)
    failed = Column(Integer, default=0, nullable=False)

    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<SyncStatus(user={self.user_id}, last_sync={self.last_sync})>"
