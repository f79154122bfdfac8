"""
EmailEmbedding model - one processed email with its dense vector.

Used for:
- Semantic search (cosine similarity over `embedding`)
- Chat context
- Parent record for deadlines, alerts and documents
"""

from sqlalchemy import Column, String, Text, DateTime, Boolean, JSON
from inbox_navigator.database import Base
from inbox_navigator.timeutils import utcnow


class EmailEmbedding(Base):
    """
    Vectorised email, keyed by (user_id, id).

    `processed` flips to True only after every extraction agent has settled.
    """
    __tablename__ = "email_embeddings"

    user_id = Column(String(128), primary_key=True)
    id = Column(String(128), primary_key=True)  # Mail-system message id (or fallback)

    # Email metadata
    subject = Column(String(998))
    sender = Column(String(512))
    date = Column(String(64))

    # Content
    snippet = Column(String(256))
    body = Column(Text)

    # Dense vector, constant dimension per embedding provider
    embedding = Column(JSON, nullable=False)

    # Classification
    category = Column(String(32), default="general")
    course_name = Column(String(255))

    # Pipeline flags
    has_deadline = Column(Boolean, default=False, nullable=False)
    processed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    @property
    def email_id(self) -> str:
        return self.id

    def __repr__(self):
        return f"<EmailEmbedding(user={self.user_id}, id={self.id}, processed={self.processed})>"
