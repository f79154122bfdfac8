"""
Document model - a catalogued email attachment.
"""

import enum

from sqlalchemy import Column, String, Integer, DateTime, Index
from inbox_navigator.database import Base
from inbox_navigator.timeutils import utcnow


class DocumentType(str, enum.Enum):
    """Recognised document formats."""
    PDF = "pdf"
    DOCX = "docx"
    PPT = "ppt"
    XLSX = "xlsx"


class DocumentCategory(str, enum.Enum):
    """Category guessed from the filename."""
    ASSIGNMENT = "assignment"
    LECTURE = "lecture"
    NOTES = "notes"
    SYLLABUS = "syllabus"


class Document(Base):
    """Attachment of a recognised type (one per qualifying attachment)."""
    __tablename__ = "documents"

    user_id = Column(String(128), primary_key=True)
    id = Column(String(255), primary_key=True)  # "<email_id>_doc_<attachment>"

    email_id = Column(String(128), nullable=False)

    filename = Column(String(512), nullable=False)
    course = Column(String(255), default="Unknown")
    type = Column(String(10), nullable=False)
    category = Column(String(20), default=DocumentCategory.NOTES.value)

    # Where to get the file
    url = Column(String(1024))
    attachment_id = Column(String(1024))
    mime_type = Column(String(255))
    size = Column(Integer, default=0)

    created_at = Column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_documents_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return f"<Document(id={self.id}, filename={self.filename})>"
