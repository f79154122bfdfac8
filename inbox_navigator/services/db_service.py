"""
Database service layer for the inbox navigator.

DocumentStore wraps every read and write. Each operation opens its own
session, so pipeline branches running concurrently never share one.

- Email embeddings: upsert (overwrite by id), processed flag, full scan
- Derived records: replace-per-email for deadlines, alerts, documents
- Dashboard queries with a natural sort per collection
- Sync status and the failed-email retry queue
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from inbox_navigator.models import (
    Deadline,
    Document,
    EmailEmbedding,
    FailedEmail,
    ScheduleChange,
    SyncStatus,
)
from inbox_navigator.timeutils import utcnow


class DocumentStore:
    """Per-user collections backed by SQLAlchemy (async)."""

    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    # ============ EMAIL EMBEDDINGS ============

    async def upsert_email_embedding(self, user_id: str, **fields: Any) -> EmailEmbedding:
        """
        Insert or overwrite the embedding record for one email.

        Re-ingesting an email replaces the previous row instead of
        adding a second one.
        """
        record = EmailEmbedding(user_id=user_id, **fields)
        async with self._sessions() as session:
            async with session.begin():
                merged = await session.merge(record)
        return merged

    async def mark_processed(self, user_id: str, email_id: str, has_deadline: bool) -> None:
        """Flag an email as fully processed once every agent has settled."""
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    update(EmailEmbedding)
                    .where(EmailEmbedding.user_id == user_id, EmailEmbedding.id == email_id)
                    .values(processed=True, has_deadline=has_deadline)
                )

    async def get_email_embedding(self, user_id: str, email_id: str) -> Optional[EmailEmbedding]:
        async with self._sessions() as session:
            return await session.get(EmailEmbedding, (user_id, email_id))

    async def get_email_embeddings(self, user_id: str) -> List[EmailEmbedding]:
        """All embeddings of a user (no pagination)."""
        async with self._sessions() as session:
            result = await session.execute(
                select(EmailEmbedding).where(EmailEmbedding.user_id == user_id)
            )
            return list(result.scalars().all())

    async def count_email_embeddings(self, user_id: str) -> int:
        async with self._sessions() as session:
            result = await session.execute(
                select(func.count()).select_from(EmailEmbedding).where(EmailEmbedding.user_id == user_id)
            )
            return result.scalar_one()

    # ============ DERIVED RECORDS ============

    async def replace_deadlines(self, user_id: str, email_id: str, deadlines: List[Dict[str, Any]]) -> None:
        """
        Replace the deadlines extracted from one email.

        Calendar export flags survive for ids that are extracted again.
        """
        async with self._sessions() as session:
            async with session.begin():
                # Reads go before the first write so sqlite takes its write lock once
                existing = await session.execute(
                    select(Deadline.id, Deadline.added_to_calendar, Deadline.calendar_event_id).where(
                        Deadline.user_id == user_id, Deadline.email_id == email_id
                    )
                )
                exported = {row.id: row for row in existing if row.added_to_calendar}

                await session.execute(
                    delete(Deadline).where(Deadline.user_id == user_id, Deadline.email_id == email_id)
                )
                for fields in deadlines:
                    deadline = Deadline(user_id=user_id, **fields)
                    previous = exported.get(deadline.id)
                    if previous is not None:
                        deadline.added_to_calendar = True
                        deadline.calendar_event_id = previous.calendar_event_id
                    session.add(deadline)

    async def replace_alerts(self, user_id: str, email_id: str, alerts: List[Dict[str, Any]]) -> None:
        """Replace the schedule-change alerts detected in one email."""
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    delete(ScheduleChange).where(
                        ScheduleChange.user_id == user_id, ScheduleChange.email_id == email_id
                    )
                )
                session.add_all([ScheduleChange(user_id=user_id, **fields) for fields in alerts])

    async def replace_documents(self, user_id: str, email_id: str, documents: List[Dict[str, Any]]) -> None:
        """Replace the documents catalogued from one email."""
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    delete(Document).where(Document.user_id == user_id, Document.email_id == email_id)
                )
                session.add_all([Document(user_id=user_id, **fields) for fields in documents])

    # ============ DASHBOARD QUERIES ============

    async def get_deadlines(self, user_id: str) -> List[Deadline]:
        """Deadlines ordered by due date (then time) ascending."""
        async with self._sessions() as session:
            result = await session.execute(
                select(Deadline)
                .where(Deadline.user_id == user_id)
                .order_by(Deadline.due_date.asc(), Deadline.due_time.asc(), Deadline.id.asc())
            )
            return list(result.scalars().all())

    async def get_deadline(self, user_id: str, deadline_id: str) -> Optional[Deadline]:
        async with self._sessions() as session:
            return await session.get(Deadline, (user_id, deadline_id))

    async def mark_deadline_added_to_calendar(self, user_id: str, deadline_id: str, event_id: str) -> None:
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    update(Deadline)
                    .where(Deadline.user_id == user_id, Deadline.id == deadline_id)
                    .values(added_to_calendar=True, calendar_event_id=event_id)
                )

    async def delete_deadline(self, user_id: str, deadline_id: str) -> bool:
        """Delete a deadline. Returns False if it did not exist."""
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(
                    delete(Deadline).where(Deadline.user_id == user_id, Deadline.id == deadline_id)
                )
        return result.rowcount > 0

    async def get_alerts(self, user_id: str) -> List[ScheduleChange]:
        """Alerts, newest first."""
        async with self._sessions() as session:
            result = await session.execute(
                select(ScheduleChange)
                .where(ScheduleChange.user_id == user_id)
                .order_by(ScheduleChange.created_at.desc(), ScheduleChange.id.asc())
            )
            return list(result.scalars().all())

    async def delete_alert(self, user_id: str, alert_id: str) -> bool:
        """Delete an alert. Returns False if it did not exist."""
        async with self._sessions() as session:
            async with session.begin():
                result = await session.execute(
                    delete(ScheduleChange).where(
                        ScheduleChange.user_id == user_id, ScheduleChange.id == alert_id
                    )
                )
        return result.rowcount > 0

    async def get_documents(self, user_id: str) -> List[Document]:
        """Documents in the order they were catalogued."""
        async with self._sessions() as session:
            result = await session.execute(
                select(Document)
                .where(Document.user_id == user_id)
                .order_by(Document.created_at.asc(), Document.id.asc())
            )
            return list(result.scalars().all())

    async def get_document(self, user_id: str, document_id: str) -> Optional[Document]:
        async with self._sessions() as session:
            return await session.get(Document, (user_id, document_id))

    # ============ SYNC STATE ============

    async def get_sync_status(self, user_id: str) -> Optional[SyncStatus]:
        async with self._sessions() as session:
            return await session.get(SyncStatus, user_id)

    async def save_sync_status(
        self,
        user_id: str,
        last_sync: datetime,
        emails_synced: int,
        deadlines_found: int,
        alerts_found: int,
        documents_found: int,
        failed: int,
    ) -> SyncStatus:
        """Insert or update the user's sync status."""
        status = SyncStatus(
            user_id=user_id,
            last_sync=last_sync,
            emails_synced=emails_synced,
            deadlines_found=deadlines_found,
            alerts_found=alerts_found,
            documents_found=documents_found,
            failed=failed,
            updated_at=utcnow(),
        )
        async with self._sessions() as session:
            async with session.begin():
                merged = await session.merge(status)
        return merged

    # ============ RETRY QUEUE ============

    async def record_failed_email(self, user_id: str, email_id: str, payload: Dict[str, Any], error: str) -> int:
        """
        Queue (or re-queue) an email whose ingestion failed.

        Returns:
            Number of failed attempts so far
        """
        async with self._sessions() as session:
            async with session.begin():
                existing = await session.get(FailedEmail, (user_id, email_id))
                if existing is None:
                    session.add(FailedEmail(
                        user_id=user_id,
                        email_id=email_id,
                        payload=payload,
                        error=error,
                        attempts=1,
                    ))
                    return 1
                existing.payload = payload
                existing.error = error
                existing.attempts = existing.attempts + 1
                existing.last_attempt_at = utcnow()
                session.add(existing)
                return existing.attempts

    async def get_retryable_failed_emails(self, user_id: str, max_attempts: int) -> List[FailedEmail]:
        """Queued emails that have not yet used up their attempts, oldest first."""
        async with self._sessions() as session:
            result = await session.execute(
                select(FailedEmail)
                .where(FailedEmail.user_id == user_id, FailedEmail.attempts < max_attempts)
                .order_by(FailedEmail.last_attempt_at.asc())
            )
            return list(result.scalars().all())

    async def clear_failed_email(self, user_id: str, email_id: str) -> None:
        async with self._sessions() as session:
            async with session.begin():
                await session.execute(
                    delete(FailedEmail).where(FailedEmail.user_id == user_id, FailedEmail.email_id == email_id)
                )
