"""
Batch email sync.

Pipeline for one run:
1. Build the Gmail query from the stored watermark (or the lookback window)
2. Fetch one page of emails
3. Replay queued failed emails, then ingest the new ones, one at a time
   behind the rate limiter
4. Save SyncStatus with the advanced watermark and the run's counts

Per-email failures are counted and queued for retry; store failures and
a failed initial fetch reach the caller.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from inbox_navigator.exceptions import MailConnectorError
from inbox_navigator.schemas import EmailRecord, IngestionResult, SyncResult
from inbox_navigator.services.ingestion_pipeline import generate_email_id
from inbox_navigator.services.rate_limiter import RateLimiter
from inbox_navigator.timeutils import ensure_utc, utcnow

logger = structlog.get_logger(__name__)


def build_sync_query(last_sync: Optional[datetime], now: datetime, lookback_days: int = 30) -> str:
    """
    Gmail search filter for an incremental sync.

    `after:<unix seconds>` of the last sync, or of `now - lookback_days`
    on the first sync.
    """
    if last_sync is not None:
        since = ensure_utc(last_sync)
    else:
        since = ensure_utc(now) - timedelta(days=lookback_days)
    return f"after:{int(since.timestamp())}"


def with_stable_id(email: EmailRecord, fallback: str) -> EmailRecord:
    """
    Pin the id an email is ingested and queued under.

    Uses the message id, then the thread id, then `fallback`.
    """
    if email.id:
        return email
    return email.model_copy(update={"id": email.thread_id or fallback})


class SyncService:
    """Fetches new emails for a user and runs each through the ingestion pipeline."""

    def __init__(
        self,
        store,
        connector,
        pipeline,
        rate_limiter: Optional[RateLimiter] = None,
        page_size: int = 100,
        lookback_days: int = 30,
        max_retry_attempts: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.connector = connector
        self.pipeline = pipeline
        self.rate_limiter = rate_limiter or RateLimiter()
        self.page_size = page_size
        self.lookback_days = lookback_days
        self.max_retry_attempts = max_retry_attempts
        self.clock = clock

    async def _ingest(
        self,
        user_id: str,
        email: EmailRecord,
        result: SyncResult,
        log,
        queue_id: Optional[str] = None,
    ) -> Optional[IngestionResult]:
        """
        Ingest one email behind the rate limiter.

        Returns None (and queues the email) when ingestion failed. A replayed
        email is re-queued under its existing `queue_id`.
        """
        await self.rate_limiter.acquire()

        try:
            ingested = await self.pipeline.process_email(user_id, email)
        except SQLAlchemyError:
            raise
        except Exception as e:
            email_id = queue_id or email.id
            log.error("email_ingestion_failed", email_id=email_id, error=str(e), error_type=type(e).__name__)
            attempts = await self.store.record_failed_email(
                user_id, email_id, email.model_dump(mode="json"), str(e)
            )
            result.failed += 1
            result.failed_email_ids.append(email_id)
            if attempts >= self.max_retry_attempts:
                log.warning("email_retry_exhausted", email_id=email_id, attempts=attempts)
            return None

        result.processed += 1
        result.deadlines += ingested.deadlines
        result.alerts += ingested.alerts
        result.documents += ingested.documents
        result.agent_failures += len(ingested.agent_failures)
        return ingested

    async def sync_emails(self, user_id: str) -> SyncResult:
        """
        Run one incremental sync for a user.

        Raises:
            MailConnectorError: the initial fetch failed
            SQLAlchemyError: the store failed
        """
        started_at = self.clock()
        log = logger.bind(user_id=user_id)

        status = await self.store.get_sync_status(user_id)
        previous = ensure_utc(status.last_sync) if status is not None and status.last_sync else None
        query = build_sync_query(previous, started_at, self.lookback_days)

        queued = await self.store.get_retryable_failed_emails(user_id, self.max_retry_attempts)

        log.info("sync_started", query=query, queued=len(queued))
        try:
            emails = await self.connector.fetch_emails(user_id, query, self.page_size)
        except MailConnectorError:
            raise
        except Exception as e:
            log.error("sync_fetch_failed", query=query, error=str(e))
            raise MailConnectorError(f"Email fetch failed: {e}") from e

        if not emails and not queued:
            log.info("sync_up_to_date", query=query)
            return SyncResult(status="up_to_date", query=query)

        result = SyncResult(status="processed", query=query)
        emails = [with_stable_id(email, generate_email_id(self.clock())) for email in emails]
        fetched_ids = {email.id for email in emails}
        queued_ids = {failed.email_id for failed in queued}

        # Replay the retry queue first; a freshly fetched copy takes precedence
        for failed in queued:
            if failed.email_id in fetched_ids:
                continue
            email = with_stable_id(EmailRecord.model_validate(failed.payload), failed.email_id)
            if await self._ingest(user_id, email, result, log, queue_id=failed.email_id) is not None:
                await self.store.clear_failed_email(user_id, failed.email_id)
                result.retried += 1

        for email in emails:
            ingested = await self._ingest(user_id, email, result, log)
            if ingested is not None and ingested.email_id in queued_ids:
                await self.store.clear_failed_email(user_id, ingested.email_id)
                result.retried += 1

        # The watermark never moves backwards
        last_sync = ensure_utc(started_at)
        if previous is not None and previous > last_sync:
            last_sync = previous

        await self.store.save_sync_status(
            user_id,
            last_sync=last_sync,
            emails_synced=result.processed,
            deadlines_found=result.deadlines,
            alerts_found=result.alerts,
            documents_found=result.documents,
            failed=result.failed,
        )

        log.info(
            "sync_completed",
            processed=result.processed,
            failed=result.failed,
            retried=result.retried,
            deadlines=result.deadlines,
            alerts=result.alerts,
            documents=result.documents,
        )
        return result
