"""
Calendar export of deadlines.

A deadline becomes a one-hour Google Calendar event at its due time
(an all-day event when it has no time), with popup reminders one day
and one hour before.
"""

import asyncio
from datetime import date, datetime, time, timedelta
from typing import Any, Dict

import structlog
from google.auth.exceptions import GoogleAuthError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inbox_navigator.exceptions import CalendarConnectorError, MailConnectorError, NotFoundError
from inbox_navigator.services.gmail_service import load_credentials

logger = structlog.get_logger(__name__)

EVENT_DURATION = timedelta(hours=1)

# Popup reminders, minutes before the event
REMINDER_MINUTES = [24 * 60, 60]


class GoogleCalendarConnector:
    """Creates events in the user's primary Google Calendar."""

    def __init__(self, token_dir: str = "tokens", service_factory=None):
        self.token_dir = token_dir
        self._service_factory = service_factory or self._build_service

    def _build_service(self, user_id: str):
        creds = load_credentials(self.token_dir, user_id)
        return build("calendar", "v3", credentials=creds, cache_discovery=False)

    def _create_event(self, user_id: str, payload: Dict[str, Any]) -> str:
        service = self._service_factory(user_id)
        event = service.events().insert(calendarId="primary", body=payload).execute()
        return event["id"]

    async def create_event(self, user_id: str, payload: Dict[str, Any]) -> str:
        """
        Insert an event and return its id.

        Raises:
            CalendarConnectorError: auth or API failure
        """
        try:
            return await asyncio.to_thread(self._create_event, user_id, payload)
        except (MailConnectorError, HttpError, GoogleAuthError, OSError, KeyError) as e:
            logger.error("calendar_event_failed", user_id=user_id, error=str(e))
            raise CalendarConnectorError(f"Calendar event creation failed: {e}") from e


def build_event_payload(deadline, timezone: str = "UTC") -> Dict[str, Any]:
    """Calendar event body for a Deadline row."""
    due_date = date.fromisoformat(deadline.due_date)
    course = deadline.course or "Unknown"

    payload: Dict[str, Any] = {
        "summary": deadline.title,
        "description": deadline.description or f"{course} - {deadline.title}",
        "reminders": {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": minutes} for minutes in REMINDER_MINUTES],
        },
    }

    if deadline.due_time:
        start = datetime.combine(due_date, time.fromisoformat(deadline.due_time))
        end = start + EVENT_DURATION
        payload["start"] = {"dateTime": start.isoformat(), "timeZone": timezone}
        payload["end"] = {"dateTime": end.isoformat(), "timeZone": timezone}
    else:
        payload["start"] = {"date": due_date.isoformat()}
        payload["end"] = {"date": (due_date + timedelta(days=1)).isoformat()}

    return payload


class CalendarService:
    """Adds stored deadlines to the user's calendar."""

    def __init__(self, store, connector, timezone: str = "UTC"):
        self.store = store
        self.connector = connector
        self.timezone = timezone

    async def add_deadline(self, user_id: str, deadline_id: str) -> str:
        """
        Export one deadline and mark it as added.

        Already exported deadlines are not exported twice.

        Returns:
            Calendar event id

        Raises:
            NotFoundError: no such deadline for this user
            CalendarConnectorError: the event could not be created
        """
        deadline = await self.store.get_deadline(user_id, deadline_id)
        if deadline is None:
            raise NotFoundError(f"Deadline {deadline_id} not found")

        if deadline.added_to_calendar and deadline.calendar_event_id:
            return deadline.calendar_event_id

        event_id = await self.connector.create_event(user_id, build_event_payload(deadline, self.timezone))
        await self.store.mark_deadline_added_to_calendar(user_id, deadline_id, event_id)

        logger.info("deadline_added_to_calendar", user_id=user_id, deadline_id=deadline_id, event_id=event_id)
        return event_id
