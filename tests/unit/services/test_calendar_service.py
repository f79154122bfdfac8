"""Tests for calendar export of deadlines."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from inbox_navigator.exceptions import CalendarConnectorError, NotFoundError
from inbox_navigator.services.calendar_service import (
    CalendarService,
    GoogleCalendarConnector,
    build_event_payload,
)


def make_deadline(**overrides):
    fields = {
        "id": "e1_deadline_0",
        "title": "Homework 3",
        "course": "CS101",
        "due_date": "2024-03-08",
        "due_time": "17:00",
        "description": "From email: CS101 Homework 3",
        "added_to_calendar": False,
        "calendar_event_id": None,
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestBuildEventPayload:
    def test_timed_event_lasts_one_hour(self) -> None:
        payload = build_event_payload(make_deadline(), timezone="America/New_York")

        assert payload["summary"] == "Homework 3"
        assert payload["start"] == {"dateTime": "2024-03-08T17:00:00", "timeZone": "America/New_York"}
        assert payload["end"] == {"dateTime": "2024-03-08T18:00:00", "timeZone": "America/New_York"}
        assert payload["reminders"]["overrides"] == [
            {"method": "popup", "minutes": 1440},
            {"method": "popup", "minutes": 60},
        ]

    def test_date_only_is_all_day(self) -> None:
        payload = build_event_payload(make_deadline(due_time=None))
        assert payload["start"] == {"date": "2024-03-08"}
        assert payload["end"] == {"date": "2024-03-09"}

    def test_default_description(self) -> None:
        payload = build_event_payload(make_deadline(description=None))
        assert payload["description"] == "CS101 - Homework 3"


class TestCalendarService:
    async def test_adds_and_marks_deadline(self, store) -> None:
        await store.replace_deadlines("u1", "e1", [{
            "id": "e1_deadline_0",
            "email_id": "e1",
            "title": "Homework 3",
            "due_date": "2024-03-08",
            "due_time": "17:00",
        }])
        connector = AsyncMock()
        connector.create_event.return_value = "evt-42"

        event_id = await CalendarService(store, connector).add_deadline("u1", "e1_deadline_0")

        assert event_id == "evt-42"
        row = await store.get_deadline("u1", "e1_deadline_0")
        assert row.added_to_calendar is True
        assert row.calendar_event_id == "evt-42"

    async def test_already_exported_is_not_duplicated(self) -> None:
        store = AsyncMock()
        store.get_deadline.return_value = make_deadline(added_to_calendar=True, calendar_event_id="evt-1")
        connector = AsyncMock()

        assert await CalendarService(store, connector).add_deadline("u1", "e1_deadline_0") == "evt-1"
        connector.create_event.assert_not_called()

    async def test_unknown_deadline(self) -> None:
        store = AsyncMock()
        store.get_deadline.return_value = None
        with pytest.raises(NotFoundError):
            await CalendarService(store, AsyncMock()).add_deadline("u1", "missing")


class TestGoogleCalendarConnector:
    async def test_inserts_into_primary_calendar(self) -> None:
        service = MagicMock()
        service.events.return_value.insert.return_value.execute.return_value = {"id": "evt-7"}
        connector = GoogleCalendarConnector(service_factory=lambda user_id: service)

        assert await connector.create_event("u1", {"summary": "x"}) == "evt-7"
        service.events.return_value.insert.assert_called_once_with(calendarId="primary", body={"summary": "x"})

    async def test_failure_becomes_connector_error(self, tmp_path) -> None:
        connector = GoogleCalendarConnector(token_dir=str(tmp_path))
        with pytest.raises(CalendarConnectorError):
            await connector.create_event("nobody", {"summary": "x"})
