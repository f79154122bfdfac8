"""Tests for the extraction agents and their heuristics."""

from datetime import date, datetime, timedelta

import pytest

from conftest import FIXED_NOW, FakeLLM
from inbox_navigator.exceptions import AgentError
from inbox_navigator.models import AlertType, DeadlineType, DocumentCategory, DocumentType, Priority
from inbox_navigator.schemas import AttachmentDescriptor
from inbox_navigator.services.agents import (
    categorize_document,
    categorize_email,
    classify_course,
    detect_alerts,
    detect_reminder,
    determine_priority,
    email_date_iso,
    extract_deadlines,
    extract_documents,
    get_file_type,
    match_course_code,
    matched_alert_types,
    normalize_deadline_type,
    parse_due,
)
from inbox_navigator.services.llm_client import ProviderFailure, ProviderSuccess


class TestDeterminePriority:
    """Priority buckets relative to now."""

    def test_one_day_away_is_high(self) -> None:
        assert determine_priority(FIXED_NOW + timedelta(days=1), FIXED_NOW) == Priority.HIGH

    def test_exactly_two_days_is_medium(self) -> None:
        assert determine_priority(FIXED_NOW + timedelta(days=2), FIXED_NOW) == Priority.MEDIUM

    def test_exactly_seven_days_is_low(self) -> None:
        assert determine_priority(FIXED_NOW + timedelta(days=7), FIXED_NOW) == Priority.LOW

    def test_past_due_is_high(self) -> None:
        assert determine_priority(FIXED_NOW - timedelta(days=3), FIXED_NOW) == Priority.HIGH

    def test_date_only_compares_whole_days(self) -> None:
        today = FIXED_NOW.date()
        assert determine_priority(today + timedelta(days=1), FIXED_NOW) == Priority.HIGH
        assert determine_priority(today + timedelta(days=4), FIXED_NOW) == Priority.MEDIUM
        assert determine_priority(today + timedelta(days=30), FIXED_NOW) == Priority.LOW

    def test_naive_datetime_is_treated_as_utc(self) -> None:
        naive = (FIXED_NOW + timedelta(days=3)).replace(tzinfo=None)
        assert determine_priority(naive, FIXED_NOW) == Priority.MEDIUM


class TestParsing:
    def test_parse_date_and_time(self) -> None:
        parsed = parse_due("2024-03-08", "17:00")
        assert parsed == (date(2024, 3, 8), datetime(2024, 3, 8, 17, 0).time())

    def test_parse_iso_datetime(self) -> None:
        due_date, due_time = parse_due("2024-03-08T23:59:00Z")
        assert due_date == date(2024, 3, 8)
        assert due_time.strftime("%H:%M") == "23:59"

    def test_parse_rejects_garbage(self) -> None:
        assert parse_due("next Friday") is None
        assert parse_due(None) is None
        assert parse_due(20240308) is None

    def test_invalid_time_is_ignored(self) -> None:
        assert parse_due("2024-03-08", "25:00") == (date(2024, 3, 8), None)

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("exam", DeadlineType.EXAM),
            ("Midterm", DeadlineType.EXAM),
            ("group project", DeadlineType.PROJECT),
            ("submission", DeadlineType.SUBMISSION),
            ("homework", DeadlineType.ASSIGNMENT),
            (None, DeadlineType.ASSIGNMENT),
        ],
    )
    def test_normalize_deadline_type(self, value, expected) -> None:
        assert normalize_deadline_type(value) == expected

    def test_email_date_from_rfc2822_header(self) -> None:
        assert email_date_iso("Tue, 5 Mar 2024 10:00:00 +0000", FIXED_NOW) == "2024-03-05"

    def test_email_date_falls_back_to_today(self) -> None:
        assert email_date_iso("not a date", FIXED_NOW) == "2024-03-04"
        assert email_date_iso(None, FIXED_NOW) == "2024-03-04"


class TestFileHeuristics:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("notes.pdf", DocumentType.PDF),
            ("essay.doc", DocumentType.DOCX),
            ("essay.DOCX", DocumentType.DOCX),
            ("deck.pptx", DocumentType.PPT),
            ("grades.xls", DocumentType.XLSX),
            ("photo.png", None),
            ("archive.zip", None),
        ],
    )
    def test_get_file_type(self, filename, expected) -> None:
        assert get_file_type(filename) == expected

    def test_mime_type_used_without_extension(self) -> None:
        assert get_file_type("scan", "application/pdf") == DocumentType.PDF
        assert get_file_type("scan", "image/png") is None

    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("Assignment3.pdf", DocumentCategory.ASSIGNMENT),
            ("hw2_solutions.pdf", DocumentCategory.ASSIGNMENT),
            ("lecture_05.pptx", DocumentCategory.LECTURE),
            ("week5_slides.pdf", DocumentCategory.LECTURE),
            ("CS101_syllabus.docx", DocumentCategory.SYLLABUS),
            ("syllabus_notes.pdf", DocumentCategory.NOTES),
            ("reading.pdf", DocumentCategory.NOTES),
        ],
    )
    def test_categorize_document(self, filename, expected) -> None:
        assert categorize_document(filename) == expected

    def test_match_course_code(self) -> None:
        assert match_course_code("CS-101 notes.pdf") == "CS-101"
        assert match_course_code(None, "Reminder for MATH 204") == "MATH 204"
        assert match_course_code("due 2024") is None


class TestCategorizeEmail:
    def test_schedule_change_wins(self) -> None:
        assert categorize_email("Class cancelled", "The exam review is cancelled") == "schedule_change"

    def test_exam(self) -> None:
        assert categorize_email("Midterm info", "Bring a calculator") == "exam"

    def test_assignment(self) -> None:
        assert categorize_email("Homework 3", "Please submit by Friday") == "assignment"

    def test_general(self) -> None:
        assert categorize_email("Welcome", "Glad to have you in the course") == "general"


class TestClassifyCourse:
    async def test_returns_label(self) -> None:
        result = await classify_course(FakeLLM(course="CS101"), "Hi", "prof@uni.edu", "body")
        assert isinstance(result, ProviderSuccess)
        assert result.value == "CS101"

    async def test_null_marker_means_no_course(self) -> None:
        result = await classify_course(FakeLLM(course='"null"'), "Hi", "prof@uni.edu", "body")
        assert result.value is None

    async def test_provider_failure_is_returned(self) -> None:
        result = await classify_course(FakeLLM(fail=("classify",)), "Hi", "a", "b")
        assert isinstance(result, ProviderFailure)


class TestExtractDeadlines:
    async def test_builds_records_from_json_array(self) -> None:
        llm = FakeLLM(deadlines=(
            'Here you go:\n```json\n['
            '{"title": "Homework 3", "date": "2024-03-08", "time": "17:00", "type": "assignment"},'
            '{"title": "Midterm", "date": "2024-03-20", "time": null, "type": "exam", "course": "CS101"}'
            ']\n```'
        ))
        records = await extract_deadlines(llm, "msg-1", "CS101 news", "body", None, FIXED_NOW)

        assert [r["id"] for r in records] == ["msg-1_deadline_0", "msg-1_deadline_1"]
        first, second = records
        assert first["due_date"] == "2024-03-08"
        assert first["due_time"] == "17:00"
        assert first["priority"] == "medium"
        assert first["course"] == "Unknown"
        assert first["description"] == "From email: CS101 news"
        assert second["type"] == "exam"
        assert second["course"] == "CS101"
        assert second["due_time"] is None
        assert second["priority"] == "low"

    async def test_skips_items_without_usable_date(self) -> None:
        llm = FakeLLM(deadlines='[{"title": "Essay", "date": "soon"}, {"date": "2024-03-05"}]')
        assert await extract_deadlines(llm, "msg-1", "s", "b", "CS101", FIXED_NOW) == []

    async def test_course_label_is_used_as_default(self) -> None:
        llm = FakeLLM(deadlines='[{"title": "Lab 2", "date": "2024-03-05"}]')
        records = await extract_deadlines(llm, "msg-1", "s", "b", "CHEM 110", FIXED_NOW)
        assert records[0]["course"] == "CHEM 110"
        assert records[0]["priority"] == "high"

    async def test_no_json_array_raises(self) -> None:
        llm = FakeLLM(deadlines="I could not find any deadlines.")
        with pytest.raises(AgentError) as exc_info:
            await extract_deadlines(llm, "msg-1", "s", "b", None, FIXED_NOW)
        assert str(exc_info.value).startswith("deadline: ")

    async def test_provider_failure_raises(self) -> None:
        with pytest.raises(AgentError):
            await extract_deadlines(FakeLLM(fail=("deadline",)), "msg-1", "s", "b", None, FIXED_NOW)


class TestDetectAlerts:
    async def test_no_keyword_means_no_llm_call(self) -> None:
        llm = FakeLLM()
        alerts = await detect_alerts(llm, "msg-1", "Weekly update", "See you Thursday", None, None, FIXED_NOW)
        assert alerts == []
        assert llm.count("alert") == 0

    async def test_every_matching_type_yields_an_alert(self) -> None:
        llm = FakeLLM(alert='{"date": "2024-03-06", "course": "PHYS 201"}')
        alerts = await detect_alerts(
            llm,
            "msg-1",
            "URGENT: class cancelled",
            "Thursday's lecture is cancelled.",
            None,
            "Mon, 4 Mar 2024 08:00:00 +0000",
            FIXED_NOW,
        )

        assert llm.count("alert") == 1
        assert {a["type"] for a in alerts} == {"cancelled", "urgent"}
        assert {a["id"] for a in alerts} == {"msg-1_alert_cancelled", "msg-1_alert_urgent"}
        for alert in alerts:
            assert alert["date"] == "2024-03-06"
            assert alert["course"] == "PHYS 201"
            assert alert["message"] == "URGENT: class cancelled"

    async def test_llm_failure_falls_back_to_email_date(self) -> None:
        llm = FakeLLM(fail=("alert",))
        alerts = await detect_alerts(
            llm, "msg-1", "Room change", "The lab is now in room 204", "CS101", "Tue, 5 Mar 2024 08:00:00 +0000", FIXED_NOW
        )
        assert [a["type"] for a in alerts] == ["room_change"]
        assert alerts[0]["date"] == "2024-03-05"
        assert alerts[0]["course"] == "CS101"

    def test_matched_alert_types_is_case_insensitive(self) -> None:
        assert matched_alert_types("LECTURE RESCHEDULED", "") == [AlertType.RESCHEDULED]


class TestExtractDocuments:
    def test_filters_and_tags_attachments(self) -> None:
        attachments = [
            AttachmentDescriptor(filename="CS-101 lecture3.pdf", mime_type="application/pdf", attachment_id="a1"),
            AttachmentDescriptor(filename="photo.jpg", mime_type="image/jpeg", attachment_id="a2"),
            AttachmentDescriptor(filename="homework2.docx", attachment_id="a3", size=10),
        ]
        documents = extract_documents("msg-1", attachments, "Materials", "Intro to CS")

        assert [d["id"] for d in documents] == ["msg-1_doc_a1", "msg-1_doc_a3"]
        assert documents[0]["course"] == "CS-101"
        assert documents[0]["category"] == "lecture"
        assert documents[1]["course"] == "Intro to CS"
        assert documents[1]["type"] == "docx"
        assert documents[1]["category"] == "assignment"

    def test_no_attachments(self) -> None:
        assert extract_documents("msg-1", [], "s", None) == []


class TestDetectReminder:
    def test_finds_time_expression(self) -> None:
        hint = detect_reminder("Office hours", "Join me at 3:30 pm in room 12")
        assert hint.has_reminder is True
        assert hint.extracted_time == "3:30 pm"
        assert hint.title == "Office hours"

    def test_no_time_expression(self) -> None:
        assert detect_reminder("Hello", "Nothing scheduled here").has_reminder is False
