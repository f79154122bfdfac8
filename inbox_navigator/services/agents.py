"""
Extraction agents for the ingestion pipeline.

Each agent turns one email into zero or more typed records:
1. Classification → course label (one LLM call)
2. Deadlines → Deadline rows (one LLM call, JSON array)
3. Alerts → ScheduleChange rows (LLM only when a keyword matches)
4. Documents → Document rows (attachment metadata, no LLM)
5. Reminder → time expression hint (regex only)

Agents return plain dicts ready for the store; they never write.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Union

from langchain_core.prompts import PromptTemplate

from inbox_navigator.exceptions import AgentError
from inbox_navigator.models import AlertType, DeadlineType, DocumentCategory, DocumentType, Priority
from inbox_navigator.schemas import AttachmentDescriptor, ReminderHint
from inbox_navigator.services.llm_client import (
    ProviderFailure,
    ProviderResult,
    ProviderSuccess,
    extract_json_block,
)
from inbox_navigator.services.text_cleaner import COURSE_CODE_PATTERN, SNIPPET_CHARS, prepare_llm_input

UNKNOWN_COURSE = "Unknown"

# Course labels longer than this are treated as prose, not a label
MAX_COURSE_LABEL_CHARS = 80

NO_COURSE_MARKERS = {"", "null", "none", "n/a", "unknown", "no course"}

# Schedule-change keywords; every matching type yields an alert
ALERT_PATTERNS = {
    AlertType.CANCELLED: re.compile(r"cancel{1,2}ed|class cancel{1,2}ed", re.IGNORECASE),
    AlertType.RESCHEDULED: re.compile(r"reschedule[d]?|postponed|moved to|new time", re.IGNORECASE),
    AlertType.ROOM_CHANGE: re.compile(r"room change|new location|moved to room|location change", re.IGNORECASE),
    AlertType.URGENT: re.compile(r"urgent|important notice|immediate attention", re.IGNORECASE),
}

REMINDER_PATTERNS = [
    re.compile(r"(\d{1,2}):(\d{2})\s*(am|pm)", re.IGNORECASE),
    re.compile(r"(\d{1,2})\s*(am|pm)", re.IGNORECASE),
    re.compile(r"\b(tomorrow|today|next week|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b", re.IGNORECASE),
    re.compile(r"(\d{4}-\d{2}-\d{2})"),
    re.compile(r"(\d{1,2}/\d{1,2}/\d{2,4})"),
]

CATEGORY_PATTERNS = [
    ("exam", re.compile(r"\b(exam|midterm|final|quiz)\b", re.IGNORECASE)),
    ("assignment", re.compile(r"\b(assignment|homework|hw\s?\d*|problem set|due|submit)\b", re.IGNORECASE)),
    ("grade", re.compile(r"\b(grades?|graded|score|marks)\b", re.IGNORECASE)),
    ("administrative", re.compile(r"\b(registration|enrol(l)?ment|tuition|office hours|policy)\b", re.IGNORECASE)),
]

FILE_TYPES = {
    "pdf": DocumentType.PDF,
    "doc": DocumentType.DOCX,
    "docx": DocumentType.DOCX,
    "ppt": DocumentType.PPT,
    "pptx": DocumentType.PPT,
    "xls": DocumentType.XLSX,
    "xlsx": DocumentType.XLSX,
}

MIME_TYPES = {
    "application/pdf": DocumentType.PDF,
    "application/msword": DocumentType.DOCX,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentType.DOCX,
    "application/vnd.ms-powerpoint": DocumentType.PPT,
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": DocumentType.PPT,
    "application/vnd.ms-excel": DocumentType.XLSX,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": DocumentType.XLSX,
}


CLASSIFY_PROMPT = PromptTemplate.from_template(
    """Analyze this email and identify the course name. Look for:
- Course codes (e.g., CS-101, MATH-204, ENG201)
- Course names (e.g., "Introduction to Computer Science", "Organic Chemistry")
- Department abbreviations

Return ONLY the course name/code, nothing else. If no course is identifiable, return "null".

From: {sender}
Subject: {subject}
Content: {content}"""
)

DEADLINE_PROMPT = PromptTemplate.from_template(
    """Extract all deadlines, due dates, and exam dates from this email.
Today is {today}. Resolve relative dates ("Friday", "next week") against today.
Return ONLY a JSON array:
[
  {{
    "title": "Assignment title or event name",
    "date": "YYYY-MM-DD",
    "time": "HH:MM" (24h) or null,
    "type": "assignment" | "exam" | "project" | "submission",
    "course": "course code or name" or null
  }}
]

If no deadlines found, return an empty array [].

Subject: {subject}
Text: {content}"""
)

ALERT_PROMPT = PromptTemplate.from_template(
    """This email announces a schedule change ({kinds}).
Today is {today}. Return ONLY a JSON object:
{{
  "date": "YYYY-MM-DD of the affected class or event" or null,
  "course": "course code or name" or null
}}

Subject: {subject}
Text: {content}"""
)


# ============ HEURISTICS ============

def determine_priority(due: Union[date, datetime], now: datetime) -> Priority:
    """
    Bucket a due date by urgency.

    Less than 2 days away → high, less than 7 → medium, else low.
    Boundaries fall into the less urgent bucket. Date-only values are
    compared in whole days against today's date.
    """
    if isinstance(due, datetime):
        if due.tzinfo is None:
            due = due.replace(tzinfo=timezone.utc)
        remaining = due - now
        if remaining < timedelta(days=2):
            return Priority.HIGH
        if remaining < timedelta(days=7):
            return Priority.MEDIUM
        return Priority.LOW

    days = (due - now.date()).days
    if days < 2:
        return Priority.HIGH
    if days < 7:
        return Priority.MEDIUM
    return Priority.LOW


def normalize_deadline_type(value: Optional[str]) -> DeadlineType:
    """Map free-form LLM output onto the DeadlineType enum."""
    text = (value or "").lower().strip()
    for member in DeadlineType:
        if text == member.value:
            return member
    if any(word in text for word in ("exam", "quiz", "midterm", "final", "test")):
        return DeadlineType.EXAM
    if "project" in text:
        return DeadlineType.PROJECT
    if "submi" in text:
        return DeadlineType.SUBMISSION
    return DeadlineType.ASSIGNMENT


def parse_due(date_value: Any, time_value: Any = None) -> Optional[tuple]:
    """
    Parse LLM date/time strings.

    Accepts "YYYY-MM-DD" or a full ISO datetime in `date_value`.

    Returns:
        (date, time or None), or None when the date is unusable
    """
    if not date_value or not isinstance(date_value, str):
        return None

    raw = date_value.strip()
    due_time = None

    try:
        if len(raw) > 10:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            due_date = parsed.date()
            if parsed.time() != time(0, 0):
                due_time = parsed.time().replace(second=0, microsecond=0)
        else:
            due_date = date.fromisoformat(raw)
    except ValueError:
        return None

    if isinstance(time_value, str) and time_value.strip():
        match = re.match(r"^(\d{1,2}):(\d{2})", time_value.strip())
        if match and int(match.group(1)) < 24 and int(match.group(2)) < 60:
            due_time = time(int(match.group(1)), int(match.group(2)))

    return due_date, due_time


def get_file_type(filename: str, mime_type: Optional[str] = None) -> Optional[DocumentType]:
    """Return the document type for a filename (or mime type), None if unsupported."""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower().strip()
        if ext in FILE_TYPES:
            return FILE_TYPES[ext]
        return None
    if mime_type:
        return MIME_TYPES.get(mime_type.lower())
    return None


def categorize_document(filename: str) -> DocumentCategory:
    """Guess a document category from its filename."""
    lower = (filename or "").lower()
    if "assignment" in lower or "hw" in lower or "homework" in lower:
        return DocumentCategory.ASSIGNMENT
    if "lecture" in lower or "slides" in lower:
        return DocumentCategory.LECTURE
    if "notes" in lower:
        return DocumentCategory.NOTES
    if "syllabus" in lower:
        return DocumentCategory.SYLLABUS
    return DocumentCategory.NOTES


def match_course_code(*texts: Optional[str]) -> Optional[str]:
    """First course code (e.g. CS-101, MATH 204) found in the given texts."""
    for text in texts:
        if not text:
            continue
        match = COURSE_CODE_PATTERN.search(text)
        if match:
            return match.group(0).upper()
    return None


def categorize_email(subject: str, body: str) -> str:
    """Coarse email category used for filtering and chat context."""
    text = f"{subject}\n{body}"
    if any(pattern.search(text) for alert_type, pattern in ALERT_PATTERNS.items()
           if alert_type != AlertType.URGENT):
        return "schedule_change"
    for category, pattern in CATEGORY_PATTERNS:
        if pattern.search(text):
            return category
    return "general"


def email_date_iso(raw_date: Optional[str], now: datetime) -> str:
    """ISO date of an email's Date header, today when it cannot be parsed."""
    if raw_date:
        try:
            return parsedate_to_datetime(raw_date).date().isoformat()
        except (TypeError, ValueError):
            pass
        try:
            return datetime.fromisoformat(raw_date.replace("Z", "+00:00")).date().isoformat()
        except ValueError:
            pass
    return now.date().isoformat()


def _clean_course_label(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    label = value.strip().splitlines()[0].strip().strip('"').strip("'").strip() if value.strip() else ""
    if label.lower() in NO_COURSE_MARKERS or len(label) > MAX_COURSE_LABEL_CHARS:
        return None
    return label


# ============ AGENTS ============

async def classify_course(llm, subject: str, sender: str, body: str) -> ProviderResult:
    """
    Classification agent: one LLM call returning the course label.

    Returns:
        ProviderSuccess(label or None) or the ProviderFailure of the call
    """
    prompt = CLASSIFY_PROMPT.format(sender=sender, subject=subject, content=body[:500])
    result = await llm.generate(prompt)
    if isinstance(result, ProviderFailure):
        return result
    return ProviderSuccess(_clean_course_label(result.value))


async def extract_deadlines(
    llm,
    email_id: str,
    subject: str,
    body: str,
    course: Optional[str],
    now: datetime,
) -> List[Dict[str, Any]]:
    """
    Deadline agent: prompt the LLM for a JSON array of deadlines.

    Raises:
        AgentError: provider failure or no parsable JSON array
    """
    prompt = DEADLINE_PROMPT.format(
        today=now.date().isoformat(),
        subject=subject,
        content=prepare_llm_input(body, max_chars=1500),
    )
    result = await llm.generate(prompt)
    if isinstance(result, ProviderFailure):
        raise AgentError("deadline", f"{result.kind.value}: {result.message}")

    items = extract_json_block(result.value, expected=(list,))
    if items is None:
        raise AgentError("deadline", "response contained no JSON array")

    deadlines = []
    for item in items:
        if not isinstance(item, dict) or not item.get("title"):
            continue
        parsed = parse_due(item.get("date") or item.get("dueDate") or item.get("dueAt"), item.get("time"))
        if parsed is None:
            continue
        due_date, due_time = parsed

        if due_time is not None:
            due_at = datetime.combine(due_date, due_time, tzinfo=timezone.utc)
        else:
            due_at = due_date

        deadlines.append({
            "id": f"{email_id}_deadline_{len(deadlines)}",
            "email_id": email_id,
            "title": str(item["title"]).strip()[:512],
            "course": _clean_course_label(item.get("course")) or course or UNKNOWN_COURSE,
            "due_date": due_date.isoformat(),
            "due_time": due_time.strftime("%H:%M") if due_time else None,
            "description": f"From email: {subject}",
            "type": normalize_deadline_type(item.get("type")).value,
            "priority": determine_priority(due_at, now).value,
        })

    return deadlines


def matched_alert_types(subject: str, body: str) -> List[AlertType]:
    """Alert types whose keyword pattern matches subject + body."""
    text = f"{subject}\n{body}"
    return [alert_type for alert_type, pattern in ALERT_PATTERNS.items() if pattern.search(text)]


async def detect_alerts(
    llm,
    email_id: str,
    subject: str,
    body: str,
    course: Optional[str],
    email_date: Optional[str],
    now: datetime,
) -> List[Dict[str, Any]]:
    """
    Alert agent: keyword-gated schedule change detection.

    No keyword → no LLM call and no alerts. Otherwise one LLM call fills
    in the occurrence date and a course hint; if that call fails the
    alerts are still produced with the email's own date.
    """
    kinds = matched_alert_types(subject, body)
    if not kinds:
        return []

    occurrence = email_date_iso(email_date, now)
    alert_course = course

    prompt = ALERT_PROMPT.format(
        kinds=", ".join(kind.value for kind in kinds),
        today=now.date().isoformat(),
        subject=subject,
        content=body[:500],
    )
    result = await llm.generate(prompt)
    if isinstance(result, ProviderSuccess):
        details = extract_json_block(result.value, expected=(dict,)) or {}
        parsed = parse_due(details.get("date"))
        if parsed is not None:
            occurrence = parsed[0].isoformat()
        alert_course = alert_course or _clean_course_label(details.get("course"))

    return [
        {
            "id": f"{email_id}_alert_{kind.value}",
            "email_id": email_id,
            "type": kind.value,
            "course": alert_course or UNKNOWN_COURSE,
            "message": subject,
            "date": occurrence,
            "details": body[:SNIPPET_CHARS],
        }
        for kind in kinds
    ]


def extract_documents(
    email_id: str,
    attachments: List[AttachmentDescriptor],
    subject: str,
    course: Optional[str],
) -> List[Dict[str, Any]]:
    """
    Document agent: catalogue attachments of recognised types.

    Unsupported types are dropped silently.
    """
    documents = []
    for index, attachment in enumerate(attachments):
        file_type = get_file_type(attachment.filename, attachment.mime_type)
        if file_type is None:
            continue

        reference = attachment.attachment_id or str(index)
        documents.append({
            "id": f"{email_id}_doc_{reference}"[:255],
            "email_id": email_id,
            "filename": attachment.filename or f"attachment-{index}.{file_type.value}",
            "course": match_course_code(attachment.filename, subject) or course or UNKNOWN_COURSE,
            "type": file_type.value,
            "category": categorize_document(attachment.filename).value,
            "url": attachment.url,
            "attachment_id": attachment.attachment_id,
            "mime_type": attachment.mime_type,
            "size": attachment.size or 0,
        })

    return documents


def detect_reminder(subject: str, body: str) -> ReminderHint:
    """Reminder agent: first time/date expression in the email."""
    combined = f"{subject}\n{body}"
    for pattern in REMINDER_PATTERNS:
        match = pattern.search(combined)
        if match:
            return ReminderHint(
                has_reminder=True,
                extracted_time=match.group(0),
                title=subject,
                description=body[:500],
            )
    return ReminderHint()
