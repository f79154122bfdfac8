"""Shared test fixtures and fakes for the inbox navigator."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from inbox_navigator.database import create_engine_from_url, create_session_factory, init_models
from inbox_navigator.exceptions import MailConnectorError
from inbox_navigator.schemas import AttachmentDescriptor, EmailRecord
from inbox_navigator.services.db_service import DocumentStore
from inbox_navigator.services.llm_client import FailureKind, ProviderFailure, ProviderSuccess

FIXED_NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)  # a Monday


class FakeLLM:
    """
    LLM double that answers by prompt kind.

    Kinds: classify, deadline, alert, chat. Every call is recorded so
    tests can count calls per kind.
    """

    def __init__(
        self,
        course: str = "null",
        deadlines: str = "[]",
        alert: str = '{"date": null, "course": null}',
        chat: str = "You have a CS101 midterm on Friday.",
        fail: tuple = (),
    ):
        self.answers = {"classify": course, "deadline": deadlines, "alert": alert, "chat": chat}
        self.fail = set(fail)
        self.calls: List[str] = []
        self.prompts: List[str] = []

    @staticmethod
    def kind_of(prompt: str) -> str:
        if prompt.startswith("You are an intelligent email assistant"):
            return "chat"
        if "identify the course name" in prompt:
            return "classify"
        if "Extract all deadlines" in prompt:
            return "deadline"
        return "alert"

    def count(self, kind: str) -> int:
        return self.calls.count(kind)

    async def generate(self, prompt: str):
        kind = self.kind_of(prompt)
        self.calls.append(kind)
        self.prompts.append(prompt)
        if kind in self.fail:
            return ProviderFailure(FailureKind.UNAVAILABLE, f"{kind} provider down")
        return ProviderSuccess(self.answers[kind])


class FakeEmbedder:
    """Embedder double returning fixed vectors (3 dimensions by default)."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default=None, fail: bool = False):
        self.vectors = vectors or {}
        self.default = default or [1.0, 0.0, 0.0]
        self.fail = fail
        self.calls: List[tuple] = []

    async def embed(self, text: str, task_type):
        self.calls.append((text, task_type))
        if self.fail:
            return ProviderFailure(FailureKind.QUOTA_EXCEEDED, "quota")
        for needle, vector in self.vectors.items():
            if needle in text:
                return ProviderSuccess(list(vector))
        return ProviderSuccess(list(self.default))


class FakeMailConnector:
    """Mail connector double serving a fixed page of emails."""

    def __init__(self, emails: Optional[List[EmailRecord]] = None, fail: bool = False):
        self.emails = list(emails or [])
        self.fail = fail
        self.queries: List[str] = []
        self.attachments: Dict[tuple, bytes] = {}

    async def fetch_emails(self, user_id: str, query: str, max_results: int = 100):
        self.queries.append(query)
        if self.fail:
            raise MailConnectorError("gmail down")
        return list(self.emails[:max_results])

    async def fetch_attachment(self, user_id: str, email_id: str, attachment_id: Any) -> bytes:
        return self.attachments[(email_id, attachment_id)]


def make_email(email_id: Optional[str] = "msg-1", **overrides) -> EmailRecord:
    """EmailRecord with sensible defaults."""
    fields = {
        "id": email_id,
        "thread_id": None,
        "subject": "Weekly update",
        "sender": "prof@university.edu",
        "date": "Mon, 4 Mar 2024 08:00:00 +0000",
        "body": "Hello class, see you on Thursday.",
        "snippet": "",
        "attachments": [],
    }
    fields.update(overrides)
    return EmailRecord(**fields)


@pytest.fixture
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def cs101_email() -> EmailRecord:
    """Email with a deadline and a lecture-slides attachment."""
    return make_email(
        "msg-cs101",
        subject="CS101 Homework 3 due Friday",
        body="Please submit Homework 3 by Friday 5pm.",
        attachments=[
            AttachmentDescriptor(
                filename="lecture_slides_week5.pdf",
                mime_type="application/pdf",
                size=2048,
                attachment_id="att-1",
            )
        ],
    )


@pytest_asyncio.fixture
async def store(tmp_path):
    """Real DocumentStore on a file-backed sqlite database."""
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'navigator.db'}")
    await init_models(engine)
    yield DocumentStore(create_session_factory(engine))
    await engine.dispose()
