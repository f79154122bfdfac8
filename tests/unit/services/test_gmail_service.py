"""Tests for the Gmail connector (Gmail API client mocked)."""

import base64
import os
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from inbox_navigator.exceptions import MailConnectorError
from inbox_navigator.services.gmail_service import GmailConnector, load_credentials, parse_message, token_path


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode()).decode()


MULTIPART_MESSAGE = {
    "id": "msg-1",
    "threadId": "thread-1",
    "snippet": "Homework 3 is due",
    "payload": {
        "mimeType": "multipart/mixed",
        "headers": [
            {"name": "Subject", "value": "CS101 Homework 3"},
            {"name": "From", "value": "Prof <prof@uni.edu>"},
            {"name": "Date", "value": "Mon, 4 Mar 2024 08:00:00 +0000"},
        ],
        "parts": [
            {
                "mimeType": "multipart/alternative",
                "parts": [
                    {"mimeType": "text/plain", "body": {"data": b64("Homework 3 is due Friday.")}},
                    {"mimeType": "text/html", "body": {"data": b64("<p>Homework 3 is due Friday.</p>")}},
                ],
            },
            {
                "mimeType": "application/pdf",
                "filename": "hw3.pdf",
                "body": {"attachmentId": "att-1", "size": 1234},
            },
        ],
    },
}


def gmail_service_mock(messages):
    service = MagicMock()
    users = service.users.return_value
    users.messages.return_value.list.return_value.execute.return_value = {
        "messages": [{"id": m["id"]} for m in messages]
    }
    by_id = {m["id"]: m for m in messages}

    def get(userId, id, format):
        request = MagicMock()
        request.execute.return_value = by_id[id]
        return request

    users.messages.return_value.get.side_effect = get
    return service


class TestParseMessage:
    def test_multipart_with_attachment(self) -> None:
        email = parse_message(MULTIPART_MESSAGE)

        assert email.id == "msg-1"
        assert email.thread_id == "thread-1"
        assert email.subject == "CS101 Homework 3"
        assert email.sender == "Prof <prof@uni.edu>"
        assert email.date == "Mon, 4 Mar 2024 08:00:00 +0000"
        assert email.body == "Homework 3 is due Friday."
        assert email.snippet == "Homework 3 is due"
        assert len(email.attachments) == 1
        attachment = email.attachments[0]
        assert (attachment.filename, attachment.attachment_id, attachment.size) == ("hw3.pdf", "att-1", 1234)
        assert attachment.mime_type == "application/pdf"

    def test_simple_html_message(self) -> None:
        message = {
            "id": "msg-2",
            "payload": {
                "mimeType": "text/html",
                "headers": [{"name": "Subject", "value": "Hi"}],
                "body": {"data": b64("<p>Hello</p>")},
            },
        }
        email = parse_message(message)
        assert email.body == "<p>Hello</p>"
        assert email.sender == ""
        assert email.attachments == []


class TestGmailConnector:
    async def test_fetch_emails(self) -> None:
        service = gmail_service_mock([MULTIPART_MESSAGE])
        connector = GmailConnector(service_factory=lambda user_id: service)

        emails = await connector.fetch_emails("u1", "after:1700000000", max_results=50)

        assert [e.id for e in emails] == ["msg-1"]
        service.users.return_value.messages.return_value.list.assert_called_once_with(
            userId="me", q="after:1700000000", maxResults=50
        )

    async def test_api_error_becomes_connector_error(self) -> None:
        service = MagicMock()
        response = MagicMock(status=403, reason="Forbidden")
        service.users.return_value.messages.return_value.list.return_value.execute.side_effect = HttpError(
            response, b"forbidden"
        )
        connector = GmailConnector(service_factory=lambda user_id: service)

        with pytest.raises(MailConnectorError):
            await connector.fetch_emails("u1", "after:0")

    async def test_fetch_attachment_decodes_data(self) -> None:
        service = MagicMock()
        attachments = service.users.return_value.messages.return_value.attachments.return_value
        attachments.get.return_value.execute.return_value = {
            "data": base64.urlsafe_b64encode(b"%PDF-1.4").decode()
        }
        connector = GmailConnector(service_factory=lambda user_id: service)

        content = await connector.fetch_attachment("u1", "msg-1", "att-1")

        assert content == b"%PDF-1.4"
        attachments.get.assert_called_once_with(userId="me", messageId="msg-1", id="att-1")

    async def test_attachment_without_reference(self) -> None:
        connector = GmailConnector(service_factory=lambda user_id: MagicMock())
        with pytest.raises(MailConnectorError):
            await connector.fetch_attachment("u1", "msg-1", None)


def test_missing_token_file(tmp_path) -> None:
    with pytest.raises(MailConnectorError):
        load_credentials(str(tmp_path), "nobody")


@pytest.mark.parametrize("user_id", ["../secret", "a/b", "..", "", "u1\n"])
def test_unsafe_user_id_is_rejected(tmp_path, user_id) -> None:
    token_dir = tmp_path / "tokens"
    token_dir.mkdir()
    (tmp_path / "secret.json").write_text("{}")

    with pytest.raises(MailConnectorError, match="Invalid user id"):
        load_credentials(str(token_dir), user_id)


def test_token_path_stays_in_token_dir(tmp_path) -> None:
    assert token_path(str(tmp_path), "student@uni.edu") == os.path.join(
        os.path.realpath(tmp_path), "student@uni.edu.json"
    )
