"""
Gmail connector.

Reads a user's mailbox with per-user authorized-user token files
(`{token_dir}/{user_id}.json`). Obtaining those tokens is handled
outside this service. The Google client is synchronous, so every call
runs in a worker thread.
"""

import asyncio
import base64
import os
import re
from typing import Any, Dict, List, Optional

import structlog
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from inbox_navigator.exceptions import MailConnectorError
from inbox_navigator.schemas import AttachmentDescriptor, EmailRecord

logger = structlog.get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]

# Token files are named after the user id
USER_ID_PATTERN = re.compile(r"[A-Za-z0-9_.@-]+")


def token_path(token_dir: str, user_id: str) -> str:
    """
    Path of a user's token file inside `token_dir`.

    Raises:
        MailConnectorError: the user id is not a safe file name
    """
    if not USER_ID_PATTERN.fullmatch(user_id or "") or ".." in user_id:
        raise MailConnectorError(f"Invalid user id {user_id!r}")

    root = os.path.realpath(token_dir)
    path = os.path.realpath(os.path.join(root, f"{user_id}.json"))
    if os.path.dirname(path) != root:
        raise MailConnectorError(f"Invalid user id {user_id!r}")
    return path


def load_credentials(token_dir: str, user_id: str, scopes: List[str] = SCOPES) -> Credentials:
    """
    Load a user's stored credentials, refreshing them if expired.

    Raises:
        MailConnectorError: no token file or the token cannot be refreshed
    """
    path = token_path(token_dir, user_id)
    if not os.path.exists(path):
        raise MailConnectorError(f"No Google token stored for user {user_id}")

    creds = Credentials.from_authorized_user_file(path, scopes)

    if not creds.valid:
        if creds.expired and creds.refresh_token:
            try:
                creds.refresh(Request())
            except GoogleAuthError as e:
                raise MailConnectorError(f"Token refresh failed for user {user_id}: {e}") from e

            # Save refreshed credentials for next run
            with open(path, "w") as token:
                token.write(creds.to_json())
        else:
            raise MailConnectorError(f"Stored token for user {user_id} is invalid")

    return creds


def _decode(data: str) -> str:
    """Decode base64url body data."""
    return base64.urlsafe_b64decode(data).decode("utf-8", errors="ignore")


def _walk_parts(part: Dict[str, Any], texts: Dict[str, List[str]], attachments: List[AttachmentDescriptor]):
    """Recursively collect text bodies and attachment descriptors."""
    mime_type = part.get("mimeType", "")
    body = part.get("body", {}) or {}

    if part.get("filename") and body.get("attachmentId"):
        attachments.append(AttachmentDescriptor(
            filename=part["filename"],
            mime_type=mime_type or None,
            size=body.get("size", 0) or 0,
            attachment_id=body["attachmentId"],
        ))
        return

    for child in part.get("parts", []) or []:
        _walk_parts(child, texts, attachments)

    if mime_type in ("text/plain", "text/html") and body.get("data"):
        texts[mime_type].append(_decode(body["data"]))


def parse_message(msg: Dict[str, Any]) -> EmailRecord:
    """
    Convert a Gmail API message (format=full) to an EmailRecord.

    Plain-text parts are preferred; HTML is kept as-is and converted
    to text by the pipeline.
    """
    payload = msg.get("payload", {}) or {}
    headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}

    texts: Dict[str, List[str]] = {"text/plain": [], "text/html": []}
    attachments: List[AttachmentDescriptor] = []
    _walk_parts(payload, texts, attachments)

    body = "".join(texts["text/plain"]) or "".join(texts["text/html"])

    return EmailRecord(
        id=msg.get("id"),
        thread_id=msg.get("threadId"),
        subject=headers.get("subject", ""),
        sender=headers.get("from", ""),
        date=headers.get("date"),
        body=body,
        snippet=msg.get("snippet", ""),
        attachments=attachments,
    )


class GmailConnector:
    """Mail connector backed by the Gmail API."""

    def __init__(self, token_dir: str = "tokens", service_factory=None):
        self.token_dir = token_dir
        self._service_factory = service_factory or self._build_service

    def _build_service(self, user_id: str):
        creds = load_credentials(self.token_dir, user_id)
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _fetch_emails(self, user_id: str, query: str, max_results: int) -> List[EmailRecord]:
        service = self._service_factory(user_id)

        results = service.users().messages().list(
            userId="me",
            q=query,
            maxResults=max_results,
        ).execute()

        emails = []
        for meta in results.get("messages", []):
            msg = service.users().messages().get(
                userId="me",
                id=meta["id"],
                format="full",
            ).execute()
            emails.append(parse_message(msg))
        return emails

    async def fetch_emails(self, user_id: str, query: str, max_results: int = 100) -> List[EmailRecord]:
        """
        Fetch one page of emails matching a Gmail search query.

        Raises:
            MailConnectorError: auth or API failure
        """
        try:
            emails = await asyncio.to_thread(self._fetch_emails, user_id, query, max_results)
        except MailConnectorError:
            raise
        except (HttpError, GoogleAuthError, OSError) as e:
            logger.error("gmail_fetch_failed", user_id=user_id, query=query, error=str(e))
            raise MailConnectorError(f"Gmail fetch failed: {e}") from e

        logger.info("gmail_fetched", user_id=user_id, query=query, count=len(emails))
        return emails

    def _fetch_attachment(self, user_id: str, email_id: str, attachment_id: str) -> bytes:
        service = self._service_factory(user_id)
        attachment = service.users().messages().attachments().get(
            userId="me",
            messageId=email_id,
            id=attachment_id,
        ).execute()
        return base64.urlsafe_b64decode(attachment.get("data", ""))

    async def fetch_attachment(self, user_id: str, email_id: str, attachment_id: Optional[str]) -> bytes:
        """
        Download one attachment.

        Raises:
            MailConnectorError: missing reference, auth or API failure
        """
        if not attachment_id:
            raise MailConnectorError("Attachment has no download reference")

        try:
            return await asyncio.to_thread(self._fetch_attachment, user_id, email_id, attachment_id)
        except MailConnectorError:
            raise
        except (HttpError, GoogleAuthError, OSError) as e:
            logger.error("gmail_attachment_failed", user_id=user_id, email_id=email_id, error=str(e))
            raise MailConnectorError(f"Attachment download failed: {e}") from e
