"""Collegiate Inbox Navigator: email ingestion, extraction and search for students."""

__version__ = "1.0.0"
