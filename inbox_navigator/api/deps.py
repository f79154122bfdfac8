"""
FastAPI dependency providers.

Services are built once in the app lifespan and kept on `app.state`;
tests replace them through `app.dependency_overrides`.
"""

from fastapi import Request

from inbox_navigator.services.calendar_service import CalendarService
from inbox_navigator.services.chat_service import ChatService
from inbox_navigator.services.db_service import DocumentStore
from inbox_navigator.services.search_service import SearchService
from inbox_navigator.services.sync_service import SyncService


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_sync_service(request: Request) -> SyncService:
    return request.app.state.sync_service


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_calendar_service(request: Request) -> CalendarService:
    return request.app.state.calendar_service


def get_mail_connector(request: Request):
    return request.app.state.mail_connector
