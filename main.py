from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from inbox_navigator import __version__
from inbox_navigator.api.v1.api import api_router
from inbox_navigator.config import get_settings
from inbox_navigator.database import create_engine_from_url, create_session_factory, init_models
from inbox_navigator.exceptions import (
    CalendarConnectorError,
    ChatUnavailableError,
    IngestionError,
    MailConnectorError,
    NotFoundError,
    SearchUnavailableError,
)
from inbox_navigator.logging_setup import configure_logging
from inbox_navigator.services.calendar_service import CalendarService, GoogleCalendarConnector
from inbox_navigator.services.chat_service import ChatService
from inbox_navigator.services.db_service import DocumentStore
from inbox_navigator.services.gmail_service import GmailConnector
from inbox_navigator.services.ingestion_pipeline import IngestionPipeline
from inbox_navigator.services.llm_client import GeminiEmbedder, GeminiLLM
from inbox_navigator.services.rate_limiter import RateLimiter
from inbox_navigator.services.search_service import SearchService
from inbox_navigator.services.sync_service import SyncService

logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables and wire services on startup."""
    configure_logging(settings.log_level, settings.log_json)

    engine = create_engine_from_url(settings.database_url)
    await init_models(engine)
    logger.info("database_ready")

    store = DocumentStore(create_session_factory(engine))
    llm = GeminiLLM(settings.google_api_key, settings.gemini_model, settings.provider_timeout_seconds)
    embedder = GeminiEmbedder(
        settings.google_api_key,
        settings.embedding_model,
        settings.embedding_dimensions,
        settings.provider_timeout_seconds,
    )
    mail_connector = GmailConnector(settings.gmail_token_dir)
    search_service = SearchService(store, embedder)

    app.state.store = store
    app.state.mail_connector = mail_connector
    app.state.search_service = search_service
    app.state.chat_service = ChatService(store, search_service, llm)
    app.state.calendar_service = CalendarService(
        store,
        GoogleCalendarConnector(settings.gmail_token_dir),
        settings.calendar_timezone,
    )
    app.state.sync_service = SyncService(
        store,
        mail_connector,
        IngestionPipeline(store, llm, embedder),
        rate_limiter=RateLimiter(settings.sync_min_interval_seconds),
        page_size=settings.sync_page_size,
        lookback_days=settings.sync_lookback_days,
        max_retry_attempts=settings.sync_max_retry_attempts,
    )

    if not settings.google_api_key:
        logger.warning("google_api_key_missing")

    yield

    await engine.dispose()


app = FastAPI(
    title="Collegiate Inbox Navigator",
    description="Deadlines, schedule changes and documents extracted from student email",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============ ERROR HANDLERS ============

def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request: Request, exc: IngestionError):
    return _error(422, exc)


@app.exception_handler(MailConnectorError)
@app.exception_handler(CalendarConnectorError)
async def connector_error_handler(request: Request, exc: Exception):
    return _error(502, exc)


@app.exception_handler(SearchUnavailableError)
@app.exception_handler(ChatUnavailableError)
async def provider_unavailable_handler(request: Request, exc: Exception):
    return _error(503, exc)


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("store_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})


app.include_router(api_router)


@app.get("/")
def health_check():
    return {"status": "ok"}
