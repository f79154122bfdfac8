"""
Gemini clients for the ingestion pipeline.

Uses LangChain's Gemini integration for both text generation and
embeddings. Calls never raise: they return a ProviderSuccess or a
ProviderFailure tagged with a FailureKind, so every call site has to
decide what a failure means for it.
"""

import asyncio
import enum
import json
import re
from dataclasses import dataclass
from typing import Any, Generic, List, Optional, Tuple, TypeVar, Union

import structlog
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Embedding input limit (~8k tokens)
MAX_EMBEDDING_CHARS = 30000

CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class FailureKind(str, enum.Enum):
    """Why a provider call produced no usable payload."""
    NOT_CONFIGURED = "not_configured"
    UNAVAILABLE = "unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIMEOUT = "timeout"
    MALFORMED_RESPONSE = "malformed_response"


class TaskType(str, enum.Enum):
    """Embedding task types (Gemini names)."""
    DOCUMENT = "retrieval_document"
    QUERY = "retrieval_query"


@dataclass(frozen=True)
class ProviderSuccess(Generic[T]):
    value: T


@dataclass(frozen=True)
class ProviderFailure:
    kind: FailureKind
    message: str = ""


ProviderResult = Union[ProviderSuccess[T], ProviderFailure]


def classify_provider_error(exc: BaseException) -> FailureKind:
    """Map an exception raised by a provider SDK to a FailureKind."""
    if isinstance(exc, asyncio.TimeoutError):
        return FailureKind.TIMEOUT
    text = f"{type(exc).__name__} {exc}".lower()
    if "resourceexhausted" in text or "429" in text or "quota" in text or "rate limit" in text:
        return FailureKind.QUOTA_EXCEEDED
    return FailureKind.UNAVAILABLE


def extract_json_block(text: str, expected: Tuple[type, ...] = (dict, list)) -> Optional[Any]:
    """
    Return the first well-formed JSON object or array embedded in text.

    LLM answers often wrap JSON in prose or markdown fences. Every '{' or
    '[' is tried as a starting point and the first one that decodes to a
    value of an expected type wins.

    Returns:
        Parsed value, or None if no block could be decoded
    """
    if not text:
        return None

    cleaned = CODE_FENCE.sub("", text)
    decoder = json.JSONDecoder()

    for index, char in enumerate(cleaned):
        if char not in "{[":
            continue
        try:
            value, _ = decoder.raw_decode(cleaned, index)
        except ValueError:
            continue
        if isinstance(value, expected):
            return value

    return None


def _message_text(response: Any) -> str:
    """Flatten a LangChain message into plain text."""
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, dict):
                parts.append(part.get("text", ""))
            else:
                parts.append(str(part))
        content = "".join(parts)
    return str(content or "")


class GeminiLLM:
    """Text generation through ChatGoogleGenerativeAI."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        timeout: float = 60.0,
        llm: Optional[Any] = None,
    ):
        self.model = model
        self.timeout = timeout
        self._llm = llm
        if self._llm is None and api_key:
            self._llm = ChatGoogleGenerativeAI(
                model=model,
                google_api_key=api_key,
                temperature=0.1,
                max_output_tokens=1024,
            )

    async def generate(self, prompt: str) -> ProviderResult[str]:
        """
        Send one prompt and return the text of the answer.

        Args:
            prompt: Fully rendered prompt

        Returns:
            ProviderSuccess with the response text, or ProviderFailure
        """
        if self._llm is None:
            return ProviderFailure(FailureKind.NOT_CONFIGURED, "GOOGLE_API_KEY not configured")

        try:
            response = await asyncio.wait_for(self._llm.ainvoke(prompt), timeout=self.timeout)
        except Exception as e:
            kind = classify_provider_error(e)
            logger.warning("llm_call_failed", model=self.model, kind=kind.value, error=str(e))
            return ProviderFailure(kind, str(e))

        text = _message_text(response).strip()
        if not text:
            return ProviderFailure(FailureKind.MALFORMED_RESPONSE, "empty response")
        return ProviderSuccess(text)


class GeminiEmbedder:
    """Dense vectors through GoogleGenerativeAIEmbeddings."""

    def __init__(
        self,
        api_key: str,
        model: str = "models/text-embedding-004",
        dimensions: int = 768,
        timeout: float = 60.0,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.dimensions = dimensions
        self.timeout = timeout
        self._client = client
        if self._client is None and api_key:
            self._client = GoogleGenerativeAIEmbeddings(model=model, google_api_key=api_key)

    async def embed(self, text: str, task_type: TaskType) -> ProviderResult[List[float]]:
        """
        Embed one text.

        Args:
            text: Input text (truncated to MAX_EMBEDDING_CHARS)
            task_type: DOCUMENT for indexing, QUERY for search

        Returns:
            ProviderSuccess with a vector of `dimensions` floats, or ProviderFailure
        """
        if self._client is None:
            return ProviderFailure(FailureKind.NOT_CONFIGURED, "GOOGLE_API_KEY not configured")

        text = text[:MAX_EMBEDDING_CHARS]

        try:
            # The Google client is synchronous; keep it off the event loop
            vector = await asyncio.wait_for(
                asyncio.to_thread(self._client.embed_query, text, task_type=task_type.value),
                timeout=self.timeout,
            )
        except Exception as e:
            kind = classify_provider_error(e)
            logger.warning("embedding_call_failed", model=self.model, kind=kind.value, error=str(e))
            return ProviderFailure(kind, str(e))

        if not vector:
            return ProviderFailure(FailureKind.MALFORMED_RESPONSE, "empty vector")
        if self.dimensions and len(vector) != self.dimensions:
            return ProviderFailure(
                FailureKind.MALFORMED_RESPONSE,
                f"expected {self.dimensions} dimensions, got {len(vector)}",
            )
        return ProviderSuccess([float(x) for x in vector])
