"""
Semantic search, chat and index stats endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from inbox_navigator.api.deps import get_chat_service, get_search_service, get_store
from inbox_navigator.schemas import ChatAnswer
from inbox_navigator.services.chat_service import ChatService
from inbox_navigator.services.db_service import DocumentStore
from inbox_navigator.services.search_service import SearchService

router = APIRouter(tags=["Search"])


# ============ Schemas ============

class SearchHit(BaseModel):
    """One ranked email."""
    email_id: str
    subject: Optional[str]
    sender: Optional[str]
    date: Optional[str]
    snippet: Optional[str]
    category: Optional[str]
    course_name: Optional[str]
    score: float


class SearchResponse(BaseModel):
    query: str
    results: List[SearchHit]


class ChatRequest(BaseModel):
    user_id: str
    question: str = Field(..., min_length=1)
    top_k: int = Field(5, ge=1, le=20)


class RagStatsResponse(BaseModel):
    user_id: str
    indexed_emails: int


# ============ Endpoints ============

@router.get("/search", response_model=SearchResponse)
async def search_emails(
    user_id: str = Query(...),
    q: str = Query(..., min_length=1, description="Natural-language query"),
    top_k: int = Query(5, ge=1, le=50),
    search_service: SearchService = Depends(get_search_service),
):
    """
    Rank the user's emails by cosine similarity to the query.

    **Example:**
    ```
    GET /api/v1/search?user_id=u1&q=when is the CS101 midterm
    ```
    """
    matches = await search_service.search_with_scores(user_id, q, top_k)
    return SearchResponse(
        query=q,
        results=[
            SearchHit(
                email_id=record.id,
                subject=record.subject,
                sender=record.sender,
                date=record.date,
                snippet=record.snippet,
                category=record.category,
                course_name=record.course_name,
                score=score,
            )
            for record, score in matches
        ],
    )


@router.post("/chat", response_model=ChatAnswer)
async def chat(body: ChatRequest, chat_service: ChatService = Depends(get_chat_service)):
    """Answer a question from the user's most relevant emails."""
    return await chat_service.answer(body.user_id, body.question, body.top_k)


@router.get("/rag/stats", response_model=RagStatsResponse)
async def rag_stats(user_id: str = Query(...), store: DocumentStore = Depends(get_store)):
    """Number of emails indexed for search."""
    return RagStatsResponse(user_id=user_id, indexed_emails=await store.count_email_embeddings(user_id))
