"""
Inbox chat assistant (retrieval-augmented answers).

The question is embedded, the closest emails are pulled with semantic
search and the LLM answers from that context only.
"""

import structlog
from langchain_core.prompts import PromptTemplate

from inbox_navigator.exceptions import ChatUnavailableError
from inbox_navigator.schemas import ChatAnswer, ChatSource
from inbox_navigator.services.llm_client import ProviderFailure

logger = structlog.get_logger(__name__)

NO_EMAILS_ANSWER = "I don't have any of your emails indexed yet. Run a sync first, then ask again."

CONTEXT_BODY_CHARS = 500

CHAT_PROMPT = PromptTemplate.from_template(
    """You are an intelligent email assistant for college students. You have access to the user's email inbox and can answer questions about their emails, assignments, deadlines, professors, courses, and documents.

User's Question: {question}

Email Context (most relevant emails):
{context}

Instructions:
1. Answer the question based ONLY on the email context provided above
2. If the answer is not in the emails, say "I don't see that information in your recent emails"
3. Be specific - mention email subjects, dates, senders when relevant
4. If there are deadlines or dates, highlight them clearly
5. Keep answers concise but informative (2-4 sentences)

Answer:"""
)


def build_context(records) -> str:
    """Render retrieved emails as numbered context blocks."""
    blocks = []
    for index, record in enumerate(records, start=1):
        body = (record.body or record.snippet or "")[:CONTEXT_BODY_CHARS]
        blocks.append(
            f"Email {index}:\n"
            f"Subject: {record.subject or '(No Subject)'}\n"
            f"From: {record.sender or 'Unknown'}\n"
            f"Date: {record.date or 'Unknown'}\n"
            f"Course: {record.course_name or 'Unknown'}\n"
            f"Body: {body}\n---"
        )
    return "\n\n".join(blocks)


class ChatService:
    """Answers questions about a user's inbox."""

    def __init__(self, store, search_service, llm):
        self.store = store
        self.search_service = search_service
        self.llm = llm

    async def answer(self, user_id: str, question: str, top_k: int = 5) -> ChatAnswer:
        """
        Answer a question from the user's most relevant emails.

        Raises:
            SearchUnavailableError: the question could not be embedded
            ChatUnavailableError: the LLM call failed
        """
        if await self.store.count_email_embeddings(user_id) == 0:
            return ChatAnswer(answer=NO_EMAILS_ANSWER, sources=[])

        matches = await self.search_service.search_with_scores(user_id, question, top_k)
        records = [record for record, _ in matches]

        prompt = CHAT_PROMPT.format(question=question, context=build_context(records))
        result = await self.llm.generate(prompt)
        if isinstance(result, ProviderFailure):
            logger.warning("chat_answer_failed", user_id=user_id, kind=result.kind.value)
            raise ChatUnavailableError(f"Answer generation failed: {result.kind.value}")

        sources = [
            ChatSource(
                email_id=record.id,
                subject=record.subject,
                sender=record.sender,
                date=record.date,
                score=round(score, 4),
            )
            for record, score in matches
        ]
        logger.info("chat_answered", user_id=user_id, sources=len(sources))
        return ChatAnswer(answer=result.value, sources=sources)
