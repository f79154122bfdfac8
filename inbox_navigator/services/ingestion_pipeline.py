"""
LangGraph email ingestion pipeline.

Flow for one email:
1. Classify → course label (failure degrades to "no course")
2. Embed → dense vector of subject + body ("document" task type)
3. Persist → EmailEmbedding with processed=False
4. Agents → deadline, document, alert and reminder branches run in parallel
5. Mark processed → once all four branches have settled

Extraction failures stop at the agent that raised them and are reported
in `agent_failures`; store failures propagate to the caller.
"""

import operator
import random
import string
from datetime import datetime
from typing import Annotated, Any, Callable, Dict, List, Optional, TypedDict

import structlog
from langgraph.graph import END, START, StateGraph

from inbox_navigator.exceptions import EmbeddingUnavailableError, IngestionError
from inbox_navigator.schemas import AttachmentDescriptor, EmailRecord, IngestionResult, ReminderHint
from inbox_navigator.services.agents import (
    categorize_email,
    classify_course,
    detect_alerts,
    detect_reminder,
    extract_deadlines,
    extract_documents,
)
from inbox_navigator.services.llm_client import ProviderFailure, TaskType
from inbox_navigator.services.text_cleaner import SNIPPET_CHARS, normalize_body
from inbox_navigator.timeutils import utcnow

logger = structlog.get_logger(__name__)

AGENT_NODES = ["deadline_agent", "document_agent", "alert_agent", "reminder_agent"]


class IngestionState(TypedDict):
    """State that flows through the ingestion graph."""
    # Input
    user_id: str
    email_id: str
    subject: str
    sender: str
    date: Optional[str]
    body: str
    attachments: List[AttachmentDescriptor]
    now: datetime

    # Classification / embedding
    course_name: Optional[str]
    category: str
    vector: Optional[List[float]]
    embedding_error: Optional[str]

    # Agent outputs
    deadlines: int
    documents: int
    alerts: int
    reminder: ReminderHint

    # Parallel branches append to this list
    agent_failures: Annotated[List[str], operator.add]


def generate_email_id(now: datetime) -> str:
    """Fallback id for emails that carry neither a message nor thread id."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"email_{int(now.timestamp() * 1000)}_{suffix}"


class IngestionPipeline:
    """
    Ingests one email at a time for a user.

    Dependencies are injected: a DocumentStore, an LLM with
    `generate(prompt)` and an embedder with `embed(text, task_type)`.
    """

    def __init__(self, store, llm, embedder, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.llm = llm
        self.embedder = embedder
        self.clock = clock
        self._graph = self._build_graph()

    # ============ NODES ============

    async def classify(self, state: IngestionState) -> Dict[str, Any]:
        """Node 1: course label from one LLM call."""
        category = categorize_email(state["subject"], state["body"])
        result = await classify_course(self.llm, state["subject"], state["sender"], state["body"])

        if isinstance(result, ProviderFailure):
            logger.warning(
                "agent_failed",
                agent="classification",
                user_id=state["user_id"],
                email_id=state["email_id"],
                kind=result.kind.value,
                error=result.message,
            )
            return {"course_name": None, "category": category, "agent_failures": ["classification"]}

        return {"course_name": result.value, "category": category}

    async def embed(self, state: IngestionState) -> Dict[str, Any]:
        """Node 2: document embedding of subject + body."""
        text = f"{state['subject']}\n\n{state['body']}"
        result = await self.embedder.embed(text, TaskType.DOCUMENT)

        if isinstance(result, ProviderFailure):
            return {"vector": None, "embedding_error": f"{result.kind.value}: {result.message}"}
        return {"vector": result.value}

    def route_after_embed(self, state: IngestionState) -> str:
        """Nothing is stored for an email without a vector."""
        if not state.get("vector"):
            return END
        return "persist"

    async def persist(self, state: IngestionState) -> Dict[str, Any]:
        """Node 3: write the EmailEmbedding, not yet processed."""
        await self.store.upsert_email_embedding(
            state["user_id"],
            id=state["email_id"],
            subject=state["subject"],
            sender=state["sender"],
            date=state["date"],
            snippet=state["body"][:SNIPPET_CHARS],
            body=state["body"],
            embedding=state["vector"],
            category=state["category"],
            course_name=state["course_name"],
            has_deadline=False,
            processed=False,
        )
        return {}

    def _agent_failed(self, agent: str, state: IngestionState, error: Exception) -> Dict[str, Any]:
        logger.warning(
            "agent_failed",
            agent=agent,
            user_id=state["user_id"],
            email_id=state["email_id"],
            error=str(error),
        )
        return {"agent_failures": [agent]}

    async def deadline_agent(self, state: IngestionState) -> Dict[str, Any]:
        """Node 4a: deadlines via the LLM."""
        try:
            records = await extract_deadlines(
                self.llm,
                state["email_id"],
                state["subject"],
                state["body"],
                state["course_name"],
                state["now"],
            )
        except Exception as e:
            return self._agent_failed("deadline", state, e)

        await self.store.replace_deadlines(state["user_id"], state["email_id"], records)
        return {"deadlines": len(records)}

    async def document_agent(self, state: IngestionState) -> Dict[str, Any]:
        """Node 4b: attachments of recognised document types."""
        try:
            records = extract_documents(
                state["email_id"],
                state["attachments"],
                state["subject"],
                state["course_name"],
            )
        except Exception as e:
            return self._agent_failed("document", state, e)

        await self.store.replace_documents(state["user_id"], state["email_id"], records)
        return {"documents": len(records)}

    async def alert_agent(self, state: IngestionState) -> Dict[str, Any]:
        """Node 4c: keyword-gated schedule change alerts."""
        try:
            records = await detect_alerts(
                self.llm,
                state["email_id"],
                state["subject"],
                state["body"],
                state["course_name"],
                state["date"],
                state["now"],
            )
        except Exception as e:
            return self._agent_failed("alert", state, e)

        await self.store.replace_alerts(state["user_id"], state["email_id"], records)
        return {"alerts": len(records)}

    async def reminder_agent(self, state: IngestionState) -> Dict[str, Any]:
        """Node 4d: time expressions for calendar reminders."""
        try:
            return {"reminder": detect_reminder(state["subject"], state["body"])}
        except Exception as e:
            return self._agent_failed("reminder", state, e)

    async def mark_processed(self, state: IngestionState) -> Dict[str, Any]:
        """Node 5: flip the processed flag after every agent settled."""
        await self.store.mark_processed(
            state["user_id"],
            state["email_id"],
            has_deadline=state.get("deadlines", 0) > 0,
        )
        return {}

    # ============ BUILD GRAPH ============

    def _build_graph(self):
        """Build and compile the ingestion graph."""
        workflow = StateGraph(IngestionState)

        workflow.add_node("classify", self.classify)
        workflow.add_node("embed", self.embed)
        workflow.add_node("persist", self.persist)
        workflow.add_node("deadline_agent", self.deadline_agent)
        workflow.add_node("document_agent", self.document_agent)
        workflow.add_node("alert_agent", self.alert_agent)
        workflow.add_node("reminder_agent", self.reminder_agent)
        workflow.add_node("mark_processed", self.mark_processed)

        workflow.add_edge(START, "classify")
        workflow.add_edge("classify", "embed")
        workflow.add_conditional_edges("embed", self.route_after_embed, ["persist", END])

        # Fan out, then join once all four branches finished
        for node in AGENT_NODES:
            workflow.add_edge("persist", node)
        workflow.add_edge(AGENT_NODES, "mark_processed")
        workflow.add_edge("mark_processed", END)

        return workflow.compile()

    # ============ ENTRY POINT ============

    async def process_email(self, user_id: str, email: EmailRecord) -> IngestionResult:
        """
        Run the full pipeline for one email.

        Raises:
            IngestionError: the email has no text at all
            EmbeddingUnavailableError: no vector could be generated
        """
        now = self.clock()
        email_id = email.id or email.thread_id or generate_email_id(now)

        body = normalize_body(email.body) or normalize_body(email.snippet)
        if not (email.subject or "").strip() and not body:
            raise IngestionError("email has no subject, body or snippet", email_id=email_id)

        log = logger.bind(user_id=user_id, email_id=email_id)
        log.info("email_ingestion_started", subject=email.subject[:80])

        initial_state: IngestionState = {
            "user_id": user_id,
            "email_id": email_id,
            "subject": email.subject or "",
            "sender": email.sender or "",
            "date": email.date,
            "body": body,
            "attachments": list(email.attachments),
            "now": now,
            "course_name": None,
            "category": "general",
            "vector": None,
            "embedding_error": None,
            "deadlines": 0,
            "documents": 0,
            "alerts": 0,
            "reminder": ReminderHint(),
            "agent_failures": [],
        }

        final_state = await self._graph.ainvoke(initial_state)

        if not final_state.get("vector"):
            log.error("embedding_unavailable", error=final_state.get("embedding_error"))
            raise EmbeddingUnavailableError(
                f"embedding failed: {final_state.get('embedding_error')}",
                email_id=email_id,
            )

        result = IngestionResult(
            email_id=email_id,
            course_name=final_state.get("course_name"),
            category=final_state.get("category", "general"),
            deadlines=final_state.get("deadlines", 0),
            alerts=final_state.get("alerts", 0),
            documents=final_state.get("documents", 0),
            reminder=final_state.get("reminder") or ReminderHint(),
            agent_failures=sorted(final_state.get("agent_failures", [])),
        )
        log.info(
            "email_ingested",
            course=result.course_name,
            deadlines=result.deadlines,
            alerts=result.alerts,
            documents=result.documents,
            agent_failures=result.agent_failures,
        )
        return result
