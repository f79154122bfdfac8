"""
Semantic search over a user's embedded emails.

Full scan: every EmailEmbedding of the user is scored with cosine
similarity against the query vector.
"""

from typing import List, Sequence, Tuple

import numpy as np
import structlog

from inbox_navigator.exceptions import SearchUnavailableError
from inbox_navigator.models import EmailEmbedding
from inbox_navigator.services.llm_client import ProviderFailure, TaskType

logger = structlog.get_logger(__name__)

DEFAULT_TOP_K = 5


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    dot(a, b) / (|a| * |b|).

    Returns 0.0 when either vector has zero norm.

    Raises:
        ValueError: vectors of different length
    """
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)
    if vec_a.shape != vec_b.shape:
        raise ValueError(f"dimension mismatch: {vec_a.shape} vs {vec_b.shape}")

    norm = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if norm == 0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / norm)


class SearchService:
    """Ranks stored emails by similarity to a natural-language query."""

    def __init__(self, store, embedder):
        self.store = store
        self.embedder = embedder

    async def search_with_scores(
        self, user_id: str, query: str, top_k: int = DEFAULT_TOP_K
    ) -> List[Tuple[EmailEmbedding, float]]:
        """
        Top-k (record, score) pairs, best first.

        Raises:
            SearchUnavailableError: the query could not be embedded
        """
        result = await self.embedder.embed(query, TaskType.QUERY)
        if isinstance(result, ProviderFailure):
            logger.warning("search_embedding_failed", user_id=user_id, kind=result.kind.value)
            raise SearchUnavailableError(f"Query embedding failed: {result.kind.value}")

        query_vector = result.value
        records = await self.store.get_email_embeddings(user_id)

        scored = []
        skipped = 0
        for record in records:
            if not record.embedding or len(record.embedding) != len(query_vector):
                skipped += 1
                continue
            scored.append((record, cosine_similarity(query_vector, record.embedding)))

        if skipped:
            logger.warning("search_skipped_records", user_id=user_id, skipped=skipped)

        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:max(top_k, 0)]

    async def search(self, user_id: str, query: str, top_k: int = DEFAULT_TOP_K) -> List[EmailEmbedding]:
        """Top-k records, best first."""
        return [record for record, _ in await self.search_with_scores(user_id, query, top_k)]
