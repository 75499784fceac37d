# @TASK P2-T2.4 - Semantic retriever (embedding cosine similarity)
# @TEST tests/test_semantic.py

"""Semantic retrieval: embed the query once, compare against stored vectors.

Hybrid search uses a strict similarity floor (0.7); standalone semantic
search and find-similar use a looser one (0.3). Both come from
``get_search_params()``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from vaultsearch.constants import MatchType, RetrievalStrategy
from vaultsearch.search.embeddings import EmbeddingError, EmbeddingService
from vaultsearch.search.filters import FilterSpec
from vaultsearch.search.params import get_search_params
from vaultsearch.search.records import SearchableRecord, SearchResult, clamp_score
from vaultsearch.search.store import RecordStore
from vaultsearch.search.vector import cosine_similarity

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def match_reason(record: SearchableRecord, query: str, similarity: float) -> str:
    """Short human-readable reason a record matched semantically."""
    terms = [t for t in query.lower().split() if len(t) > 2]
    text = record.display_text().lower()
    matched = [t for t in terms if t in text]
    if matched:
        return f"Contains terms: {', '.join(matched[:3])}"
    if similarity > 0.8:
        return "Highly similar semantic content"
    if similarity > 0.6:
        return "Similar conceptual meaning"
    return "Related content themes"


class SemanticRetriever:
    """Cosine-similarity retriever over record embeddings.

    Args:
        store: Record store providing candidates.
        embeddings: Embedding provider; called at most once per retrieval.
        params: Search parameters (defaults to ``get_search_params()``).
        clock: Current-time source used for the recency bonus.
    """

    strategy = RetrievalStrategy.SEMANTIC

    def __init__(
        self,
        store: RecordStore,
        embeddings: EmbeddingService,
        params: dict[str, Any] | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._embeddings = embeddings
        self._params = params or get_search_params()
        self._clock = clock

    async def retrieve(
        self,
        query_text: str,
        spec: FilterSpec,
        limit: int | None = None,
        min_similarity: float | None = None,
    ) -> list[SearchResult]:
        """Return records whose embedding is close to ``query_text``.

        Raises:
            VectorDimensionMismatch: If the query and a stored vector differ
                in dimension.
        """
        limit = limit or int(self._params["semantic_limit"])
        threshold = (
            float(min_similarity)
            if min_similarity is not None
            else float(self._params["semantic_min_similarity_hybrid"])
        )

        if not query_text or not query_text.strip():
            return []

        try:
            query_vector = await self._embeddings.embed_text(query_text)
        except EmbeddingError as exc:
            logger.warning("Semantic retrieval skipped, embedding failed: %s", exc)
            return []
        if not query_vector:
            return []

        candidates = await self._store.find_candidates(spec.derive(require_embedding=True))

        scored: list[tuple[float, SearchResult]] = []
        for record in candidates:
            if not record.embedding:
                continue
            similarity = cosine_similarity(query_vector, record.embedding)
            if similarity < threshold:
                continue
            result = SearchResult(
                record=record,
                relevance_score=self._adjust(similarity, record),
                match_type=MatchType(self.strategy),
                matched_fields=["embedding"],
                explanation=(
                    f"Semantic similarity: {similarity * 100:.1f}% "
                    f"({match_reason(record, query_text, similarity)})"
                ),
            )
            scored.append((similarity, result))

        scored.sort(key=lambda pair: (pair[1].relevance_score, pair[0]), reverse=True)
        results = [result for _, result in scored[:limit]]
        logger.debug(
            "Semantic retrieval: %d candidates, %d above %.2f, returning %d",
            len(candidates), len(scored), threshold, len(results),
        )
        return results

    def _adjust(self, similarity: float, record: SearchableRecord) -> float:
        score = similarity
        if record.summary and len(record.summary) > 50:
            score += float(self._params["semantic_summary_bonus"])
        age = self._clock() - record.created_at
        if age <= timedelta(days=int(self._params["semantic_recent_days"])):
            score += float(self._params["semantic_recent_bonus"])
        return clamp_score(score)
