# @TASK P2-T2.10 - Hybrid search coordinator (enhance, retrieve, fuse, rank)
# @TEST tests/test_hybrid_search.py

"""Hybrid search over a user's vault.

Flow for :meth:`HybridSearchEngine.search`:

1. Enhance the raw query (dictionary or language service).
2. Build one immutable ``FilterSpec`` from scope, caller filters and the
   enhancer's date hint.
3. Run the semantic, fuzzy and exact retrievers concurrently. A failing or
   slow retriever contributes nothing; the others still count.
4. Fuse, rank, optionally diversify, then slice the requested page.

Pagination uses rank-then-slice: each retriever fetches at least
``offset + limit`` results and the page is cut once, after ranking.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

from vaultsearch.constants import MatchType
from vaultsearch.search.diversity import diversify as diversify_results
from vaultsearch.search.embeddings import EmbeddingService
from vaultsearch.search.errors import (
    RecordNotFoundError,
    RetrievalError,
    SearchError,
    VectorDimensionMismatch,
)
from vaultsearch.search.exact import ExactRetriever
from vaultsearch.search.filters import FilterSpec, SearchFilters, build_filter_spec
from vaultsearch.search.fusion import fuse
from vaultsearch.search.fuzzy import FuzzyRetriever
from vaultsearch.search.highlight import highlight
from vaultsearch.search.params import get_search_params
from vaultsearch.search.query_enhancer import QueryEnhancer
from vaultsearch.search.ranking import RankingEngine
from vaultsearch.search.records import (
    QueryInfo,
    SearchContext,
    SearchMetadata,
    SearchPage,
    SearchResult,
    SearchScope,
)
from vaultsearch.search.semantic import SemanticRetriever
from vaultsearch.search.store import RecordStore

logger = logging.getLogger(__name__)

_RECENT_CONTEXT_RECORDS = 10
_SUGGESTION_WORD_RE = re.compile(r"[a-z0-9]+")
_SUGGESTION_STOPWORDS = frozenset({
    "about", "after", "also", "been", "before", "could", "does", "from", "have",
    "here", "into", "just", "like", "more", "much", "need", "only", "over",
    "please", "some", "than", "that", "them", "then", "there", "these", "they",
    "this", "very", "want", "were", "what", "when", "where", "which", "will",
    "with", "would", "your",
})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HybridSearchEngine:
    """Coordinates enhancement, retrieval, fusion and ranking.

    Args:
        store: Record store shared by all retrievers.
        embeddings: Embedding provider for the semantic retriever.
        enhancer: Query enhancer; defaults to dictionary-only enhancement.
        ranking: Ranking engine; defaults to one using ``clock``.
        params: Search parameters (defaults to ``get_search_params()``).
        clock: Current-time source shared with the retrievers and ranking.
    """

    def __init__(
        self,
        store: RecordStore,
        embeddings: EmbeddingService,
        enhancer: QueryEnhancer | None = None,
        ranking: RankingEngine | None = None,
        params: dict[str, Any] | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._store = store
        self._params = params or get_search_params()
        self._enhancer = enhancer or QueryEnhancer(clock=clock)
        self._ranking = ranking or RankingEngine(clock=clock)
        self._semantic = SemanticRetriever(store, embeddings, self._params, clock=clock)
        self._fuzzy = FuzzyRetriever(store, self._params)
        self._exact = ExactRetriever(store, self._params)

    # ------------------------------------------------------------------
    # Hybrid search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        scope: SearchScope,
        filters: SearchFilters | None = None,
        limit: int = 20,
        offset: int = 0,
        context: SearchContext | None = None,
        diversify: bool = False,
    ) -> SearchPage:
        """Run a full hybrid search and return one page of ranked results.

        Raises:
            FilterError: If the structural filters are inconsistent.
            VectorDimensionMismatch: If stored embeddings do not match the
                configured model.
            SearchError: If fusion or ranking fails unexpectedly.
        """
        started = time.perf_counter()
        if not query or not query.strip():
            return SearchPage(results=[], total=0, query=QueryInfo(original=query or "", enhanced=""))

        logger.info("Search request: %r for user %s", query, scope.user_id)

        context = await self._resolve_context(scope, context)
        enhanced = await self._enhancer.enhance(query, scope, context)
        _, tz = self._enhancer.resolve_timezone(context)
        spec = build_filter_spec(scope, filters, enhanced.suggested_filters, tz)

        try:
            fetch = offset + limit
            semantic, fuzzy, exact = await asyncio.gather(
                self._safe_retrieve(
                    "Semantic",
                    query,
                    lambda: self._semantic.retrieve(
                        enhanced.enhanced, spec, limit=max(fetch, int(self._params["semantic_limit"]))
                    ),
                ),
                self._safe_retrieve(
                    "Fuzzy",
                    query,
                    lambda: self._fuzzy.retrieve(
                        enhanced.enhanced, spec, limit=max(fetch, int(self._params["fuzzy_limit"]))
                    ),
                ),
                self._safe_retrieve(
                    "Exact",
                    query,
                    lambda: self._exact.retrieve(
                        enhanced.enhanced, spec, limit=max(fetch, int(self._params["exact_limit"]))
                    ),
                ),
            )

            combined = fuse(semantic, fuzzy, exact, exact_boost=float(self._params["exact_fusion_boost"]))
            ranked = self._ranking.rank(combined, enhanced, context)
            if diversify:
                ranked = diversify_results(ranked, params=self._params)
        except VectorDimensionMismatch:
            raise
        except Exception as exc:
            logger.exception("Search failed for query: %r", query)
            raise SearchError(f"Search failed: {exc}") from exc

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        page = SearchPage(
            results=ranked[offset : offset + limit],
            total=len(ranked),
            query=QueryInfo(original=query, enhanced=enhanced.enhanced, processing_time_ms=elapsed_ms),
            metadata=SearchMetadata(
                semantic_results=len(semantic),
                fuzzy_results=len(fuzzy),
                exact_results=len(exact),
                filters=spec.describe(),
                intents=enhanced.intents,
            ),
        )
        logger.info(
            "Search completed: %d results in %dms (semantic=%d, fuzzy=%d, exact=%d)",
            page.total, elapsed_ms, len(semantic), len(fuzzy), len(exact),
        )
        return page

    async def _safe_retrieve(
        self,
        label: str,
        query: str,
        call: Callable[[], Awaitable[list[SearchResult]]],
    ) -> list[SearchResult]:
        """Run one retriever; any failure except a dimension mismatch yields []."""
        timeout = float(self._params["retriever_timeout_seconds"])
        try:
            async with asyncio.timeout(timeout):
                return await call()
        except VectorDimensionMismatch:
            raise
        except TimeoutError:
            logger.warning("%s retrieval timed out after %.1fs for query: %r", label, timeout, query)
        except RetrievalError as exc:
            logger.warning("%s retrieval failed for query %r: %s", label, query, exc)
        except Exception:
            logger.warning("%s retrieval failed for query: %r", label, query, exc_info=True)
        return []

    async def _resolve_context(self, scope: SearchScope, context: SearchContext | None) -> SearchContext:
        if context is not None and (context.recent_categories or context.recent_record_count):
            return context
        user_context = await self.build_user_context(scope)
        if context is None:
            return user_context
        return context.model_copy(
            update={
                "recent_categories": user_context.recent_categories,
                "recent_record_count": user_context.recent_record_count,
            }
        )

    # ------------------------------------------------------------------
    # Secondary entry points
    # ------------------------------------------------------------------

    async def semantic_search(
        self,
        query: str,
        scope: SearchScope,
        filters: SearchFilters | None = None,
        limit: int = 20,
    ) -> list[SearchResult]:
        """Semantic-only search with the looser standalone threshold."""
        if not query or not query.strip():
            return []
        spec = build_filter_spec(scope, filters)
        return await self._semantic.retrieve(
            query,
            spec,
            limit=limit,
            min_similarity=float(self._params["semantic_min_similarity_standalone"]),
        )

    async def quick_search(self, prefix: str, scope: SearchScope, limit: int = 5) -> list[SearchResult]:
        """Newest records containing ``prefix``; no enhancement or fusion."""
        needle = (prefix or "").strip()
        if len(needle) < int(self._params["quick_min_length"]):
            return []

        spec = FilterSpec(user_id=scope.user_id, text_any=(needle.lower(),))
        try:
            records = await self._store.find_candidates(spec, limit=limit)
        except Exception:
            logger.warning("Quick search failed for prefix: %r", needle, exc_info=True)
            return []

        lowered = needle.lower()
        max_chars = int(self._params["highlight_max_chars"])
        results: list[SearchResult] = []
        for record in records:
            fields = [
                name
                for name, text in (("raw_content", record.raw_content), ("summary", record.summary or ""))
                if lowered in text.lower()
            ]
            results.append(
                SearchResult(
                    record=record,
                    relevance_score=float(self._params["quick_score"]),
                    match_type=MatchType.EXACT,
                    matched_fields=fields,
                    highlight=highlight(record.display_text(), [needle], max_chars),
                )
            )
        return results

    async def browse(
        self,
        scope: SearchScope,
        filters: SearchFilters | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SearchPage:
        """Newest records matching ``filters``, without a query.

        Every result scores 1.0 and is listed as an exact match; order is
        creation time, newest first.

        Raises:
            FilterError: If ``filters`` are structurally invalid.
            SearchError: If the record store cannot be read.
        """
        spec = build_filter_spec(scope, filters)
        try:
            total = await self._store.count(spec)
            records = await self._store.find_candidates(spec, limit=offset + limit)
        except RetrievalError as exc:
            raise SearchError(f"Browse failed: {exc}") from exc

        results = [
            SearchResult(record=record, relevance_score=1.0, match_type=MatchType.EXACT)
            for record in records[offset:]
        ]
        return SearchPage(
            results=results,
            total=total,
            query=QueryInfo(original="", enhanced=""),
            metadata=SearchMetadata(filters=spec.describe()),
        )

    async def find_similar(self, record_id: str, scope: SearchScope, limit: int = 5) -> list[SearchResult]:
        """Records semantically close to ``record_id``, excluding the record itself.

        Raises:
            RecordNotFoundError: If the record is not in the caller's scope.
            SearchError: If the record store cannot be read.
        """
        try:
            source = await self._store.get(record_id, scope.user_id)
        except RetrievalError as exc:
            raise SearchError(f"Could not load record {record_id}: {exc}") from exc
        if source is None:
            raise RecordNotFoundError(record_id)

        text = source.display_text()
        if not text.strip():
            return []

        try:
            results = await self._semantic.retrieve(
                text,
                build_filter_spec(scope),
                limit=limit + 1,
                min_similarity=float(self._params["semantic_min_similarity_standalone"]),
            )
        except RetrievalError as exc:
            raise SearchError(f"Similar records unavailable for {record_id}: {exc}") from exc
        return [r for r in results if r.record_id != record_id][:limit]

    async def search_suggestions(self, scope: SearchScope, limit: int = 10) -> list[str]:
        """Frequent words across the user's completed records."""
        spec = FilterSpec(user_id=scope.user_id, include_processing=False)
        try:
            records = await self._store.find_candidates(spec, limit=int(self._params["candidate_pool_limit"]))
        except Exception:
            logger.warning("Failed to load records for suggestions", exc_info=True)
            return []

        frequency: Counter[str] = Counter()
        for record in records:
            words = {
                w
                for w in _SUGGESTION_WORD_RE.findall(record.raw_content.lower())
                if len(w) > 3 and w not in _SUGGESTION_STOPWORDS
            }
            frequency.update(words)

        ranked = sorted((w for w, n in frequency.items() if n > 1), key=lambda w: (-frequency[w], w))
        return ranked[:limit]

    def suggest_completions(self, partial: str, limit: int = 5) -> list[str]:
        return self._enhancer.generate_suggestions(partial, limit)

    async def build_user_context(self, scope: SearchScope) -> SearchContext:
        """Recent categories and record count for the enhancement prompt."""
        try:
            recent = await self._store.find_candidates(
                FilterSpec(user_id=scope.user_id), limit=_RECENT_CONTEXT_RECORDS
            )
        except Exception:
            logger.warning("Failed to build search context for user %s", scope.user_id, exc_info=True)
            return SearchContext()

        categories = list(dict.fromkeys(r.category for r in recent if r.category))
        return SearchContext(recent_categories=categories, recent_record_count=len(recent))
