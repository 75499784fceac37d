# @TASK P2-T2.5 - Exact retriever (literal substring matching)
# @TEST tests/test_exact.py

"""Exact retrieval: case-insensitive substring matching with highlights."""

from __future__ import annotations

import logging
from typing import Any

from vaultsearch.constants import MatchType, RetrievalStrategy
from vaultsearch.search.filters import FilterSpec
from vaultsearch.search.highlight import highlight
from vaultsearch.search.params import get_search_params
from vaultsearch.search.records import SearchableRecord, SearchResult
from vaultsearch.search.store import RecordStore

logger = logging.getLogger(__name__)


def exact_terms(query: str, min_length: int = 3) -> list[str]:
    """Lowercase whitespace tokens of at least ``min_length`` chars, de-duplicated."""
    return list(dict.fromkeys(t for t in query.lower().split() if len(t) >= min_length))


def score_exact(record: SearchableRecord, terms: list[str], summary_weight: float = 0.8) -> tuple[float, list[str], list[str]]:
    """Return ``(score, matched_terms, matched_fields)`` for one record.

    Each term adds 1.0 when in the raw content and ``summary_weight`` when
    in the summary; the sum is divided by the term count and capped at 1.
    """
    if not terms:
        return 0.0, [], []

    content = record.raw_content.lower()
    summary = (record.summary or "").lower()
    total = 0.0
    matched_terms: list[str] = []
    fields: list[str] = []

    for term in terms:
        in_content = term in content
        in_summary = bool(summary) and term in summary
        if in_content:
            total += 1.0
            if "raw_content" not in fields:
                fields.append("raw_content")
        if in_summary:
            total += summary_weight
            if "summary" not in fields:
                fields.append("summary")
        if in_content or in_summary:
            matched_terms.append(term)

    return min(1.0, total / len(terms)), matched_terms, fields


class ExactRetriever:
    """Literal term matcher. A record qualifies when any term appears."""

    strategy = RetrievalStrategy.EXACT

    def __init__(self, store: RecordStore, params: dict[str, Any] | None = None) -> None:
        self._store = store
        self._params = params or get_search_params()

    async def retrieve(
        self,
        query_text: str,
        spec: FilterSpec,
        limit: int | None = None,
    ) -> list[SearchResult]:
        terms = exact_terms(query_text or "", int(self._params["exact_min_term_length"]))
        if not terms:
            return []

        limit = limit or int(self._params["exact_limit"])
        max_chars = int(self._params["highlight_max_chars"])
        summary_weight = float(self._params["exact_summary_weight"])

        candidates = await self._store.find_candidates(
            spec.derive(text_any=terms),
            limit=int(self._params["candidate_pool_limit"]),
        )

        results: list[SearchResult] = []
        for record in candidates:
            score, matched_terms, fields = score_exact(record, terms, summary_weight)
            if not matched_terms:
                continue
            source = record.raw_content if "raw_content" in fields else record.summary or ""
            results.append(
                SearchResult(
                    record=record,
                    relevance_score=score,
                    match_type=MatchType(self.strategy),
                    matched_fields=fields,
                    highlight=highlight(source, matched_terms, max_chars),
                    explanation=f"Exact match: {len(matched_terms)}/{len(terms)} terms",
                )
            )

        results.sort(key=lambda r: r.relevance_score, reverse=True)
        logger.debug("Exact retrieval: %d terms, %d matches", len(terms), len(results))
        return results[:limit]
