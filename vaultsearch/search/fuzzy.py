# @TASK P2-T2.5 - Fuzzy retriever (typo-tolerant token matching)
# @TEST tests/test_fuzzy.py

"""Fuzzy retrieval: per-term containment with Levenshtein fallback.

Each query term scores 1.0 when found in the raw content, 0.9 in the
summary, 0.7 in the category or entities. Otherwise the closest word in
those fields is used if its edit similarity exceeds 0.6, at a 0.8 penalty.
The record score is ``mean(term scores) * coverage``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from vaultsearch.constants import MatchType, RetrievalStrategy
from vaultsearch.search.filters import FilterSpec
from vaultsearch.search.highlight import window_highlight
from vaultsearch.search.params import get_search_params
from vaultsearch.search.records import SearchableRecord, SearchResult
from vaultsearch.search.store import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_FIELDS: tuple[str, ...] = ("raw_content", "summary", "entities")

_FIELD_WEIGHTS = {"raw_content": 1.0, "summary": 0.9, "category": 0.7, "entities": 0.7}
_NON_WORD_RE = re.compile(r"[^\w]", re.UNICODE)
_WORD_RE = re.compile(r"\w+", re.UNICODE)
_EARLY_EXIT_SIMILARITY = 0.85


def normalize_query(query: str) -> list[str]:
    """Lowercase, split on whitespace, strip non-word characters, keep 2+ chars."""
    terms: list[str] = []
    for raw in query.lower().split():
        term = _NON_WORD_RE.sub("", raw)
        if len(term) > 1:
            terms.append(term)
    return terms


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute) between two strings."""
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def levenshtein_similarity(a: str, b: str) -> float:
    """``1 - distance / len(longer)``; 1.0 for two empty strings."""
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


@dataclass
class FuzzyMatch:
    score: float
    matched_terms: list[str] = field(default_factory=list)
    matched_fields: list[str] = field(default_factory=list)
    highlight_words: list[str] = field(default_factory=list)


def _field_texts(record: SearchableRecord, fields: Sequence[str]) -> dict[str, str]:
    texts: dict[str, str] = {}
    for name in fields:
        if name == "raw_content":
            texts[name] = record.raw_content.lower()
        elif name == "summary":
            texts[name] = (record.summary or "").lower()
        elif name == "category":
            texts[name] = (record.category or "").lower()
        elif name == "entities":
            texts[name] = record.entity_text()
    return texts


def score_record(
    record: SearchableRecord,
    terms: Sequence[str],
    fields: Sequence[str] = DEFAULT_FIELDS,
    word_similarity: float = 0.6,
    word_weight: float = 0.8,
) -> FuzzyMatch:
    """Score one record against normalized query terms."""
    if not terms:
        return FuzzyMatch(score=0.0)

    texts = _field_texts(record, fields)
    words: list[str] | None = None
    result = FuzzyMatch(score=0.0)
    total = 0.0

    for term in terms:
        term_score = 0.0
        for name, text in texts.items():
            if text and term in text and _FIELD_WEIGHTS[name] > term_score:
                term_score = _FIELD_WEIGHTS[name]
                if name not in result.matched_fields:
                    result.matched_fields.append(name)
        if term_score > 0:
            result.matched_terms.append(term)
            result.highlight_words.append(term)
            total += term_score
            continue

        if words is None:
            words = sorted({w for text in texts.values() for w in _WORD_RE.findall(text) if len(w) >= 2})
        best_word, best = "", 0.0
        for word in words:
            similarity = levenshtein_similarity(term, word)
            if similarity > best:
                best_word, best = word, similarity
                if best > _EARLY_EXIT_SIMILARITY:
                    break
        if best > word_similarity:
            result.matched_terms.append(term)
            result.highlight_words.append(best_word)
            total += best * word_weight
            for name, text in texts.items():
                if best_word in text and name not in result.matched_fields:
                    result.matched_fields.append(name)

    coverage = len(result.matched_terms) / len(terms)
    result.score = min(1.0, (total / len(terms)) * coverage)
    return result


class FuzzyRetriever:
    """Typo-tolerant retriever over a bounded candidate pool."""

    strategy = RetrievalStrategy.FUZZY

    def __init__(self, store: RecordStore, params: dict[str, Any] | None = None) -> None:
        self._store = store
        self._params = params or get_search_params()

    async def retrieve(
        self,
        query_text: str,
        spec: FilterSpec,
        fields: Sequence[str] = DEFAULT_FIELDS,
        min_score: float | None = None,
        limit: int | None = None,
    ) -> list[SearchResult]:
        terms = normalize_query(query_text or "")
        if not terms:
            return []

        limit = limit or int(self._params["fuzzy_limit"])
        threshold = float(min_score) if min_score is not None else float(self._params["fuzzy_min_score"])
        max_chars = int(self._params["highlight_max_chars"])

        candidates = await self._store.find_candidates(spec, limit=int(self._params["candidate_pool_limit"]))

        results: list[SearchResult] = []
        for record in candidates:
            match = score_record(
                record,
                terms,
                fields,
                word_similarity=float(self._params["fuzzy_word_similarity"]),
                word_weight=float(self._params["fuzzy_word_weight"]),
            )
            if match.score < threshold:
                continue
            source = record.raw_content or record.summary or ""
            results.append(
                SearchResult(
                    record=record,
                    relevance_score=match.score,
                    match_type=MatchType(self.strategy),
                    matched_fields=match.matched_fields,
                    highlight=window_highlight(source, match.highlight_words, max_chars=max_chars) or None,
                    explanation=f"Fuzzy match: {', '.join(match.matched_terms[:5])}",
                )
            )

        results.sort(key=lambda r: r.relevance_score, reverse=True)
        logger.debug(
            "Fuzzy retrieval: %d terms, %d candidates, %d above %.2f",
            len(terms), len(candidates), len(results), threshold,
        )
        return results[:limit]
