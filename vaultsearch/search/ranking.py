# @TASK P2-T2.8 - Ranking engine (multi-signal relevance scoring)
# @TEST tests/test_ranking.py

"""Multi-signal ranking of fused results.

final = base + recency + urgency + match type + content quality
        + preferences + complexity + category, clamped to [0, 1].

Results are re-sorted by the final score with a stable sort, so ties keep
their fusion order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from datetime import datetime, timezone
from functools import lru_cache

from pydantic import BaseModel

from vaultsearch.constants import (
    CATEGORY_KEYWORDS,
    CONFIDENCE_HIGH,
    CONFIDENCE_MEDIUM,
    URGENCY_KEYWORDS,
    MatchType,
    QueryComplexity,
)
from vaultsearch.search.records import (
    EnhancedQuery,
    SearchContext,
    SearchPreferences,
    SearchResult,
    clamp_score,
)

logger = logging.getLogger(__name__)

_MATCH_TYPE_BOOST: dict[MatchType, float] = {
    MatchType.EXACT: 0.2,
    MatchType.HYBRID: 0.15,
    MatchType.SEMANTIC: 0.1,
    MatchType.FUZZY: 0.05,
}

_CATEGORY_CAP = 0.2
_SECONDS_PER_DAY = 86_400


@lru_cache(maxsize=256)
def _keyword_re(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(keyword)}", re.IGNORECASE)


def _mentions(text: str, keyword: str) -> bool:
    return _keyword_re(keyword).search(text) is not None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RankingBreakdown(BaseModel):
    """Per-signal contributions to one result's final score."""

    base: float
    recency: float
    urgency: float
    match_type: float
    content_quality: float
    preferences: float
    complexity: float
    category: float

    @property
    def total(self) -> float:
        return clamp_score(
            self.base
            + self.recency
            + self.urgency
            + self.match_type
            + self.content_quality
            + self.preferences
            + self.complexity
            + self.category
        )

    def describe(self) -> str:
        return (
            f"Base relevance: {self.base:.3f}, "
            f"Recency: +{self.recency:.3f}, "
            f"Urgency: +{self.urgency:.3f}, "
            f"Match type: +{self.match_type:.3f}, "
            f"Content quality: +{self.content_quality:.3f}, "
            f"Preferences: {self.preferences:+.3f}, "
            f"Complexity: {self.complexity:+.3f}, "
            f"Category: +{self.category:.3f}"
        )


class RankingEngine:
    """Scores and orders fused results.

    Args:
        clock: Returns the current aware datetime (injectable for tests).
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock

    def rank(
        self,
        results: Sequence[SearchResult],
        query: EnhancedQuery,
        context: SearchContext | None = None,
    ) -> list[SearchResult]:
        """Return results re-scored and sorted by final score.

        On any internal failure the input order is returned unchanged.
        """
        if not results:
            return []

        try:
            now = self._clock()
            explain = bool(context and context.explain)
            ranked: list[SearchResult] = []
            for result in results:
                breakdown = self.breakdown(result, query, context, now=now)
                scored = result.model_copy(deep=True)
                scored.relevance_score = breakdown.total
                if explain:
                    ranking_note = f"Ranking: {breakdown.describe()}"
                    scored.explanation = (
                        f"{scored.explanation}; {ranking_note}" if scored.explanation else ranking_note
                    )
                ranked.append(scored)
            ranked.sort(key=lambda r: r.relevance_score, reverse=True)
        except Exception:
            logger.exception("Ranking failed, returning fusion order")
            return list(results)

        logger.debug("Ranked %d results, top score %.3f", len(ranked), ranked[0].relevance_score)
        return ranked

    def breakdown(
        self,
        result: SearchResult,
        query: EnhancedQuery,
        context: SearchContext | None = None,
        now: datetime | None = None,
    ) -> RankingBreakdown:
        """Compute every ranking signal for one result."""
        now = now or self._clock()
        preferences = context.preferences if context else None
        return RankingBreakdown(
            base=result.relevance_score,
            recency=self._recency(result, now),
            urgency=self._urgency(result, query),
            match_type=_MATCH_TYPE_BOOST.get(result.match_type, 0.0),
            content_quality=self._content_quality(result),
            preferences=self._preferences(result, preferences, now) if preferences else 0.0,
            complexity=self._complexity(result, query),
            category=self._category(result, query),
        )

    def explain(self, result: SearchResult, query: EnhancedQuery, context: SearchContext | None = None) -> str:
        return self.breakdown(result, query, context).describe()

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    @staticmethod
    def _age_days(result: SearchResult, now: datetime) -> float:
        return (now - result.record.created_at).total_seconds() / _SECONDS_PER_DAY

    def _recency(self, result: SearchResult, now: datetime) -> float:
        days = self._age_days(result, now)
        if days <= 1:
            return 0.15
        if days <= 7:
            return 0.10
        if days <= 30:
            return 0.05
        return 0.0

    @staticmethod
    def _urgency(result: SearchResult, query: EnhancedQuery) -> float:
        level = result.record.urgency
        boost = (level - 1) * 0.05
        text = f"{query.original} {query.enhanced}"
        if level >= 3 and any(_mentions(text, k) for k in URGENCY_KEYWORDS):
            boost += 0.1
        return boost

    @staticmethod
    def _content_quality(result: SearchResult) -> float:
        record = result.record
        score = 0.0
        if record.confidence_level >= CONFIDENCE_HIGH:
            score += 0.1
        elif record.confidence_level >= CONFIDENCE_MEDIUM:
            score += 0.05
        if record.summary and len(record.summary) > 50:
            score += 0.05
        if record.entity_count > 3:
            score += 0.05
        return score

    def _preferences(self, result: SearchResult, preferences: SearchPreferences, now: datetime) -> float:
        record = result.record
        score = 0.0
        if preferences.category_weights and record.category:
            weight = preferences.category_weights.get(record.category, 1.0)
            score += (weight - 1.0) * 0.1
        if preferences.prefer_recent and self._age_days(result, now) <= 7:
            score += 0.08
        if preferences.prefer_high_urgency and record.urgency >= 3:
            score += 0.08
        return score

    @staticmethod
    def _complexity(result: SearchResult, query: EnhancedQuery) -> float:
        count = result.record.entity_count
        if query.complexity == QueryComplexity.SIMPLE:
            return 0.05 if count <= 2 else -0.02
        if query.complexity == QueryComplexity.MODERATE:
            return 0.05 if 2 <= count <= 5 else 0.0
        return 0.08 if count >= 3 else -0.02

    @staticmethod
    def _category(result: SearchResult, query: EnhancedQuery) -> float:
        if not result.record.category:
            return 0.0
        category = result.record.category.lower()
        score = 0.0

        for wanted in query.suggested_filters.categories:
            wanted = wanted.lower()
            if wanted and (wanted in category or category in wanted):
                score += 0.15
                break

        text = f"{query.original} {query.enhanced}"
        for name, keywords in CATEGORY_KEYWORDS.items():
            if name in category or category in name:
                score += 0.05 * sum(1 for k in keywords if _mentions(text, k))
                break

        return min(score, _CATEGORY_CAP)
