# @TASK P2-T2.7 - Result fusion (dedupe semantic / fuzzy / exact)
# @TEST tests/test_fusion.py

"""Merge per-strategy result lists into one deduplicated list.

Semantic results seed the list. A fuzzy hit on an existing record keeps the
higher score; an exact hit adds a fixed boost. Any record seen by two or
more strategies becomes ``hybrid``. Inputs are copied, never mutated, and
first-seen order is preserved.
"""

from __future__ import annotations

from collections.abc import Sequence

from vaultsearch.constants import MatchType
from vaultsearch.search.records import SearchResult

DEFAULT_EXACT_BOOST = 0.2


class _Fused:
    __slots__ = ("result", "strategies", "explanations")

    def __init__(self, result: SearchResult) -> None:
        self.result = result.model_copy(deep=True)
        self.strategies = {result.match_type}
        self.explanations = [result.explanation] if result.explanation else []

    def absorb(self, incoming: SearchResult, score: float) -> None:
        current = self.result
        self.strategies.add(incoming.match_type)
        current.relevance_score = score
        current.matched_fields = current.matched_fields + incoming.matched_fields
        if not current.highlight and incoming.highlight:
            current.highlight = incoming.highlight
        if incoming.explanation and incoming.explanation not in self.explanations:
            self.explanations.append(incoming.explanation)

    def finish(self) -> SearchResult:
        if len(self.strategies) >= 2:
            self.result.match_type = MatchType.HYBRID
        self.result.explanation = "; ".join(self.explanations) or None
        return self.result


def fuse(
    semantic: Sequence[SearchResult],
    fuzzy: Sequence[SearchResult],
    exact: Sequence[SearchResult],
    exact_boost: float = DEFAULT_EXACT_BOOST,
) -> list[SearchResult]:
    """Combine the three strategy lists. Deterministic for equal inputs."""
    merged: dict[str, _Fused] = {}

    for result in semantic:
        if result.record_id in merged:
            entry = merged[result.record_id]
            entry.absorb(result, max(entry.result.relevance_score, result.relevance_score))
        else:
            merged[result.record_id] = _Fused(result)

    for result in fuzzy:
        entry = merged.get(result.record_id)
        if entry is None:
            merged[result.record_id] = _Fused(result)
            continue
        entry.absorb(result, max(entry.result.relevance_score, result.relevance_score))

    for result in exact:
        entry = merged.get(result.record_id)
        if entry is None:
            merged[result.record_id] = _Fused(result)
            continue
        entry.absorb(result, min(1.0, entry.result.relevance_score + exact_boost))

    return [entry.finish() for entry in merged.values()]
