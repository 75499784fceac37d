# @TASK P2-T2.9 - Diversity reranker (near-duplicate suppression)
# @TEST tests/test_diversity.py

"""Push near-duplicate results down a ranked list.

Two results are near-duplicates when the Jaccard similarity of their word
sets (words longer than three characters) exceeds the threshold. The top
result is always kept.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

from vaultsearch.search.params import get_search_params
from vaultsearch.search.records import SearchResult

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\w+", re.UNICODE)


def content_words(result: SearchResult) -> frozenset[str]:
    """Word set of the summary when present, else the raw content."""
    text = (result.record.summary or result.record.raw_content).lower()
    return frozenset(w for w in _WORD_RE.findall(text) if len(w) > 3)


def jaccard(a: frozenset[str], b: frozenset[str]) -> float:
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def diversify(
    ranked: Sequence[SearchResult],
    threshold: float | None = None,
    params: dict[str, Any] | None = None,
) -> list[SearchResult]:
    """Return ``ranked`` with near-duplicates moved behind distinct results.

    Selection stops at the primary cap; the remaining slots up to the total
    cap are backfilled with leftover candidates in rank order. No record
    appears twice.
    """
    params = params or get_search_params()
    if threshold is None:
        threshold = float(params["diversity_threshold"])

    if len(ranked) < int(params["diversity_min_results"]):
        return list(ranked)

    primary_cap = min(len(ranked), int(params["diversity_primary_cap"]))
    total_cap = min(len(ranked), int(params["diversity_total_cap"]))

    selected: list[SearchResult] = [ranked[0]]
    selected_words: list[frozenset[str]] = [content_words(ranked[0])]
    skipped: list[SearchResult] = []

    for candidate in ranked[1:]:
        if len(selected) >= primary_cap:
            break
        words = content_words(candidate)
        if any(jaccard(words, seen) > threshold for seen in selected_words):
            skipped.append(candidate)
            continue
        selected.append(candidate)
        selected_words.append(words)

    if len(selected) < total_cap:
        kept_ids = {r.record_id for r in selected}
        for candidate in ranked[1:]:
            if len(selected) >= total_cap:
                break
            if candidate.record_id not in kept_ids:
                selected.append(candidate)
                kept_ids.add(candidate.record_id)

    logger.debug(
        "Diversity rerank: %d in, %d out, %d near-duplicates skipped",
        len(ranked), len(selected), len(skipped),
    )
    return selected
