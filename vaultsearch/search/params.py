"""Centralized search parameter management.

All search algorithm parameters (similarity thresholds, per-strategy
limits, fusion and diversity constants) live in one dict and can be tuned
through the ``SEARCH_PARAMS`` setting without code changes.

Usage in retrievers::

    from vaultsearch.search.params import get_search_params
    params = get_search_params()
    threshold = params["semantic_min_similarity_hybrid"]
"""

from __future__ import annotations

from typing import Any

DEFAULT_SEARCH_PARAMS: dict[str, float | int] = {
    # Semantic
    "semantic_min_similarity_hybrid": 0.7,
    "semantic_min_similarity_standalone": 0.3,
    "semantic_limit": 50,
    "semantic_summary_bonus": 0.1,
    "semantic_recent_bonus": 0.05,
    "semantic_recent_days": 7,
    # Fuzzy
    "fuzzy_min_score": 0.6,
    "fuzzy_limit": 30,
    "fuzzy_word_similarity": 0.6,
    "fuzzy_word_weight": 0.8,
    # Exact
    "exact_limit": 20,
    "exact_min_term_length": 3,
    "exact_summary_weight": 0.8,
    "highlight_max_chars": 300,
    # Fusion
    "exact_fusion_boost": 0.2,
    # Diversity
    "diversity_threshold": 0.85,
    "diversity_min_results": 4,
    "diversity_primary_cap": 15,
    "diversity_total_cap": 20,
    # Quick search
    "quick_min_length": 2,
    "quick_score": 0.8,
    # Store / coordinator
    "candidate_pool_limit": 1000,
    "retriever_timeout_seconds": 10.0,
}


def get_search_params() -> dict[str, Any]:
    """Return current search parameters, merging configured overrides with defaults.

    Unknown keys in ``SEARCH_PARAMS`` are ignored.
    """
    from vaultsearch.config import get_settings

    saved: dict[str, Any] = get_settings().SEARCH_PARAMS
    merged = {**DEFAULT_SEARCH_PARAMS}
    if isinstance(saved, dict):
        for key in DEFAULT_SEARCH_PARAMS:
            if key in saved:
                merged[key] = saved[key]
    return merged
