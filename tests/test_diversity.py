# @TASK P2-T2.9 - Diversity reranker tests
# @TEST tests/test_diversity.py

"""Tests for near-duplicate suppression."""

from __future__ import annotations

import pytest

from tests.conftest import make_record
from vaultsearch.constants import MatchType
from vaultsearch.search.diversity import content_words, diversify, jaccard
from vaultsearch.search.params import DEFAULT_SEARCH_PARAMS
from vaultsearch.search.records import SearchResult

PARAMS = dict(DEFAULT_SEARCH_PARAMS)


def _sr(record_id: str, content: str, summary: str | None = None) -> SearchResult:
    return SearchResult(
        record=make_record(record_id, content, summary=summary),
        relevance_score=0.5,
        match_type=MatchType.FUZZY,
    )


def _distinct(count: int) -> list[SearchResult]:
    return [_sr(f"r{i}", f"topic{i} subject{i} notes{i}") for i in range(count)]


class TestWords:
    def test_short_words_are_ignored(self):
        assert content_words(_sr("a", "Pay the conta de luz today")) == frozenset({"conta", "today"})

    def test_summary_preferred(self):
        assert content_words(_sr("a", "raw words here", summary="summary text")) == frozenset({"summary", "text"})

    def test_jaccard(self):
        assert jaccard(frozenset({"a", "b"}), frozenset({"b", "c"})) == pytest.approx(1 / 3)
        assert jaccard(frozenset(), frozenset()) == 0.0


class TestDiversify:
    def test_small_lists_are_untouched(self):
        results = [_sr("a", "same words here"), _sr("b", "same words here"), _sr("c", "same words here")]
        assert diversify(results, params=PARAMS) == results

    def test_near_duplicate_moves_behind_distinct_results(self):
        results = [
            _sr("a", "electricity bill march payment"),
            _sr("b", "electricity bill march payment"),
            _sr("c", "grocery shopping list weekly"),
            _sr("d", "dentist appointment tuesday morning"),
        ]

        diversified = diversify(results, params=PARAMS)

        assert [r.record_id for r in diversified] == ["a", "c", "d", "b"]

    def test_top_result_always_kept(self):
        results = [_sr(f"r{i}", "identical content words") for i in range(6)]
        diversified = diversify(results, params=PARAMS)
        assert diversified[0].record_id == "r0"

    def test_overlap_equal_to_threshold_is_not_skipped(self):
        results = [
            _sr("a", "alpha beta gamma"),
            _sr("b", "alpha beta delta"),
            _sr("c", "zzzz yyyy xxxx"),
            _sr("d", "wwww vvvv uuuu"),
        ]
        diversified = diversify(results, threshold=0.5, params=PARAMS)
        assert [r.record_id for r in diversified] == ["a", "b", "c", "d"]

    def test_capped_at_total(self):
        diversified = diversify(_distinct(30), params=PARAMS)
        assert [r.record_id for r in diversified] == [f"r{i}" for i in range(20)]

    def test_backfill_never_duplicates(self):
        results = [_sr(f"dup{i}", "identical content words") for i in range(5)] + _distinct(3)

        diversified = diversify(results, params=PARAMS)

        ids = [r.record_id for r in diversified]
        assert len(ids) == len(set(ids)) == 8
        assert ids[:4] == ["dup0", "r0", "r1", "r2"]

    def test_threshold_from_params(self):
        results = [
            _sr("a", "alpha beta gamma"),
            _sr("b", "alpha beta delta"),
            _sr("c", "zzzz yyyy xxxx"),
            _sr("d", "wwww vvvv uuuu"),
        ]
        diversified = diversify(results, params={**PARAMS, "diversity_threshold": 0.4})
        assert [r.record_id for r in diversified] == ["a", "c", "d", "b"]
