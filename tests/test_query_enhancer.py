# @TASK P2-T2.6 - Query enhancement tests
# @TEST tests/test_query_enhancer.py

"""Tests for QueryEnhancer and its local helpers.

All tests use mocks -- no real language service calls are made.

Covers:
- Dictionary expansion (multilingual phrase groups, word synonyms)
- Relative date phrases and content type hints
- Complexity classification
- Language service path: valid JSON, fenced JSON, garbage, provider errors
- Cache hits, timezone handling, never-raise fallback
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.conftest import NOW, USER_ID, fixed_clock
from vaultsearch.ai_router.schemas import AIResponse, ProviderError
from vaultsearch.constants import ContentType, QueryComplexity, QueryIntent
from vaultsearch.search.cache import LRUCache
from vaultsearch.search.query_enhancer import (
    FALLBACK_CONFIDENCE,
    SIMPLE_CONFIDENCE,
    QueryEnhancer,
    classify_complexity,
    detect_content_type,
    expand_with_dictionary,
    extract_date_range,
    extract_json_object,
    is_simple_query,
)
from vaultsearch.search.records import SearchContext, SearchScope

SCOPE = SearchScope(user_id=USER_ID)
TODAY = NOW.date()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_router(content: str | None = None, side_effect=None) -> MagicMock:
    """Build a mock AIRouter with one provider."""
    router = MagicMock()
    router.has_providers.return_value = True
    if side_effect is not None:
        router.chat = AsyncMock(side_effect=side_effect)
    else:
        router.chat = AsyncMock(
            return_value=AIResponse(content=content or "", model="test-model", provider="test")
        )
    return router


def _make_enhancer(router=None, **kwargs) -> QueryEnhancer:
    return QueryEnhancer(router, cache=LRUCache(maxsize=16), clock=fixed_clock(), **kwargs)


# ---------------------------------------------------------------------------
# Local helpers
# ---------------------------------------------------------------------------


class TestDictionaryExpansion:
    def test_electricity_bill_bridges_to_portuguese(self):
        expanded = expand_with_dictionary("electricity bill")
        assert expanded.startswith("electricity bill")
        words = expanded.split()
        assert "conta" in words
        assert "luz" in words
        assert "fatura" in words

    def test_portuguese_phrase_bridges_to_english(self):
        words = expand_with_dictionary("conta de luz").split()
        assert "electricity" in words
        assert "bill" in words

    def test_word_synonyms_are_capped(self):
        expanded = expand_with_dictionary("meeting")
        assert expanded == "meeting call appointment"

    def test_no_duplicate_terms(self):
        words = expand_with_dictionary("bill invoice").split()
        assert len(words) == len(set(words))

    def test_unknown_query_is_unchanged(self):
        assert expand_with_dictionary("  zebra  ") == "zebra"


class TestDateRange:
    def test_today(self):
        assert extract_date_range("notes from today", TODAY).model_dump() == {
            "date_from": TODAY,
            "date_to": TODAY,
        }

    def test_yesterday(self):
        rng = extract_date_range("yesterday", TODAY)
        assert rng.date_from == rng.date_to == date(2026, 3, 14)

    def test_last_week(self):
        rng = extract_date_range("last week receipts", TODAY)
        assert rng.date_from == date(2026, 3, 1)
        assert rng.date_to == date(2026, 3, 8)

    def test_this_month(self):
        rng = extract_date_range("this month", TODAY)
        assert rng.date_from == date(2026, 3, 1)
        assert rng.date_to == TODAY

    def test_last_month(self):
        rng = extract_date_range("last month", TODAY)
        assert rng.date_from == date(2026, 2, 1)
        assert rng.date_to == date(2026, 2, 28)

    def test_word_boundary(self):
        assert extract_date_range("todays", TODAY) is None


class TestHelpers:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("voice notes", ContentType.VOICE),
            ("photos from the trip", ContentType.IMAGE),
            ("emails", ContentType.EMAIL),
            ("groceries", None),
        ],
    )
    def test_detect_content_type(self, query, expected):
        assert detect_content_type(query) == expected

    def test_is_simple_query(self):
        assert is_simple_query("luz")
        assert not is_simple_query("electricity")
        assert not is_simple_query("two words")
        assert not is_simple_query("how")

    def test_classify_complexity(self):
        assert classify_complexity("bills", []) == QueryComplexity.SIMPLE
        assert classify_complexity("bills today", ["temporal_search"]) == QueryComplexity.MODERATE
        assert classify_complexity("what did I pay", []) == QueryComplexity.COMPLEX
        assert classify_complexity("one two three four five six", []) == QueryComplexity.COMPLEX

    def test_extract_json_object_prefers_fenced_block(self):
        text = 'Sure! {"junk": 1\n```json\n{"enhanced": "a b c"}\n```'
        assert extract_json_object(text) == {"enhanced": "a b c"}

    def test_extract_json_object_from_prose(self):
        assert extract_json_object('Result: {"enhanced": "x y z", "intents": []} done') == {
            "enhanced": "x y z",
            "intents": [],
        }

    def test_extract_json_object_none(self):
        assert extract_json_object("no json here {") is None


# ---------------------------------------------------------------------------
# QueryEnhancer
# ---------------------------------------------------------------------------


class TestEnhanceLocal:
    @pytest.mark.asyncio
    async def test_without_router_uses_dictionary(self):
        enhancer = _make_enhancer()
        result = await enhancer.enhance("electricity bill", SCOPE)
        assert result.original == "electricity bill"
        assert "luz" in result.enhanced.split()
        assert result.confidence == SIMPLE_CONFIDENCE

    @pytest.mark.asyncio
    async def test_today_sets_single_day_range(self):
        enhancer = _make_enhancer()
        result = await enhancer.enhance("today", SCOPE)
        rng = result.suggested_filters.date_range
        assert rng is not None
        assert rng.date_from == rng.date_to == TODAY
        assert QueryIntent.TEMPORAL_SEARCH.value in result.intents

    @pytest.mark.asyncio
    async def test_today_follows_context_timezone(self):
        enhancer = _make_enhancer()
        result = await enhancer.enhance("today", SCOPE, SearchContext(timezone="Pacific/Auckland"))
        assert result.suggested_filters.date_range.date_from == date(2026, 3, 16)

    def test_unknown_timezone_falls_back_to_utc(self):
        enhancer = _make_enhancer()
        name, tz = enhancer.resolve_timezone(SearchContext(timezone="Mars/Olympus"))
        assert name == "UTC"
        assert tz is timezone.utc

    @pytest.mark.asyncio
    async def test_content_type_hint(self):
        enhancer = _make_enhancer()
        result = await enhancer.enhance("voice memos", SCOPE)
        assert result.suggested_filters.content_types == [ContentType.VOICE]
        assert QueryIntent.CONTENT_TYPE_FILTER.value in result.intents

    @pytest.mark.asyncio
    async def test_blank_query(self):
        enhancer = _make_enhancer()
        result = await enhancer.enhance("   ", SCOPE)
        assert result.enhanced == ""

    @pytest.mark.asyncio
    async def test_never_raises(self):
        enhancer = _make_enhancer()
        with patch(
            "vaultsearch.search.query_enhancer.expand_with_dictionary",
            side_effect=RuntimeError("boom"),
        ):
            result = await enhancer.enhance("electricity bill", SCOPE)
        assert result.enhanced == "electricity bill"
        assert result.confidence == FALLBACK_CONFIDENCE


class TestEnhanceWithAI:
    @pytest.mark.asyncio
    async def test_valid_payload_is_used(self):
        router = _make_router(
            '{"enhanced": "dentist appointment doctor", "intents": ["appointment"], '
            '"filters": {"contentTypes": ["voice", "hologram"], "categories": ["health"], '
            '"dateRange": {"from": "2026-03-01", "to": "2026-03-10"}}, "confidence": 0.9}'
        )
        enhancer = _make_enhancer(router)

        result = await enhancer.enhance("when is my dentist appointment", SCOPE)

        assert result.enhanced.startswith("when is my dentist appointment")
        assert "doctor" in result.enhanced
        assert result.intents == ["appointment"]
        assert result.suggested_filters.content_types == [ContentType.VOICE]
        assert result.suggested_filters.categories == ["health"]
        assert result.suggested_filters.date_range.date_from == date(2026, 3, 1)
        assert result.confidence == pytest.approx(0.9)
        assert result.complexity == QueryComplexity.COMPLEX
        router.chat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fenced_payload(self):
        router = _make_router('Here you go:\n```json\n{"enhanced": "power bill electricity"}\n```')
        enhancer = _make_enhancer(router)
        result = await enhancer.enhance("power bill", SCOPE)
        assert "electricity" in result.enhanced

    @pytest.mark.asyncio
    async def test_garbage_response_falls_back_to_dictionary(self):
        enhancer = _make_enhancer(_make_router("I cannot help with that."))
        result = await enhancer.enhance("electricity bill", SCOPE)
        assert "luz" in result.enhanced.split()
        assert result.confidence == SIMPLE_CONFIDENCE

    @pytest.mark.asyncio
    async def test_provider_error_falls_back_to_dictionary(self):
        router = _make_router(side_effect=ProviderError(provider="test", message="down", status_code=503))
        enhancer = _make_enhancer(router)
        result = await enhancer.enhance("electricity bill", SCOPE)
        assert "luz" in result.enhanced.split()

    @pytest.mark.asyncio
    async def test_payload_with_markup_keeps_original(self):
        enhancer = _make_enhancer(_make_router('{"enhanced": "{oops}", "confidence": 0.8}'))
        result = await enhancer.enhance("electricity bill", SCOPE)
        assert result.enhanced == "electricity bill"

    @pytest.mark.asyncio
    async def test_inverted_date_hint_is_dropped(self):
        enhancer = _make_enhancer(
            _make_router('{"enhanced": "bills paid", "filters": {"dateRange": {"from": "2026-03-10", "to": "2026-03-01"}}}')
        )
        result = await enhancer.enhance("bills paid", SCOPE)
        assert result.suggested_filters.date_range is None

    @pytest.mark.asyncio
    async def test_simple_query_skips_router(self):
        router = _make_router('{"enhanced": "never used"}')
        enhancer = _make_enhancer(router)
        await enhancer.enhance("luz", SCOPE)
        router.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_router_without_providers_is_skipped(self):
        router = _make_router('{"enhanced": "never used"}')
        router.has_providers.return_value = False
        enhancer = _make_enhancer(router)
        result = await enhancer.enhance("electricity bill", SCOPE)
        router.chat.assert_not_awaited()
        assert "luz" in result.enhanced.split()


class TestCache:
    @pytest.mark.asyncio
    async def test_repeated_query_hits_cache(self):
        router = _make_router('{"enhanced": "power bill electricity"}')
        enhancer = _make_enhancer(router)

        first = await enhancer.enhance("power bill", SCOPE)
        second = await enhancer.enhance("  Power   BILL ", SCOPE)

        assert first.enhanced == second.enhanced
        router.chat.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cache_is_per_user(self):
        router = _make_router('{"enhanced": "power bill electricity"}')
        enhancer = _make_enhancer(router)

        await enhancer.enhance("power bill", SCOPE)
        await enhancer.enhance("power bill", SearchScope(user_id="user-2"))

        assert router.chat.await_count == 2

    @pytest.mark.asyncio
    async def test_relative_dates_roll_over_at_midnight(self):
        now = [datetime(2026, 3, 15, 23, 58, tzinfo=timezone.utc)]
        enhancer = QueryEnhancer(cache=LRUCache(maxsize=16), clock=lambda: now[0], default_timezone="UTC")

        before = await enhancer.enhance("today", SCOPE)
        now[0] += timedelta(minutes=4)
        after = await enhancer.enhance("today", SCOPE)

        assert before.suggested_filters.date_range.date_from == date(2026, 3, 15)
        assert after.suggested_filters.date_range.date_from == date(2026, 3, 16)
        assert after.suggested_filters.date_range.date_to == date(2026, 3, 16)

    @pytest.mark.asyncio
    async def test_cached_result_is_a_copy(self):
        enhancer = _make_enhancer()
        first = await enhancer.enhance("electricity bill", SCOPE)
        first.intents.append("mutated")
        second = await enhancer.enhance("electricity bill", SCOPE)
        assert "mutated" not in second.intents


class TestSuggestions:
    def test_matching_suggestions(self):
        enhancer = _make_enhancer()
        assert enhancer.generate_suggestions("week") == ["last week"]

    def test_short_partial(self):
        enhancer = _make_enhancer()
        assert enhancer.generate_suggestions("t") == []

    def test_limit(self):
        enhancer = _make_enhancer()
        assert len(enhancer.generate_suggestions("e", limit=3)) == 0
        assert len(enhancer.generate_suggestions("es", limit=2)) == 2

