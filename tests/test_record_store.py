# @TASK P2-T2.2 - Record store adapter tests
# @TEST tests/test_record_store.py

"""Tests for the record store adapters.

The SQLAlchemy adapter is exercised by compiling statements against the
PostgreSQL dialect and by mocking the session -- no database required.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from tests.conftest import NOW, USER_ID, make_record
from vaultsearch.models import Category, Dump
from vaultsearch.search.errors import RetrievalError
from vaultsearch.search.filters import FilterSpec
from vaultsearch.search.store import (
    InMemoryRecordStore,
    SQLAlchemyRecordStore,
    apply_filter_spec,
    dump_to_record,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _compile(spec: FilterSpec):
    stmt = apply_filter_spec(select(Dump), spec)
    return stmt.compile(dialect=postgresql.dialect())


def _make_dump(**overrides) -> Dump:
    fields = {
        "id": uuid.UUID("00000000-0000-0000-0000-000000000001"),
        "user_id": USER_ID,
        "raw_content": "Conta de luz",
        "content_type": "voice",
        "ai_summary": "Electricity bill for March",
        "ai_confidence": 4,
        "urgency_level": 3,
        "processing_status": "completed",
        "extracted_entities": {"amount": "R$ 120", "company": ["Enel"]},
        "content_vector": [0.1, 0.2],
        "created_at": datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc),
    }
    fields.update(overrides)
    return Dump(**fields)


def _make_session_factory(dumps=None, error: Exception | None = None):
    """Build a mock async_sessionmaker whose session returns ``dumps``."""
    result = MagicMock()
    result.unique.return_value.scalars.return_value.all.return_value = dumps or []
    result.unique.return_value.scalar_one_or_none.return_value = (dumps or [None])[0]

    session = MagicMock()
    session.execute = AsyncMock(side_effect=error) if error else AsyncMock(return_value=result)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=session)
    context.__aexit__ = AsyncMock(return_value=False)
    return MagicMock(return_value=context), session


# ---------------------------------------------------------------------------
# apply_filter_spec
# ---------------------------------------------------------------------------


class TestApplyFilterSpec:
    def test_scope_only(self):
        compiled = _compile(FilterSpec(user_id=USER_ID))
        sql = str(compiled)
        assert "dumps.user_id = %(user_id_1)s" in sql
        assert compiled.params["user_id_1"] == USER_ID
        assert "content_type" not in sql.split("WHERE", 1)[1]

    def test_structural_predicates(self):
        spec = FilterSpec(
            user_id=USER_ID,
            content_types=("voice",),
            categories=("bills",),
            date_from=datetime(2026, 3, 1, tzinfo=timezone.utc),
            date_to=datetime(2026, 3, 31, tzinfo=timezone.utc),
            min_confidence=3,
            urgency_levels=(3, 4),
        )

        where = str(_compile(spec)).split("WHERE", 1)[1]

        assert "dumps.content_type IN" in where
        assert "categories.name IN" in where
        assert "dumps.created_at >=" in where
        assert "dumps.created_at <=" in where
        assert "dumps.ai_confidence >=" in where
        assert "dumps.urgency_level IN" in where

    def test_completed_only(self):
        compiled = _compile(FilterSpec(user_id=USER_ID, include_processing=False))
        assert "dumps.processing_status =" in str(compiled)
        assert "completed" in compiled.params.values()

    def test_include_processing_none_adds_no_status_filter(self):
        assert "processing_status" not in str(_compile(FilterSpec(user_id=USER_ID))).split("WHERE", 1)[1]

    def test_require_embedding(self):
        sql = str(_compile(FilterSpec(user_id=USER_ID, require_embedding=True)))
        assert "dumps.content_vector IS NOT NULL" in sql

    def test_text_any_is_escaped(self):
        compiled = _compile(FilterSpec(user_id=USER_ID, text_any=("50%_off",)))
        sql = str(compiled)
        assert "ILIKE" in sql.upper()
        assert "%50\\%\\_off%" in compiled.params.values()


# ---------------------------------------------------------------------------
# dump_to_record
# ---------------------------------------------------------------------------


class TestDumpToRecord:
    def test_maps_columns(self):
        record = dump_to_record(_make_dump(category=Category(user_id=USER_ID, name="bills")))

        assert record.id == "00000000-0000-0000-0000-000000000001"
        assert record.summary == "Electricity bill for March"
        assert record.category == "bills"
        assert record.confidence == 4
        assert record.entities == {"amount": ["R$ 120"], "company": ["Enel"]}
        assert record.embedding == [0.1, 0.2]

    def test_nullable_columns(self):
        record = dump_to_record(
            _make_dump(ai_summary=None, extracted_entities=None, content_vector=None, raw_content=None)
        )
        assert record.summary is None
        assert record.category is None
        assert record.entities == {}
        assert record.embedding is None
        assert record.raw_content == ""


# ---------------------------------------------------------------------------
# SQLAlchemyRecordStore (mocked session)
# ---------------------------------------------------------------------------


class TestSQLAlchemyRecordStore:
    @pytest.mark.asyncio
    async def test_find_candidates(self):
        factory, session = _make_session_factory([_make_dump()])

        records = await SQLAlchemyRecordStore(factory).find_candidates(FilterSpec(user_id=USER_ID), limit=5)

        assert [r.raw_content for r in records] == ["Conta de luz"]
        stmt = session.execute.call_args.args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect()))
        assert "ORDER BY dumps.created_at DESC" in sql
        assert "LIMIT" in sql

    @pytest.mark.asyncio
    async def test_database_error_becomes_retrieval_error(self):
        factory, _ = _make_session_factory(error=OperationalError("SELECT", {}, Exception("gone")))

        with pytest.raises(RetrievalError):
            await SQLAlchemyRecordStore(factory).find_candidates(FilterSpec(user_id=USER_ID))

    @pytest.mark.asyncio
    async def test_get(self):
        factory, _ = _make_session_factory([_make_dump()])
        record = await SQLAlchemyRecordStore(factory).get("00000000-0000-0000-0000-000000000001", USER_ID)
        assert record is not None
        assert record.user_id == USER_ID

    @pytest.mark.asyncio
    async def test_get_database_error_becomes_retrieval_error(self):
        factory, _ = _make_session_factory(error=OperationalError("SELECT", {}, Exception("gone")))

        with pytest.raises(RetrievalError):
            await SQLAlchemyRecordStore(factory).get("00000000-0000-0000-0000-000000000001", USER_ID)

    @pytest.mark.asyncio
    async def test_get_invalid_id(self):
        factory, session = _make_session_factory()
        assert await SQLAlchemyRecordStore(factory).get("not-a-uuid", USER_ID) is None
        session.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_count_applies_filters(self):
        factory, session = _make_session_factory()
        session.execute.return_value.scalar_one.return_value = 7

        spec = FilterSpec(user_id=USER_ID, categories=("bills",))
        assert await SQLAlchemyRecordStore(factory).count(spec) == 7

        sql = str(session.execute.call_args.args[0].compile(dialect=postgresql.dialect()))
        assert "count(*)" in sql
        assert "dumps.user_id" in sql
        assert "categories.name IN" in sql

    @pytest.mark.asyncio
    async def test_count_database_error_becomes_retrieval_error(self):
        factory, _ = _make_session_factory(error=OperationalError("SELECT", {}, Exception("gone")))

        with pytest.raises(RetrievalError):
            await SQLAlchemyRecordStore(factory).count(FilterSpec(user_id=USER_ID))


# ---------------------------------------------------------------------------
# InMemoryRecordStore
# ---------------------------------------------------------------------------


class TestInMemoryRecordStore:
    @pytest.mark.asyncio
    async def test_newest_first_and_limit(self):
        store = InMemoryRecordStore(
            [make_record("old", age_days=5), make_record("new", age_days=1), make_record("mid", age_days=3)]
        )

        records = await store.find_candidates(FilterSpec(user_id=USER_ID), limit=2)

        assert [r.id for r in records] == ["new", "mid"]

    @pytest.mark.asyncio
    async def test_ties_broken_by_id(self):
        store = InMemoryRecordStore([make_record("b", created_at=NOW), make_record("a", created_at=NOW)])
        records = await store.find_candidates(FilterSpec(user_id=USER_ID))
        assert [r.id for r in records] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_get_respects_scope(self):
        store = InMemoryRecordStore([make_record("a", user_id="someone-else")])
        assert await store.get("a", USER_ID) is None
        assert await store.get("a", "someone-else") is not None

    @pytest.mark.asyncio
    async def test_count(self):
        store = InMemoryRecordStore(
            [make_record("a", category="bills"), make_record("b"), make_record("c", user_id="someone-else")]
        )
        assert await store.count(FilterSpec(user_id=USER_ID)) == 2
        assert await store.count(FilterSpec(user_id=USER_ID, categories=("bills",))) == 1

    @pytest.mark.asyncio
    async def test_add(self, store):
        store.add(make_record("a"))
        assert (await store.get("a", USER_ID)).id == "a"
