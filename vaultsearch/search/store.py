# @TASK P2-T2.2 - Record store adapters
# @TEST tests/test_record_store.py

"""Candidate retrieval for the search core.

``RecordStore`` is the only way the pipeline reads data. The SQLAlchemy
adapter opens a fresh session for every call, so the three retrievers can
query concurrently without sharing a session.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Protocol

from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from vaultsearch.constants import ProcessingStatus
from vaultsearch.models import Category, Dump
from vaultsearch.search.errors import RetrievalError
from vaultsearch.search.filters import FilterSpec
from vaultsearch.search.records import SearchableRecord

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Filtered access to a user's records."""

    async def find_candidates(self, spec: FilterSpec, limit: int | None = None) -> list[SearchableRecord]:
        """Return records matching ``spec``, newest first."""
        ...

    async def get(self, record_id: str, user_id: str) -> SearchableRecord | None:
        """Return one record within the user's scope, or ``None``."""
        ...

    async def count(self, spec: FilterSpec) -> int:
        """Number of records matching ``spec``."""
        ...


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def dump_to_record(dump: Dump) -> SearchableRecord:
    """Convert an ORM ``Dump`` into the read-only record the core consumes."""
    vector = dump.content_vector
    return SearchableRecord(
        id=str(dump.id),
        user_id=dump.user_id,
        raw_content=dump.raw_content or "",
        summary=dump.ai_summary,
        category=dump.category.name if dump.category else None,
        content_type=dump.content_type,
        processing_status=dump.processing_status,
        created_at=dump.created_at,
        urgency_level=dump.urgency_level,
        confidence=dump.ai_confidence,
        entities=dump.extracted_entities or {},
        embedding=[float(x) for x in vector] if vector is not None else None,
    )


def apply_filter_spec(stmt: Select, spec: FilterSpec) -> Select:
    """Compile a ``FilterSpec`` into WHERE clauses on a ``Dump`` select."""
    stmt = stmt.where(Dump.user_id == spec.user_id)

    if spec.content_types:
        stmt = stmt.where(Dump.content_type.in_([str(ct) for ct in spec.content_types]))
    if spec.categories:
        stmt = stmt.where(Dump.category.has(Category.name.in_(spec.categories)))
    if spec.date_from is not None:
        stmt = stmt.where(Dump.created_at >= spec.date_from)
    if spec.date_to is not None:
        stmt = stmt.where(Dump.created_at <= spec.date_to)
    if spec.min_confidence is not None:
        stmt = stmt.where(Dump.ai_confidence >= spec.min_confidence)
    if spec.urgency_levels:
        stmt = stmt.where(Dump.urgency_level.in_(spec.urgency_levels))
    if spec.include_processing is False:
        stmt = stmt.where(Dump.processing_status == ProcessingStatus.COMPLETED.value)
    if spec.require_embedding:
        stmt = stmt.where(Dump.content_vector.is_not(None))
    if spec.text_any:
        clauses = []
        for term in spec.text_any:
            pattern = f"%{_escape_like(term)}%"
            clauses.append(Dump.raw_content.ilike(pattern, escape="\\"))
            clauses.append(Dump.ai_summary.ilike(pattern, escape="\\"))
        stmt = stmt.where(or_(*clauses))

    return stmt


class SQLAlchemyRecordStore:
    """PostgreSQL-backed store over the ``dumps`` table.

    Args:
        session_factory: Factory producing one ``AsyncSession`` per call.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find_candidates(self, spec: FilterSpec, limit: int | None = None) -> list[SearchableRecord]:
        stmt = apply_filter_spec(select(Dump).options(joinedload(Dump.category)), spec)
        stmt = stmt.order_by(Dump.created_at.desc(), Dump.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                dumps = result.unique().scalars().all()
        except SQLAlchemyError as exc:
            raise RetrievalError("store", str(exc)) from exc

        logger.debug("find_candidates: %d rows (limit=%s)", len(dumps), limit)
        return [dump_to_record(d) for d in dumps]

    async def get(self, record_id: str, user_id: str) -> SearchableRecord | None:
        try:
            dump_id = uuid.UUID(record_id)
        except ValueError:
            return None
        stmt = (
            select(Dump)
            .options(joinedload(Dump.category))
            .where(Dump.id == dump_id, Dump.user_id == user_id)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                dump = result.unique().scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise RetrievalError("store", str(exc)) from exc
        return dump_to_record(dump) if dump is not None else None

    async def count(self, spec: FilterSpec) -> int:
        stmt = apply_filter_spec(select(func.count()).select_from(Dump), spec)
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return result.scalar_one()
        except SQLAlchemyError as exc:
            raise RetrievalError("store", str(exc)) from exc


class InMemoryRecordStore:
    """Store backed by a list of records; evaluates ``FilterSpec`` in memory."""

    def __init__(self, records: Iterable[SearchableRecord] = ()) -> None:
        self._records: dict[str, SearchableRecord] = {r.id: r for r in records}

    def add(self, record: SearchableRecord) -> None:
        self._records[record.id] = record

    async def find_candidates(self, spec: FilterSpec, limit: int | None = None) -> list[SearchableRecord]:
        matched = [r for r in self._records.values() if spec.matches(r)]
        matched.sort(key=lambda r: (-r.created_at.timestamp(), r.id))
        return matched[:limit] if limit is not None else matched

    async def get(self, record_id: str, user_id: str) -> SearchableRecord | None:
        record = self._records.get(record_id)
        if record is None or record.user_id != user_id:
            return None
        return record

    async def count(self, spec: FilterSpec) -> int:
        return sum(1 for r in self._records.values() if spec.matches(r))
