# @TASK P2-T2.11 - Record embedding backfill
# @TEST tests/test_indexer.py

"""Embedding backfill for the ``dumps.content_vector`` column.

Completed dumps without a vector are invisible to semantic search. The
indexer embeds them in batches, newest first. The embedded text is the AI
summary when one exists, otherwise the raw content.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel
from sqlalchemy import func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vaultsearch.constants import ProcessingStatus
from vaultsearch.models import Dump
from vaultsearch.search.embeddings import EmbeddingError, EmbeddingService
from vaultsearch.search.errors import IndexingError, RecordNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50


@dataclass
class IndexResult:
    """Aggregated result of a backfill run.

    Attributes:
        indexed: Dumps that received a vector.
        skipped: Dumps with no text to embed.
        failed: Dumps whose embedding call failed; they keep no vector.
    """

    indexed: int = field(default=0)
    skipped: int = field(default=0)
    failed: int = field(default=0)


class EmbeddingStats(BaseModel):
    total_records: int
    records_with_vectors: int
    vector_coverage: float  # percent


class SearchHealth(BaseModel):
    pgvector_enabled: bool
    embeddings_configured: bool
    vector_stats: EmbeddingStats | None = None


def embedding_text(raw_content: str | None, summary: str | None) -> str:
    """Text embedded for a dump: the summary if non-blank, else the raw content."""
    return (summary or "").strip() or (raw_content or "").strip()


class DumpIndexer:
    """Writes embeddings for dumps and reports vector coverage.

    Args:
        session_factory: Factory producing one ``AsyncSession`` per unit of work.
        embedding_service: Service used to generate the vectors.
        batch_size: Dumps embedded per API call and committed together.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._session_factory = session_factory
        self._embeddings = embedding_service
        self._batch_size = batch_size

    async def index_record(self, record_id: str, user_id: str) -> bool:
        """Embed one dump and store its vector, replacing any existing one.

        Returns:
            ``False`` when the dump has no text to embed.

        Raises:
            RecordNotFoundError: If the dump is not in the user's scope.
            EmbeddingError: If the embedding call fails.
            IndexingError: If the database cannot be read or written.
        """
        try:
            dump_id = uuid.UUID(record_id)
        except ValueError as exc:
            raise RecordNotFoundError(record_id) from exc

        stmt = select(Dump.raw_content, Dump.ai_summary).where(Dump.id == dump_id, Dump.user_id == user_id)
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).one_or_none()
                if row is None:
                    raise RecordNotFoundError(record_id)

                content = embedding_text(row.raw_content, row.ai_summary)
                if not content:
                    return False

                vector = await self._embeddings.embed_text(content)
                await session.execute(update(Dump).where(Dump.id == dump_id).values(content_vector=vector))
                await session.commit()
        except SQLAlchemyError as exc:
            raise IndexingError(f"Could not index record {record_id}: {exc}") from exc

        logger.debug("Indexed record %s", record_id)
        return True

    async def index_pending(self, user_id: str | None = None) -> IndexResult:
        """Embed every completed dump that has no vector yet.

        Batches are processed newest first and committed one at a time. A
        batch whose embedding call fails is counted as failed and the run
        moves on to the next batch.

        Args:
            user_id: Restrict the backfill to one user; ``None`` covers all.

        Raises:
            IndexingError: If the database cannot be read or written.
        """
        result = IndexResult()
        excluded: list[uuid.UUID] = []

        while True:
            rows = await self._pending_batch(user_id, excluded)
            if not rows:
                break

            pending: list[tuple[uuid.UUID, str]] = []
            for row in rows:
                content = embedding_text(row.raw_content, row.ai_summary)
                if content:
                    pending.append((row.id, content))
                else:
                    result.skipped += 1
                    excluded.append(row.id)

            if pending:
                try:
                    vectors = await self._embeddings.embed_texts([content for _, content in pending])
                except EmbeddingError as exc:
                    logger.warning("Embedding batch of %d records failed: %s", len(pending), exc)
                    result.failed += len(pending)
                    excluded.extend(dump_id for dump_id, _ in pending)
                else:
                    await self._store_vectors([dump_id for dump_id, _ in pending], vectors)
                    result.indexed += len(pending)

            if len(rows) < self._batch_size:
                break

        logger.info(
            "Embedding backfill: %d indexed, %d skipped, %d failed",
            result.indexed,
            result.skipped,
            result.failed,
        )
        return result

    async def _pending_batch(self, user_id: str | None, excluded: list[uuid.UUID]) -> list[Any]:
        stmt = select(Dump.id, Dump.raw_content, Dump.ai_summary).where(
            Dump.content_vector.is_(None),
            Dump.processing_status == ProcessingStatus.COMPLETED.value,
        )
        if user_id is not None:
            stmt = stmt.where(Dump.user_id == user_id)
        if excluded:
            stmt = stmt.where(Dump.id.not_in(excluded))
        stmt = stmt.order_by(Dump.created_at.desc(), Dump.id).limit(self._batch_size)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return list(result.all())
        except SQLAlchemyError as exc:
            raise IndexingError(f"Could not load records to index: {exc}") from exc

    async def _store_vectors(self, dump_ids: list[uuid.UUID], vectors: list[list[float]]) -> None:
        try:
            async with self._session_factory() as session:
                for dump_id, vector in zip(dump_ids, vectors):
                    await session.execute(update(Dump).where(Dump.id == dump_id).values(content_vector=vector))
                await session.commit()
        except SQLAlchemyError as exc:
            raise IndexingError(f"Could not store {len(dump_ids)} vectors: {exc}") from exc

    async def embedding_stats(self, user_id: str | None = None) -> EmbeddingStats:
        """Count dumps and how many of them carry a vector.

        Raises:
            IndexingError: If the database cannot be read.
        """
        stmt = select(func.count(), func.count(Dump.content_vector)).select_from(Dump)
        if user_id is not None:
            stmt = stmt.where(Dump.user_id == user_id)

        try:
            async with self._session_factory() as session:
                total, with_vectors = (await session.execute(stmt)).one()
        except SQLAlchemyError as exc:
            raise IndexingError(f"Could not read embedding stats: {exc}") from exc

        coverage = with_vectors / total * 100 if total else 0.0
        return EmbeddingStats(total_records=total, records_with_vectors=with_vectors, vector_coverage=coverage)

    async def health(self) -> SearchHealth:
        """Check the pgvector extension and report vector coverage.

        Never raises; a database failure reports pgvector as unavailable
        with no stats.
        """
        try:
            async with self._session_factory() as session:
                await session.execute(text("SELECT '[1,2,3]'::vector"))
            stats = await self.embedding_stats()
        except (SQLAlchemyError, IndexingError):
            logger.exception("Search health check failed")
            return SearchHealth(pgvector_enabled=False, embeddings_configured=self._embeddings.is_configured)

        return SearchHealth(
            pgvector_enabled=True,
            embeddings_configured=self._embeddings.is_configured,
            vector_stats=stats,
        )
