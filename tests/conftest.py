# @TASK P0-T0.3 - Test configuration
# @TASK P2-T2.1 - Record / store builders for search tests
import os
from collections.abc import AsyncGenerator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment variables before importing app modules
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://vault:vault@db:5432/vault_test")
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["EMBEDDING_SERVICE_URL"] = ""

from vaultsearch.search.embeddings import EmbeddingError  # noqa: E402
from vaultsearch.search.records import SearchableRecord, SearchScope  # noqa: E402
from vaultsearch.search.store import InMemoryRecordStore  # noqa: E402

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
USER_ID = "user-1"


def fixed_clock(now: datetime = NOW):
    """Return a clock callable that always reports ``now``."""
    return lambda: now


def make_record(
    record_id: str = "r1",
    content: str = "Some note",
    *,
    user_id: str = USER_ID,
    summary: str | None = None,
    category: str | None = None,
    content_type: str = "text",
    processing_status: str = "completed",
    created_at: datetime | None = None,
    age_days: float | None = None,
    urgency: int | None = None,
    confidence: int | None = None,
    entities: dict[str, Any] | None = None,
    embedding: Sequence[float] | None = None,
) -> SearchableRecord:
    """Build a SearchableRecord with sensible defaults for tests."""
    if created_at is None:
        created_at = NOW - timedelta(days=age_days if age_days is not None else 60)
    return SearchableRecord(
        id=record_id,
        user_id=user_id,
        raw_content=content,
        summary=summary,
        category=category,
        content_type=content_type,
        processing_status=processing_status,
        created_at=created_at,
        urgency_level=urgency,
        confidence=confidence,
        entities=entities or {},
        embedding=list(embedding) if embedding is not None else None,
    )


class FakeEmbeddings:
    """Embedding provider double returning canned vectors per text."""

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        default: list[float] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.vectors = vectors or {}
        self.default = default
        self.error = error
        self.calls: list[str] = []

    async def embed_text(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        if text in self.vectors:
            return self.vectors[text]
        if self.default is None:
            raise EmbeddingError(f"no vector for {text!r}")
        return self.default


@pytest.fixture
def scope() -> SearchScope:
    return SearchScope(user_id=USER_ID)


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture(scope="function")
async def test_client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client bound to the FastAPI app (no lifespan)."""
    from vaultsearch.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
