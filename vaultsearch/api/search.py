# @TASK P4-T4.3 - Search API endpoint
# @TEST tests/test_api_search.py

"""Search API endpoints for the vault.

Provides:
- ``POST /search`` -- Hybrid search (semantic + fuzzy + exact, ranked).
- ``GET /search/quick`` -- Prefix search for autocomplete.
- ``GET /search/suggestions`` -- Frequent terms from the user's records.
- ``GET /search/suggestions/complete`` -- Canned query completions.
- ``GET /search/similar/{record_id}`` -- Records similar to a given record.
- ``GET /search/categories/{category}`` -- Browse records in a category.
- ``GET /search/content-types/{content_type}`` -- Browse records of one type.
- ``POST /search/reindex`` -- Embed completed records that have no vector.
- ``GET /search/stats`` -- Vector coverage counts.
- ``GET /search/health`` -- pgvector and embedding backend status.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from functools import lru_cache

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from vaultsearch.ai_router import AIRouter
from vaultsearch.constants import ContentType
from vaultsearch.database import async_session_factory
from vaultsearch.search.embeddings import EmbeddingService
from vaultsearch.search.engine import HybridSearchEngine
from vaultsearch.search.errors import FilterError, IndexingError, RecordNotFoundError, SearchError
from vaultsearch.search.filters import SearchFilters, UrgencyLevel
from vaultsearch.search.highlight import extract_matched_terms
from vaultsearch.search.indexer import DumpIndexer, EmbeddingStats, SearchHealth
from vaultsearch.search.query_enhancer import QueryEnhancer
from vaultsearch.search.records import (
    QueryInfo,
    SearchContext,
    SearchMetadata,
    SearchPreferences,
    SearchResult,
    SearchScope,
)
from vaultsearch.search.store import SQLAlchemyRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])


# ---------------------------------------------------------------------------
# Request & Response schemas
# ---------------------------------------------------------------------------


class SearchRequest(BaseModel):
    """Hybrid search request body."""

    query: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    content_types: list[ContentType] = []
    categories: list[str] = []
    date_from: date | datetime | None = None
    date_to: date | datetime | None = None
    min_confidence: int | None = Field(default=None, ge=1, le=5)
    urgency_levels: list[UrgencyLevel] = []
    include_processing: bool | None = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)
    diversify: bool = False
    explain: bool = False
    timezone: str | None = None
    prefer_recent: bool = False
    prefer_high_urgency: bool = False
    category_weights: dict[str, float] = {}


class SearchResultResponse(BaseModel):
    """A single search result in the API response."""

    id: str
    content: str
    summary: str | None = None
    category: str | None = None
    content_type: str
    created_at: datetime
    urgency_level: int | None = None
    confidence: int | None = None
    relevance_score: float
    match_type: str
    matched_fields: list[str] = []
    highlight: str | None = None
    matched_terms: list[str] = []
    explanation: str | None = None


class SearchResponse(BaseModel):
    """Search API response containing one page of results and metadata."""

    results: list[SearchResultResponse]
    total: int
    query: QueryInfo
    metadata: SearchMetadata


class QuickSearchResponse(BaseModel):
    results: list[SearchResultResponse]
    query: str


class SuggestionResponse(BaseModel):
    """Search suggestion (autocomplete) response."""

    suggestions: list[str]
    prefix: str = ""


class SimilarResponse(BaseModel):
    results: list[SearchResultResponse]
    record_id: str


class ReindexResponse(BaseModel):
    """Vector coverage before and after a backfill run."""

    before: EmbeddingStats
    after: EmbeddingStats
    processed: int
    skipped: int = 0
    failed: int = 0


# ---------------------------------------------------------------------------
# Engine factory (extracted for easy mocking in tests)
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _build_engine() -> HybridSearchEngine:
    """Create the process-wide HybridSearchEngine.

    Extracted as a function to allow easy mocking in tests.
    """
    return HybridSearchEngine(
        store=SQLAlchemyRecordStore(async_session_factory),
        embeddings=EmbeddingService.from_settings(),
        enhancer=QueryEnhancer(AIRouter()),
    )


@lru_cache(maxsize=1)
def _build_indexer() -> DumpIndexer:
    return DumpIndexer(async_session_factory, EmbeddingService.from_settings())


def _to_response(result: SearchResult) -> SearchResultResponse:
    record = result.record
    return SearchResultResponse(
        id=record.id,
        content=record.raw_content,
        summary=record.summary,
        category=record.category,
        content_type=record.content_type.value,
        created_at=record.created_at,
        urgency_level=record.urgency_level,
        confidence=record.confidence,
        relevance_score=result.relevance_score,
        match_type=result.match_type.value,
        matched_fields=result.matched_fields,
        highlight=result.highlight,
        matched_terms=extract_matched_terms(result.highlight) if result.highlight else [],
        explanation=result.explanation,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("", response_model=SearchResponse)
async def search(request: SearchRequest) -> SearchResponse:
    """Run a hybrid search over the user's records.

    Returns:
        SearchResponse with the requested page, the total number of ranked
        results, the enhanced query and per-strategy counts.
    """
    logger.info(
        "Search request: user=%s, query=%r, limit=%d, offset=%d",
        request.user_id,
        request.query,
        request.limit,
        request.offset,
    )

    filters = SearchFilters(
        content_types=request.content_types,
        categories=request.categories,
        date_from=request.date_from,
        date_to=request.date_to,
        min_confidence=request.min_confidence,
        urgency_levels=request.urgency_levels,
        include_processing=request.include_processing,
    )
    context = SearchContext(
        timezone=request.timezone,
        explain=request.explain,
        preferences=SearchPreferences(
            category_weights=request.category_weights,
            prefer_recent=request.prefer_recent,
            prefer_high_urgency=request.prefer_high_urgency,
        ),
    )

    engine = _build_engine()
    try:
        page = await engine.search(
            request.query,
            SearchScope(user_id=request.user_id),
            filters=filters,
            limit=request.limit,
            offset=request.offset,
            context=context,
            diversify=request.diversify,
        )
    except FilterError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    except SearchError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Search failed") from e

    return SearchResponse(
        results=[_to_response(r) for r in page.results],
        total=page.total,
        query=page.query,
        metadata=page.metadata,
    )


@router.get("/quick", response_model=QuickSearchResponse)
async def quick_search(
    q: str = Query(..., min_length=1, description="Search prefix"),  # noqa: B008
    user_id: str = Query(..., min_length=1),  # noqa: B008
    limit: int = Query(5, ge=1, le=20, description="Maximum number of results"),  # noqa: B008
) -> QuickSearchResponse:
    engine = _build_engine()
    results = await engine.quick_search(q, SearchScope(user_id=user_id), limit=limit)
    return QuickSearchResponse(results=[_to_response(r) for r in results], query=q)


@router.get("/suggestions", response_model=SuggestionResponse)
async def search_suggestions(
    user_id: str = Query(..., min_length=1),  # noqa: B008
    limit: int = Query(10, ge=1, le=50),  # noqa: B008
) -> SuggestionResponse:
    """Most frequent terms across the user's completed records."""
    engine = _build_engine()
    suggestions = await engine.search_suggestions(SearchScope(user_id=user_id), limit=limit)
    return SuggestionResponse(suggestions=suggestions)


@router.get("/suggestions/complete", response_model=SuggestionResponse)
async def complete_suggestions(
    q: str = Query(..., min_length=1, description="Partial query"),  # noqa: B008
    limit: int = Query(5, ge=1, le=20),  # noqa: B008
) -> SuggestionResponse:
    engine = _build_engine()
    return SuggestionResponse(suggestions=engine.suggest_completions(q, limit), prefix=q)


@router.get("/similar/{record_id}", response_model=SimilarResponse)
async def find_similar(
    record_id: str,
    user_id: str = Query(..., min_length=1),  # noqa: B008
    limit: int = Query(5, ge=1, le=20),  # noqa: B008
) -> SimilarResponse:
    """Records semantically similar to ``record_id``."""
    engine = _build_engine()
    try:
        results = await engine.find_similar(record_id, SearchScope(user_id=user_id), limit=limit)
    except RecordNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Record not found: {record_id}") from e
    except SearchError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Search failed") from e
    return SimilarResponse(results=[_to_response(r) for r in results], record_id=record_id)


async def _browse(scope: SearchScope, filters: SearchFilters, limit: int, offset: int) -> SearchResponse:
    engine = _build_engine()
    try:
        page = await engine.browse(scope, filters, limit=limit, offset=offset)
    except SearchError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Browse failed") from e
    return SearchResponse(
        results=[_to_response(r) for r in page.results],
        total=page.total,
        query=page.query,
        metadata=page.metadata,
    )


@router.get("/categories/{category}", response_model=SearchResponse)
async def browse_category(
    category: str,
    user_id: str = Query(..., min_length=1),  # noqa: B008
    limit: int = Query(20, ge=1, le=100),  # noqa: B008
    offset: int = Query(0, ge=0),  # noqa: B008
) -> SearchResponse:
    """Newest records in ``category``."""
    return await _browse(SearchScope(user_id=user_id), SearchFilters(categories=[category]), limit, offset)


@router.get("/content-types/{content_type}", response_model=SearchResponse)
async def browse_content_type(
    content_type: ContentType,
    user_id: str = Query(..., min_length=1),  # noqa: B008
    limit: int = Query(20, ge=1, le=100),  # noqa: B008
    offset: int = Query(0, ge=0),  # noqa: B008
) -> SearchResponse:
    """Newest records of one content type."""
    return await _browse(SearchScope(user_id=user_id), SearchFilters(content_types=[content_type]), limit, offset)


@router.post("/reindex", response_model=ReindexResponse)
async def reindex(
    user_id: str | None = Query(None, min_length=1, description="Limit to one user; omit for all"),  # noqa: B008
) -> ReindexResponse:
    """Embed every completed record that has no vector yet.

    Runs synchronously and reports coverage before and after the run.
    """
    indexer = _build_indexer()
    try:
        before = await indexer.embedding_stats(user_id)
        result = await indexer.index_pending(user_id)
        after = await indexer.embedding_stats(user_id)
    except IndexingError as e:
        logger.exception("Reindex failed")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Reindexing failed") from e

    return ReindexResponse(
        before=before,
        after=after,
        processed=after.records_with_vectors - before.records_with_vectors,
        skipped=result.skipped,
        failed=result.failed,
    )


@router.get("/stats", response_model=EmbeddingStats)
async def embedding_stats(
    user_id: str | None = Query(None, min_length=1),  # noqa: B008
) -> EmbeddingStats:
    indexer = _build_indexer()
    try:
        return await indexer.embedding_stats(user_id)
    except IndexingError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Stats unavailable") from e


@router.get("/health", response_model=SearchHealth)
async def search_health() -> SearchHealth:
    return await _build_indexer().health()
