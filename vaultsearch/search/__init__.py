# @TASK P2-T2.1 - Search engine package

"""Hybrid search over a personal vault: semantic, fuzzy and exact retrieval."""

from vaultsearch.search.embeddings import EmbeddingError, EmbeddingService
from vaultsearch.search.engine import HybridSearchEngine
from vaultsearch.search.errors import (
    FilterError,
    RecordNotFoundError,
    SearchError,
    VectorDimensionMismatch,
)
from vaultsearch.search.filters import FilterSpec, SearchFilters, build_filter_spec
from vaultsearch.search.query_enhancer import QueryEnhancer
from vaultsearch.search.ranking import RankingEngine
from vaultsearch.search.records import (
    EnhancedQuery,
    SearchableRecord,
    SearchContext,
    SearchPage,
    SearchResult,
    SearchScope,
)
from vaultsearch.search.store import InMemoryRecordStore, RecordStore, SQLAlchemyRecordStore

__all__ = [
    "EmbeddingError",
    "EmbeddingService",
    "EnhancedQuery",
    "FilterError",
    "FilterSpec",
    "HybridSearchEngine",
    "InMemoryRecordStore",
    "QueryEnhancer",
    "RankingEngine",
    "RecordNotFoundError",
    "RecordStore",
    "SQLAlchemyRecordStore",
    "SearchContext",
    "SearchError",
    "SearchFilters",
    "SearchPage",
    "SearchResult",
    "SearchScope",
    "SearchableRecord",
    "VectorDimensionMismatch",
    "build_filter_spec",
]
