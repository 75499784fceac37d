# @TASK P2-T2.1 - Search data model (records, results, pages)
# @TEST tests/test_records.py

"""Value types flowing through the search pipeline.

``SearchableRecord`` is the read-only view of a stored dump. Every other
type here is built per search invocation and discarded afterwards.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vaultsearch.constants import (
    CONFIDENCE_MAX,
    CONFIDENCE_MIN,
    URGENCY_MAX,
    URGENCY_MIN,
    ContentType,
    MatchType,
    ProcessingStatus,
    QueryComplexity,
)


def clamp_score(value: float) -> float:
    """Clamp a relevance score into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


class SearchableRecord(BaseModel):
    """A stored dump as seen by the search core."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    raw_content: str = ""
    summary: str | None = None
    category: str | None = None
    content_type: ContentType = ContentType.TEXT
    processing_status: ProcessingStatus = ProcessingStatus.COMPLETED
    created_at: datetime
    urgency_level: int | None = None  # 1-4
    confidence: int | None = None  # 1-5
    entities: dict[str, list[str]] = Field(default_factory=dict)
    embedding: list[float] | None = None

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("entities", mode="before")
    @classmethod
    def _normalize_entities(cls, value: Any) -> dict[str, list[str]]:
        # JSONB payloads sometimes carry scalars instead of lists
        if not value:
            return {}
        normalized: dict[str, list[str]] = {}
        for key, items in dict(value).items():
            if items is None:
                continue
            if isinstance(items, (list, tuple, set)):
                normalized[str(key)] = [str(item) for item in items]
            else:
                normalized[str(key)] = [str(items)]
        return normalized

    @property
    def urgency(self) -> int:
        return max(URGENCY_MIN, min(URGENCY_MAX, self.urgency_level or URGENCY_MIN))

    @property
    def confidence_level(self) -> int:
        return max(CONFIDENCE_MIN, min(CONFIDENCE_MAX, self.confidence or CONFIDENCE_MIN))

    @property
    def entity_count(self) -> int:
        return len(self.entities)

    def entity_text(self) -> str:
        """Entities flattened to a single lowercase string for matching."""
        parts: list[str] = []
        for key, values in self.entities.items():
            parts.append(key)
            parts.extend(values)
        return " ".join(parts).lower()

    def display_text(self) -> str:
        """Summary when present, raw content otherwise."""
        return self.summary or self.raw_content


class SearchResult(BaseModel):
    """A record matched by one or more retrieval strategies.

    Attributes:
        record: The matched record.
        relevance_score: Score in [0, 1]; clamped on every assignment.
        match_type: Strategy that produced it, or ``hybrid`` after fusion.
        matched_fields: Record fields that contributed, ordered and unique.
        highlight: Excerpt with ``<b>`` markers around matched terms.
        explanation: Human-readable reason for the match.
    """

    model_config = ConfigDict(validate_assignment=True)

    record: SearchableRecord
    relevance_score: float
    match_type: MatchType
    matched_fields: list[str] = Field(default_factory=list)
    highlight: str | None = None
    explanation: str | None = None

    @field_validator("relevance_score")
    @classmethod
    def _clamp(cls, value: float) -> float:
        return clamp_score(value)

    @field_validator("matched_fields")
    @classmethod
    def _dedupe_fields(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @property
    def record_id(self) -> str:
        return self.record.id


class DateRange(BaseModel):
    """Inclusive calendar-date range."""

    date_from: date
    date_to: date


class SuggestedFilters(BaseModel):
    content_types: list[ContentType] = Field(default_factory=list)
    date_range: DateRange | None = None
    categories: list[str] = Field(default_factory=list)


class EnhancedQuery(BaseModel):
    """Query text after expansion, with extracted intents and filter hints."""

    original: str
    enhanced: str
    intents: list[str] = Field(default_factory=list)
    suggested_filters: SuggestedFilters = Field(default_factory=SuggestedFilters)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    complexity: QueryComplexity = QueryComplexity.SIMPLE


class SearchScope(BaseModel):
    """Owner scope every search is restricted to."""

    model_config = ConfigDict(frozen=True)

    user_id: str


class SearchPreferences(BaseModel):
    category_weights: dict[str, float] = Field(default_factory=dict)
    prefer_recent: bool = False
    prefer_high_urgency: bool = False


class SearchContext(BaseModel):
    """Per-user context used for enhancement prompts and ranking."""

    timezone: str | None = None
    recent_categories: list[str] = Field(default_factory=list)
    recent_record_count: int = 0
    preferences: SearchPreferences = Field(default_factory=SearchPreferences)
    explain: bool = False


class QueryInfo(BaseModel):
    original: str
    enhanced: str
    processing_time_ms: int = 0


class SearchMetadata(BaseModel):
    semantic_results: int = 0
    fuzzy_results: int = 0
    exact_results: int = 0
    filters: dict[str, Any] = Field(default_factory=dict)
    intents: list[str] = Field(default_factory=list)


class SearchPage(BaseModel):
    """Paginated search results with total count."""

    results: list[SearchResult]
    total: int
    query: QueryInfo
    metadata: SearchMetadata = Field(default_factory=SearchMetadata)
