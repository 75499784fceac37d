# @TASK P2-T2.2 - Filter builder (scope + structural constraints)
# @TEST tests/test_filters.py

"""Translate caller filters and the owner scope into an immutable ``FilterSpec``.

Every retriever receives the same ``FilterSpec``. A retriever that needs an
extra predicate (an embedding must exist, a term must appear) derives a new
spec with :meth:`FilterSpec.derive` instead of touching the shared one.
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from vaultsearch.constants import URGENCY_MAX, URGENCY_MIN, ContentType, ProcessingStatus
from vaultsearch.search.errors import FilterError
from vaultsearch.search.records import SearchableRecord, SearchScope, SuggestedFilters

UrgencyLevel = Annotated[int, Field(ge=URGENCY_MIN, le=URGENCY_MAX)]


class SearchFilters(BaseModel):
    """Structural filters supplied by the caller.

    Plain dates are widened to whole days. ``include_processing=False``
    restricts results to completed records; ``None`` applies no status filter.
    """

    content_types: list[ContentType] = Field(default_factory=list)
    categories: list[str] = Field(default_factory=list)
    date_from: date | datetime | None = None
    date_to: date | datetime | None = None
    min_confidence: int | None = Field(default=None, ge=1, le=5)
    urgency_levels: list[UrgencyLevel] = Field(default_factory=list)
    include_processing: bool | None = None
    apply_suggested_dates: bool = True


class FilterSpec(BaseModel):
    """Immutable conjunction of predicates applied by the record store."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    content_types: tuple[ContentType, ...] = ()
    categories: tuple[str, ...] = ()
    date_from: datetime | None = None
    date_to: datetime | None = None
    min_confidence: int | None = None
    urgency_levels: tuple[int, ...] = ()
    include_processing: bool | None = None
    require_embedding: bool = False
    text_any: tuple[str, ...] = ()

    def derive(self, **changes: Any) -> FilterSpec:
        """Return a copy with ``changes`` applied; ``self`` is left untouched."""
        for key in ("content_types", "categories", "urgency_levels", "text_any"):
            if key in changes:
                changes[key] = tuple(changes[key])
        return self.model_copy(update=changes)

    def matches(self, record: SearchableRecord) -> bool:
        """Evaluate every predicate against ``record`` in memory."""
        if record.user_id != self.user_id:
            return False
        if self.content_types and record.content_type not in self.content_types:
            return False
        if self.categories and record.category not in self.categories:
            return False
        if self.date_from is not None and record.created_at < self.date_from:
            return False
        if self.date_to is not None and record.created_at > self.date_to:
            return False
        if self.min_confidence is not None:
            if record.confidence is None or record.confidence < self.min_confidence:
                return False
        if self.urgency_levels and record.urgency_level not in self.urgency_levels:
            return False
        if self.include_processing is False and record.processing_status != ProcessingStatus.COMPLETED:
            return False
        if self.require_embedding and not record.embedding:
            return False
        if self.text_any:
            haystack = f"{record.raw_content}\n{record.summary or ''}".lower()
            if not any(term in haystack for term in self.text_any):
                return False
        return True

    def describe(self) -> dict[str, Any]:
        """Applied filters as a JSON-friendly dict (omits empty predicates)."""
        data = self.model_dump(
            mode="json",
            exclude={"user_id", "require_embedding", "text_any"},
            exclude_none=True,
        )
        return {key: value for key, value in data.items() if value != []}


def _start_of_day(value: date | datetime, tz: tzinfo) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, time.min, tzinfo=tz)


def _end_of_day(value: date | datetime, tz: tzinfo) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=tz)
    return datetime.combine(value, time.max, tzinfo=tz)


def build_filter_spec(
    scope: SearchScope,
    filters: SearchFilters | None = None,
    suggested: SuggestedFilters | None = None,
    tz: tzinfo = timezone.utc,
) -> FilterSpec:
    """Build the ``FilterSpec`` shared by all retrievers for one search.

    Args:
        scope: Owner scope; always applied.
        filters: Caller filters, or ``None`` for none.
        suggested: Filter hints from the query enhancer. Only the date range
            is used, and only when the caller set no date bound.
        tz: Timezone used to interpret plain dates.

    Raises:
        FilterError: If ``date_from`` is later than ``date_to``.
    """
    filters = filters or SearchFilters()

    date_from = _start_of_day(filters.date_from, tz) if filters.date_from else None
    date_to = _end_of_day(filters.date_to, tz) if filters.date_to else None

    if (
        date_from is None
        and date_to is None
        and filters.apply_suggested_dates
        and suggested is not None
        and suggested.date_range is not None
    ):
        date_from = _start_of_day(suggested.date_range.date_from, tz)
        date_to = _end_of_day(suggested.date_range.date_to, tz)

    if date_from is not None and date_to is not None and date_from > date_to:
        raise FilterError(f"date_from ({date_from.isoformat()}) is after date_to ({date_to.isoformat()})")

    return FilterSpec(
        user_id=scope.user_id,
        content_types=tuple(filters.content_types),
        categories=tuple(filters.categories),
        date_from=date_from,
        date_to=date_to,
        min_confidence=filters.min_confidence,
        urgency_levels=tuple(filters.urgency_levels),
        include_processing=filters.include_processing,
    )
