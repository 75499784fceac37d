from enum import StrEnum


class ContentType(StrEnum):
    TEXT = "text"
    VOICE = "voice"
    IMAGE = "image"
    EMAIL = "email"


class ProcessingStatus(StrEnum):
    RECEIVED = "received"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchType(StrEnum):
    SEMANTIC = "semantic"
    FUZZY = "fuzzy"
    EXACT = "exact"
    HYBRID = "hybrid"


class RetrievalStrategy(StrEnum):
    """Match types a single retriever may emit. ``hybrid`` is fusion-only."""

    SEMANTIC = "semantic"
    FUZZY = "fuzzy"
    EXACT = "exact"


class QueryComplexity(StrEnum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class QueryIntent(StrEnum):
    TEMPORAL_SEARCH = "temporal_search"
    CONTENT_TYPE_FILTER = "content_type_filter"


# Ordinal scales stored on each record
URGENCY_MIN, URGENCY_MAX = 1, 4
CONFIDENCE_MIN, CONFIDENCE_MAX = 1, 5
CONFIDENCE_HIGH = 4
CONFIDENCE_MEDIUM = 3

# Category -> query keywords that imply it (lowercase)
CATEGORY_KEYWORDS: dict[str, list[str]] = {
    "bills": ["bill", "payment", "due", "invoice", "electricity", "water", "gas", "rent"],
    "reminders": ["reminder", "remember", "todo", "task", "appointment", "meeting"],
    "health": ["doctor", "medication", "prescription", "appointment", "medical", "health"],
    "work": ["work", "job", "office", "meeting", "project", "deadline", "colleague"],
    "personal": ["personal", "family", "friend", "birthday", "anniversary", "vacation"],
    "finance": ["money", "bank", "investment", "saving", "budget", "expense", "income"],
    "shopping": ["buy", "purchase", "shopping", "store", "amazon", "order", "delivery"],
    "travel": ["travel", "flight", "hotel", "vacation", "trip", "booking", "passport"],
}

URGENCY_KEYWORDS: tuple[str, ...] = ("urgent", "asap", "immediately", "deadline", "due", "expires")
