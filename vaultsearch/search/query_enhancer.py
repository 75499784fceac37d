# @TASK P2-T2.6 - Query enhancement (synonyms, translations, intents)
# @TEST tests/test_query_enhancer.py

"""Query enhancement for vault search.

Short keyword queries are expanded locally from a small multilingual
dictionary. Longer or question-like queries go to the language service,
whose JSON answer is validated before use. Any failure falls back to the
local path, so :meth:`QueryEnhancer.enhance` never raises.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vaultsearch.ai_router.router import AIRouter
from vaultsearch.ai_router.schemas import AIRequest
from vaultsearch.config import get_settings
from vaultsearch.constants import ContentType, QueryComplexity, QueryIntent
from vaultsearch.search.cache import LRUCache
from vaultsearch.search.errors import EnhancementError
from vaultsearch.search.records import (
    DateRange,
    EnhancedQuery,
    SearchContext,
    SearchScope,
    SuggestedFilters,
)

logger = logging.getLogger(__name__)

SIMPLE_CONFIDENCE = 0.6
AI_DEFAULT_CONFIDENCE = 0.7
FALLBACK_CONFIDENCE = 0.5

_COMPLEX_PATTERNS = [
    re.compile(r"\b(when|where|who|what|how|why)\b", re.IGNORECASE),
    re.compile(r"\b(before|after|during|since|until)\b", re.IGNORECASE),
    re.compile(r"\b(about|regarding|related to|similar to)\b", re.IGNORECASE),
    re.compile(r"\b(find|show|search|look for)\b", re.IGNORECASE),
    re.compile(r"\b(meeting|appointment|call|email)\b", re.IGNORECASE),
]
_QUESTION_RE = _COMPLEX_PATTERNS[0]

# Phrase groups: any trigger phrase pulls in the whole term list.
_PHRASE_GROUPS: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (
        ("electricity bill", "power bill", "energy bill", "utility bill", "light bill"),
        (
            "electricity", "bill", "electric", "power", "energy", "utility", "invoice", "receipt",
            "conta", "luz", "fatura", "boleto", "energia", "factura", "recibo", "facture",
        ),
    ),
    (
        ("conta de luz", "contas de luz", "fatura de luz", "fatura energia", "energia elétrica"),
        ("conta", "luz", "fatura", "boleto", "energia", "eletricidade", "electricity", "bill", "power"),
    ),
    (
        ("factura electricidad", "factura de luz", "recibo luz", "recibo de luz"),
        ("factura", "recibo", "cuenta", "luz", "electricidad", "electricity", "bill", "power"),
    ),
    (
        ("facture électricité", "facture d'électricité"),
        ("facture", "électricité", "electricity", "bill", "power"),
    ),
    (
        ("rendez-vous médecin",),
        ("appointment", "doctor", "medical", "consultation"),
    ),
]

_WORD_SYNONYMS: dict[str, list[str]] = {
    # English
    "meeting": ["call", "appointment", "conference"],
    "urgent": ["important", "priority", "asap"],
    "work": ["job", "office", "business"],
    "personal": ["private", "family"],
    "travel": ["trip", "flight", "hotel"],
    "money": ["payment", "finance", "budget", "cost"],
    "health": ["medical", "doctor", "appointment"],
    "bill": ["invoice", "receipt", "payment", "charge"],
    "electricity": ["electric", "power", "energy", "utility"],
    "utility": ["bill", "service", "electric", "power"],
    # Portuguese
    "conta": ["fatura", "boleto", "cobrança", "bill"],
    "luz": ["energia", "eletricidade", "electricity", "power"],
    "contas": ["faturas", "boletos", "bills", "invoices"],
    "energia": ["luz", "eletricidade", "electricity", "power"],
    "eletricidade": ["energia", "luz", "electricity"],
    "fatura": ["conta", "boleto", "invoice", "bill"],
    "boleto": ["conta", "fatura", "cobrança", "bill"],
    # Spanish
    "factura": ["recibo", "cuenta", "invoice", "bill"],
    "electricidad": ["energía", "luz", "electricity"],
    "recibo": ["factura", "cuenta", "receipt", "bill"],
    # French
    "facture": ["note", "compte", "invoice", "bill"],
    "électricité": ["énergie", "courant", "electricity"],
}
_MAX_WORD_SYNONYMS = 2

_CONTENT_TYPE_KEYWORDS: dict[ContentType, tuple[str, ...]] = {
    ContentType.VOICE: ("voice", "audio", "recording", "message", "spoke", "said"),
    ContentType.IMAGE: ("image", "photo", "picture", "screenshot", "pic"),
    ContentType.EMAIL: ("email", "mail", "sent", "inbox"),
    ContentType.TEXT: ("note", "text", "wrote", "typed"),
}

_SUGGESTIONS = [
    "today",
    "yesterday",
    "last week",
    "this month",
    "voice messages",
    "images",
    "emails",
    "notes",
    "meetings",
    "appointments",
    "important",
    "urgent",
    "travel",
    "receipts",
]

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_WORD_RE = re.compile(r"\w+", re.UNICODE)


# ---------------------------------------------------------------------------
# Language service payload
# ---------------------------------------------------------------------------


class _PayloadDateRange(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_from: str | None = Field(default=None, alias="from")
    date_to: str | None = Field(default=None, alias="to")


class _PayloadFilters(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content_types: list[str] = Field(default_factory=list, alias="contentTypes")
    date_range: _PayloadDateRange | None = Field(default=None, alias="dateRange")
    categories: list[str] = Field(default_factory=list)


class EnhancementPayload(BaseModel):
    """Schema the language service's JSON answer must satisfy."""

    model_config = ConfigDict(extra="ignore")

    enhanced: str = ""
    intents: list[str] = Field(default_factory=list)
    filters: _PayloadFilters = Field(default_factory=_PayloadFilters)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Pull the first JSON object out of free-form model output.

    A fenced ```json block wins; otherwise each ``{`` is tried as the start
    of an object until one decodes.
    """
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        try:
            data = json.loads(fenced.group(1))
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict):
            return data

    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            data, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


# ---------------------------------------------------------------------------
# Local helpers
# ---------------------------------------------------------------------------


def _tokens(text: str) -> list[str]:
    return _WORD_RE.findall(text.lower())


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", text) is not None


def is_simple_query(query: str) -> bool:
    """Single short keyword with none of the complex markers."""
    stripped = query.strip()
    return (
        len(stripped.split()) == 1
        and len(stripped) <= 4
        and not any(p.search(stripped) for p in _COMPLEX_PATTERNS)
    )


def expand_with_dictionary(query: str) -> str:
    """Append dictionary synonyms and translations not already in ``query``."""
    lowered = query.lower().strip()
    tokens = _tokens(lowered)
    present = set(tokens)
    additions: list[str] = []

    def _add(term: str) -> bool:
        if term in present:
            return False
        present.add(term)
        additions.append(term)
        return True

    for triggers, terms in _PHRASE_GROUPS:
        hit = any(_contains_phrase(lowered, t) for t in triggers) or (
            len(tokens) == 1 and len(lowered) >= 3 and any(lowered in t.split() for t in triggers)
        )
        if hit:
            for term in terms:
                _add(term)

    for token in tokens:
        added = 0
        for synonym in _WORD_SYNONYMS.get(token, []):
            if added >= _MAX_WORD_SYNONYMS:
                break
            if _add(synonym):
                added += 1

    if not additions:
        return query.strip()
    return f"{query.strip()} {' '.join(additions)}"


def extract_date_range(query: str, today: date) -> DateRange | None:
    """Resolve relative date phrases against ``today``."""
    q = query.lower()
    if _contains_phrase(q, "today"):
        return DateRange(date_from=today, date_to=today)
    if _contains_phrase(q, "yesterday"):
        day = today - timedelta(days=1)
        return DateRange(date_from=day, date_to=day)
    if _contains_phrase(q, "last week"):
        return DateRange(date_from=today - timedelta(days=14), date_to=today - timedelta(days=7))
    if _contains_phrase(q, "this week"):
        start = today - timedelta(days=(today.weekday() + 1) % 7)  # weeks start on Sunday
        return DateRange(date_from=start, date_to=today)
    if _contains_phrase(q, "this month"):
        return DateRange(date_from=today.replace(day=1), date_to=today)
    if _contains_phrase(q, "last month"):
        last_day = today.replace(day=1) - timedelta(days=1)
        return DateRange(date_from=last_day.replace(day=1), date_to=last_day)
    return None


def detect_content_type(query: str) -> ContentType | None:
    words = set(_tokens(query))
    for content_type, keywords in _CONTENT_TYPE_KEYWORDS.items():
        if any(k in words or f"{k}s" in words for k in keywords):
            return content_type
    return None


def classify_complexity(original: str, intents: list[str]) -> QueryComplexity:
    token_count = len(original.split())
    if token_count > 5 or len(intents) >= 2 or _QUESTION_RE.search(original):
        return QueryComplexity.COMPLEX
    if token_count <= 2 and not intents:
        return QueryComplexity.SIMPLE
    return QueryComplexity.MODERATE


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enhancer
# ---------------------------------------------------------------------------


class QueryEnhancer:
    """Turns a raw query into an :class:`EnhancedQuery`.

    Args:
        ai_router: Language service; ``None`` disables the AI path.
        model: Model id for enhancement; ``None`` picks the router default.
        cache: Cache of enhanced queries keyed by user, timezone, local
            date and query.
        clock: Returns the current aware datetime (injectable for tests).
        default_timezone: Timezone used when the context names none.
    """

    def __init__(
        self,
        ai_router: AIRouter | None = None,
        *,
        model: str | None = None,
        cache: LRUCache[tuple[str, str, str, str], EnhancedQuery] | None = None,
        clock: Callable[[], datetime] = _utc_now,
        default_timezone: str | None = None,
    ) -> None:
        settings = get_settings()
        self._ai_router = ai_router
        self._model = model or settings.ENHANCER_MODEL or None
        self._cache = cache if cache is not None else LRUCache(
            maxsize=settings.QUERY_CACHE_SIZE,
            ttl_seconds=settings.QUERY_CACHE_TTL_SECONDS,
        )
        self._clock = clock
        self._default_timezone = default_timezone or settings.DEFAULT_TIMEZONE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def enhance(
        self,
        raw_query: str,
        scope: SearchScope,
        context: SearchContext | None = None,
    ) -> EnhancedQuery:
        """Enhance ``raw_query``. Never raises."""
        query = (raw_query or "").strip()
        if not query:
            return EnhancedQuery(original=raw_query or "", enhanced="", confidence=FALLBACK_CONFIDENCE)

        tz_name, tz = self.resolve_timezone(context)
        today = self._clock().astimezone(tz).date()
        cache_key = (scope.user_id, tz_name, today.isoformat(), " ".join(query.lower().split()))
        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Enhanced query cache hit: %r", query)
            return cached.model_copy(deep=True)

        try:
            if is_simple_query(query):
                result = self._enhance_locally(query, today)
            else:
                result = await self._enhance_with_ai(query, today, tz_name, context)
        except Exception:
            logger.exception("Query enhancement failed, using original query: %r", query)
            return EnhancedQuery(
                original=query,
                enhanced=query,
                confidence=FALLBACK_CONFIDENCE,
                complexity=classify_complexity(query, []),
            )

        self._cache.set(cache_key, result)
        logger.debug(
            "Enhanced %r -> %r (intents=%s, confidence=%.2f)",
            query, result.enhanced, result.intents, result.confidence,
        )
        return result.model_copy(deep=True)

    def generate_suggestions(self, partial: str, limit: int = 5) -> list[str]:
        """Canned suggestions containing ``partial`` (at least 2 characters)."""
        needle = (partial or "").strip().lower()
        if len(needle) < 2:
            return []
        return [s for s in _SUGGESTIONS if needle in s][:limit]

    def resolve_timezone(self, context: SearchContext | None) -> tuple[str, tzinfo]:
        """Timezone name and tzinfo for ``context``, falling back to the default."""
        name = (context.timezone if context and context.timezone else None) or self._default_timezone
        try:
            return name, ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using UTC", name)
            return "UTC", timezone.utc

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _enhance_locally(self, query: str, today: date) -> EnhancedQuery:
        intents: list[str] = []
        suggested = SuggestedFilters()

        date_range = extract_date_range(query, today)
        if date_range is not None:
            suggested.date_range = date_range
            intents.append(QueryIntent.TEMPORAL_SEARCH.value)

        content_type = detect_content_type(query)
        if content_type is not None:
            suggested.content_types = [content_type]
            intents.append(QueryIntent.CONTENT_TYPE_FILTER.value)

        return EnhancedQuery(
            original=query,
            enhanced=expand_with_dictionary(query),
            intents=intents,
            suggested_filters=suggested,
            confidence=SIMPLE_CONFIDENCE,
            complexity=classify_complexity(query, intents),
        )

    async def _enhance_with_ai(
        self,
        query: str,
        today: date,
        tz_name: str,
        context: SearchContext | None,
    ) -> EnhancedQuery:
        if self._ai_router is None or not self._ai_router.has_providers():
            return self._enhance_locally(query, today)

        from vaultsearch.ai_router.prompts.query_enhance import build_messages

        messages = build_messages(
            query=query,
            today=today.isoformat(),
            recent_categories=context.recent_categories if context else None,
            recent_record_count=context.recent_record_count if context else 0,
            timezone=tz_name,
        )

        try:
            response = await self._ai_router.chat(
                AIRequest(
                    messages=messages,
                    model=self._model,
                    temperature=0.2,
                    max_tokens=400,
                )
            )
            payload = self._parse_response(response.content)
        except EnhancementError as exc:
            logger.warning("Unusable enhancement response, using dictionary: %s", exc)
            return self._enhance_locally(query, today)
        except Exception:
            logger.warning("AI enhancement failed, using dictionary", exc_info=True)
            return self._enhance_locally(query, today)

        return self._from_payload(query, today, payload)

    def _parse_response(self, content: str) -> EnhancementPayload:
        data = extract_json_object(content or "")
        if data is None:
            raise EnhancementError(f"no JSON object in response: {content[:200]!r}")
        try:
            return EnhancementPayload.model_validate(data)
        except ValidationError as exc:
            raise EnhancementError(f"invalid enhancement payload: {exc.error_count()} errors") from exc

    def _from_payload(self, query: str, today: date, payload: EnhancementPayload) -> EnhancedQuery:
        enhanced = payload.enhanced.strip()
        if len(enhanced) < 3 or any(marker in enhanced for marker in ("{", "}", "```")):
            enhanced = query
        elif query.lower() not in enhanced.lower():
            enhanced = f"{query} {enhanced}"

        content_types = []
        for raw in payload.filters.content_types:
            try:
                content_types.append(ContentType(raw.lower()))
            except ValueError:
                logger.debug("Ignoring unknown content type hint: %r", raw)

        intents = [i.strip() for i in payload.intents if i and i.strip()]
        suggested = SuggestedFilters(
            content_types=list(dict.fromkeys(content_types)),
            date_range=self._payload_date_range(payload.filters.date_range, today),
            categories=[c.strip() for c in payload.filters.categories if c and c.strip()],
        )
        confidence = payload.confidence if payload.confidence is not None else AI_DEFAULT_CONFIDENCE

        return EnhancedQuery(
            original=query,
            enhanced=enhanced,
            intents=intents,
            suggested_filters=suggested,
            confidence=confidence,
            complexity=classify_complexity(query, intents),
        )

    @staticmethod
    def _payload_date_range(raw: _PayloadDateRange | None, today: date) -> DateRange | None:
        if raw is None or (not raw.date_from and not raw.date_to):
            return None
        try:
            start = date.fromisoformat(raw.date_from) if raw.date_from else None
            end = date.fromisoformat(raw.date_to) if raw.date_to else None
        except ValueError:
            logger.debug("Ignoring malformed date range hint: %r", raw)
            return None
        start = start or end
        end = end or today
        if start is None or start > end:
            return None
        return DateRange(date_from=start, date_to=end)
