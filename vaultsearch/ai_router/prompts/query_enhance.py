"""Search query enhancement prompt template.

Asks the language service to expand a vault search query with synonyms and
translations, and to extract intents and filter hints as JSON. Used by
QueryEnhancer for queries too complex for the local dictionary.
"""

from __future__ import annotations

from vaultsearch.ai_router.schemas import Message

SYSTEM_PROMPT = (
    "You enhance search queries for a multilingual personal inbox. Users store "
    "notes, voice transcripts, images and e-mails in several languages "
    "(English, Portuguese, Spanish, French, ...).\n\n"
    "Rules:\n"
    "1. Keep every original query term.\n"
    "2. Add synonyms in the same language.\n"
    "3. Add key English translations when the query is in another language, "
    "and common translations of English terms.\n"
    "4. Add conceptually related terms. Use keywords, not sentences.\n"
    "5. Respond ONLY with JSON:\n"
    '{"enhanced": "original query plus expanded terms", '
    '"intents": ["temporal_search", "content_type_filter"], '
    '"filters": {"contentTypes": ["text|voice|image|email"], '
    '"dateRange": {"from": "YYYY-MM-DD", "to": "YYYY-MM-DD"}, '
    '"categories": ["category name"]}, '
    '"confidence": 0.0-1.0}\n\n'
    "Examples:\n"
    '- "contas de luz" -> "contas de luz conta fatura boleto electricity bill power energy"\n'
    '- "electricity bill" -> "electricity bill electric power energy utility invoice receipt conta de luz"\n'
    '- "rendez-vous médecin" -> "rendez-vous médecin appointment doctor medical consultation"'
)

USER_PROMPT_TEMPLATE = (
    "Original query: {query}\n"
    "Today: {today}\n"
    "{context_section}"
    "Return the enhanced query as JSON."
)


def build_messages(
    query: str,
    today: str,
    recent_categories: list[str] | None = None,
    recent_record_count: int = 0,
    timezone: str = "UTC",
) -> list[Message]:
    """Build message list for query enhancement.

    Args:
        query: The user's raw search query.
        today: Current date in the user's timezone (ISO format), so relative
            dates in the query can be resolved.
        recent_categories: Categories of the user's recent records.
        recent_record_count: Number of recent records considered.
        timezone: The user's IANA timezone name.

    Returns:
        A list of Message objects (system + user).
    """
    if not query or not query.strip():
        raise ValueError("query must not be empty")

    context_section = (
        "User context:\n"
        f"- Recent categories: {', '.join(recent_categories or []) or 'none'}\n"
        f"- Recent record count: {recent_record_count}\n"
        f"- Timezone: {timezone}\n\n"
    )

    user_content = USER_PROMPT_TEMPLATE.format(
        query=query.strip(),
        today=today,
        context_section=context_section,
    )

    return [
        Message(role="system", content=SYSTEM_PROMPT),
        Message(role="user", content=user_content),
    ]
