"""Snippet highlighting with ``<b>`` markers."""

from __future__ import annotations

import re
from collections.abc import Iterable

BOLD_TAG_RE = re.compile(r"<b>(.*?)</b>", re.IGNORECASE)


def _terms_pattern(terms: Iterable[str]) -> re.Pattern[str] | None:
    unique = sorted({t for t in terms if t}, key=len, reverse=True)
    if not unique:
        return None
    return re.compile("|".join(re.escape(t) for t in unique), re.IGNORECASE)


def bold_terms(text: str, terms: Iterable[str]) -> str:
    """Wrap every case-insensitive occurrence of ``terms`` in ``<b>`` tags.

    Longer terms win over their prefixes, and tags never nest.
    """
    pattern = _terms_pattern(terms)
    if pattern is None:
        return text
    return pattern.sub(lambda m: f"<b>{m.group(0)}</b>", text)


def highlight(text: str, terms: Iterable[str], max_chars: int = 300) -> str:
    """Bold ``terms`` in the first ``max_chars`` characters of ``text``.

    Text is cut before tagging, so the result never holds a broken tag.
    """
    if len(text) > max_chars:
        text = text[:max_chars].rstrip() + "..."
    return bold_terms(text, terms)


def window_highlight(text: str, terms: Iterable[str], radius: int = 80, max_chars: int = 300) -> str:
    """Excerpt of ``text`` centred on the first matched term, with terms bolded."""
    terms = [t for t in terms if t]
    pattern = _terms_pattern(terms)
    match = pattern.search(text) if pattern else None
    if match is None or len(text) <= max_chars:
        return highlight(text, terms, max_chars)

    start = max(0, match.start() - radius)
    end = min(len(text), start + max_chars)
    excerpt = text[start:end].strip()
    if start > 0:
        excerpt = "..." + excerpt
    if end < len(text):
        excerpt += "..."
    return bold_terms(excerpt, terms)


def extract_matched_terms(snippet: str) -> list[str]:
    """Unique bolded terms in a snippet, in order of appearance."""
    seen: set[str] = set()
    unique: list[str] = []
    for term in BOLD_TAG_RE.findall(snippet):
        lower = term.lower().strip()
        if lower and lower not in seen:
            seen.add(lower)
            unique.append(term.strip())
    return unique
