from __future__ import annotations

import unicodedata

from app.schemas.gigs import Gig
from app.services.constants import TEXT_FIELD_WEIGHTS

# Letters, combining marks and digits in any script. Marks keep Indic vowel
# signs and decomposed accents inside their word.
_WORD_CATEGORIES = frozenset("LMN")
_STOP_WORDS = {
    "a",
    "an",
    "and",
    "at",
    "for",
    "from",
    "in",
    "of",
    "on",
    "or",
    "the",
    "to",
    "with",
}


def tokenize(value: str | None) -> list[str]:
    if not value:
        return []
    return [token for token in _split_words(value.lower()) if token not in _STOP_WORDS]


def query_terms(q: str | None) -> list[str]:
    terms = tokenize(q)
    seen: set[str] = set()
    unique: list[str] = []
    for term in terms:
        if term not in seen:
            seen.add(term)
            unique.append(term)
    return unique


def weighted_text_score(gig: Gig, terms: list[str]) -> float:
    """Score a gig against query terms, weighting fields like the store's text index."""
    if not terms:
        return 0.0
    score = 0.0
    for field, weight in TEXT_FIELD_WEIGHTS.items():
        tokens = tokenize(_field_text(gig, field))
        if not tokens:
            continue
        hits = sum(tokens.count(term) for term in terms)
        if hits:
            score += weight * hits / len(tokens)
    return round(score, 6)


def matches_any_term(gig: Gig, terms: list[str]) -> bool:
    """Secondary filter used after a geo-bounded query: title, description, category or skills."""
    if not terms:
        return True
    haystacks = [gig.title, gig.description, gig.category, *(skill.name for skill in gig.skills)]
    lowered = [value.lower() for value in haystacks if value]
    return any(term in haystack for term in terms for haystack in lowered)


def _split_words(value: str) -> list[str]:
    words: list[str] = []
    current: list[str] = []
    for char in value:
        if unicodedata.category(char)[0] in _WORD_CATEGORIES:
            current.append(char)
        elif current:
            words.append("".join(current))
            current = []
    if current:
        words.append("".join(current))
    return words


def _field_text(gig: Gig, field: str) -> str | None:
    if field == "skills":
        return " ".join(skill.name for skill in gig.skills)
    if field in {"city", "state", "address"}:
        return getattr(gig.location, field)
    return getattr(gig, field)
