"""Translate a gig search request into a store-agnostic query plan.

The plan is a list of predicates over logical gig fields (``status``,
``payment.rate``, ``skills.name``, ...). Each repository compiles the same
plan: the Postgres repository into SQL, the in-memory repository into Python
checks.

When a point and radius are supplied, the geo-bounded nearest-neighbour query
is the primary filter and any free-text query is applied afterwards, in
memory, over the geo-bounded candidates. Text relevance and distance are
never combined into one index lookup.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from app.services.constants import (
    DEFAULT_PAGE_LIMIT,
    DEFAULT_RADIUS_KM,
    MAX_PAGE_LIMIT,
    MAX_RADIUS_KM,
    METERS_PER_KM,
    MIN_PAGE_LIMIT,
    SORT_MODES,
    WILDCARD_FILTER_VALUE,
)
from app.services.errors import ValidationError
from app.services.text import query_terms

LOCATION_TEXT_FIELDS = ("location.address", "location.city", "location.state")


@dataclass(slots=True)
class Equals:
    field: str
    value: Any


@dataclass(slots=True)
class AnyOfIgnoreCase:
    field: str
    values: list[str]


@dataclass(slots=True)
class Between:
    field: str
    minimum: float | None
    maximum: float | None


@dataclass(slots=True)
class ContainsIgnoreCase:
    fields: tuple[str, ...]
    text: str


@dataclass(slots=True)
class NotBefore:
    field: str
    when: datetime


Predicate = Equals | AnyOfIgnoreCase | Between | ContainsIgnoreCase | NotBefore


@dataclass(slots=True)
class GeoNear:
    lng: float
    lat: float
    max_distance_m: float


@dataclass(slots=True)
class SearchPlan:
    predicates: list[Predicate]
    sort: str
    page: int
    limit: int
    now: datetime
    geo: GeoNear | None = None
    text_query: str | None = None
    secondary_text_terms: list[str] = field(default_factory=list)
    query: str | None = None
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def scored(self) -> bool:
        return self.text_query is not None


def build_search_plan(
    *,
    q: str | None = None,
    category: str | None = None,
    skills: Iterable[str] | str | None = None,
    min_rate: float | None = None,
    max_rate: float | None = None,
    payment_type: str | None = None,
    urgency: str | None = None,
    experience_level: str | None = None,
    lat: float | None = None,
    lng: float | None = None,
    radius_km: float | None = None,
    location: str | None = None,
    sort: str = "relevance",
    page: int = 1,
    limit: int = DEFAULT_PAGE_LIMIT,
    now: datetime | None = None,
) -> SearchPlan:
    current = now or datetime.now(timezone.utc)
    if sort not in SORT_MODES:
        raise ValidationError(f"sort must be one of: {', '.join(SORT_MODES)}")

    predicates: list[Predicate] = [
        Equals("status", "posted"),
        NotBefore("expires_at", current),
    ]

    normalized_category = _coerce_filter(category)
    if normalized_category:
        predicates.append(Equals("category", normalized_category))

    normalized_skills = _coerce_skills(skills)
    if normalized_skills:
        predicates.append(AnyOfIgnoreCase("skills.name", normalized_skills))

    if min_rate is not None and min_rate < 0:
        raise ValidationError("min_rate must be non-negative")
    if min_rate is not None and max_rate is not None and min_rate > max_rate:
        raise ValidationError("min_rate cannot exceed max_rate")
    if min_rate is not None or max_rate is not None:
        predicates.append(Between("payment.rate", min_rate, max_rate))

    normalized_payment_type = _coerce_filter(payment_type)
    if normalized_payment_type:
        predicates.append(Equals("payment.payment_type", normalized_payment_type))

    normalized_urgency = _coerce_filter(urgency)
    if normalized_urgency:
        predicates.append(Equals("urgency", normalized_urgency))

    normalized_experience = _coerce_filter(experience_level)
    if normalized_experience:
        predicates.append(Equals("experience_level", normalized_experience))

    if (lat is None) != (lng is None):
        raise ValidationError("lat and lng must be supplied together")

    normalized_q = _coerce_text(q)
    geo: GeoNear | None = None
    effective_radius: float | None = None
    normalized_location = _coerce_text(location)
    if lat is not None and lng is not None:
        if not -90 <= lat <= 90 or not -180 <= lng <= 180:
            raise ValidationError("lat/lng out of range")
        effective_radius = DEFAULT_RADIUS_KM if radius_km is None else radius_km
        if effective_radius <= 0 or effective_radius > MAX_RADIUS_KM:
            raise ValidationError(f"radius must be within (0, {MAX_RADIUS_KM:g}] km")
        geo = GeoNear(lng=lng, lat=lat, max_distance_m=effective_radius * METERS_PER_KM)
    elif normalized_location:
        predicates.append(ContainsIgnoreCase(LOCATION_TEXT_FIELDS, normalized_location))

    text_query: str | None = None
    secondary_terms: list[str] = []
    if normalized_q:
        if geo is not None:
            secondary_terms = query_terms(normalized_q)
        else:
            text_query = normalized_q

    normalized_page = max(1, page)
    normalized_limit = min(MAX_PAGE_LIMIT, max(MIN_PAGE_LIMIT, limit))

    return SearchPlan(
        predicates=predicates,
        sort=sort,
        page=normalized_page,
        limit=normalized_limit,
        now=current,
        geo=geo,
        text_query=text_query,
        secondary_text_terms=secondary_terms,
        query=normalized_q,
        filters={
            "category": normalized_category,
            "skills": normalized_skills,
            "price_range": {"min": min_rate, "max": max_rate},
            "payment_type": normalized_payment_type,
            "urgency": normalized_urgency,
            "experience_level": normalized_experience,
            "location": normalized_location if geo is None else f"{lat},{lng}",
            "radius": effective_radius,
        },
    )


def _coerce_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _coerce_filter(value: str | None) -> str | None:
    normalized = _coerce_text(value)
    if normalized is None or normalized.lower() == WILDCARD_FILTER_VALUE:
        return None
    return normalized


def _coerce_skills(value: Iterable[str] | str | None) -> list[str]:
    if value is None:
        return []
    raw = value.split(",") if isinstance(value, str) else list(value)
    skills: list[str] = []
    for item in raw:
        for chunk in str(item).split(","):
            stripped = chunk.strip()
            if stripped and stripped.lower() not in {skill.lower() for skill in skills}:
                skills.append(stripped)
    return skills
