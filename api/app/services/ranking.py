from __future__ import annotations

from dataclasses import dataclass

from app.core.geo import meters_to_km
from app.schemas.gigs import Gig
from app.schemas.search import GigSearchHit
from app.services.constants import DEFAULT_URGENCY_SCORE, URGENCY_SCORES

SortKey = tuple[str, str]

URGENCY_SCORE_SQL = (
    "case g.urgency "
    "when 'urgent' then 4 "
    "when 'high' then 3 "
    "when 'medium' then 2 "
    "when 'low' then 1 "
    f"else {DEFAULT_URGENCY_SCORE} end"
)
_SQL_SORT_EXPRS = {
    "posted_at": "g.posted_at",
    "rate": "g.payment_rate",
    "urgency_score": URGENCY_SCORE_SQL,
    "score": "score",
    "distance": "distance_m",
    "id": "g.id",
}


@dataclass(slots=True)
class RankedGig:
    gig: Gig
    score: float | None = None
    distance_m: float | None = None


def urgency_score(urgency: str | None) -> int:
    if urgency is None:
        return DEFAULT_URGENCY_SCORE
    return URGENCY_SCORES.get(urgency, DEFAULT_URGENCY_SCORE)


def resolve_ordering(sort: str, *, has_text: bool, has_geo: bool) -> list[SortKey]:
    """Return the ordering keys for a sort mode, ending with a deterministic ``id`` tie-breaker."""
    if sort == "date":
        keys = [("posted_at", "desc")]
    elif sort == "rate_high":
        keys = [("rate", "desc"), ("posted_at", "desc")]
    elif sort == "rate_low":
        keys = [("rate", "asc"), ("posted_at", "desc")]
    elif sort == "urgency":
        keys = [("urgency_score", "desc"), ("posted_at", "desc")]
    elif sort == "distance" and has_geo:
        keys = [("distance", "asc"), ("urgency_score", "desc")]
    elif sort == "relevance" and has_text:
        keys = [("score", "desc"), ("urgency_score", "desc"), ("posted_at", "desc")]
    else:
        keys = [("urgency_score", "desc"), ("posted_at", "desc")]
    return [*keys, ("id", "asc")]


def rank(items: list[RankedGig], ordering: list[SortKey]) -> list[RankedGig]:
    return sorted(items, key=lambda item: _sort_tuple(item, ordering))


def order_by_sql(ordering: list[SortKey]) -> str:
    clauses: list[str] = []
    for key, direction in ordering:
        expr = _SQL_SORT_EXPRS[key]
        nulls = "nulls last" if key in {"posted_at", "score", "distance"} else ""
        clauses.append(f"{expr} {direction} {nulls}".strip())
    return ", ".join(clauses)


def to_hit(item: RankedGig) -> GigSearchHit:
    gig = item.gig
    return GigSearchHit(
        id=gig.id,
        poster_id=gig.poster_id,
        title=gig.title,
        description=gig.description,
        category=gig.category,
        sub_category=gig.sub_category,
        urgency=gig.urgency,
        location=gig.location,
        skills=gig.skills,
        payment=gig.payment,
        timeline=gig.timeline,
        status=gig.status,
        experience_level=gig.experience_level,
        tools_required=gig.tools_required,
        applications_count=len(gig.applications),
        views=gig.views,
        posted_at=gig.posted_at,
        expires_at=gig.expires_at,
        urgency_score=urgency_score(gig.urgency),
        distance=meters_to_km(item.distance_m) if item.distance_m is not None else None,
        score=item.score,
    )


def _sort_tuple(item: RankedGig, ordering: list[SortKey]) -> tuple:
    values: list[object] = []
    for key, direction in ordering:
        if key == "id":
            values.append(item.gig.id)
            continue
        value = _numeric_value(item, key)
        # Missing values sort last in either direction.
        if value is None:
            values.append(float("inf"))
        else:
            values.append(-value if direction == "desc" else value)
    return tuple(values)


def _numeric_value(item: RankedGig, key: str) -> float | None:
    if key == "posted_at":
        return item.gig.posted_at.timestamp() if item.gig.posted_at else None
    if key == "rate":
        return item.gig.payment.rate
    if key == "urgency_score":
        return float(urgency_score(item.gig.urgency))
    if key == "score":
        return item.score
    if key == "distance":
        return item.distance_m
    raise KeyError(key)
