from __future__ import annotations

import asyncio
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from app.core.geo import haversine_m
from app.schemas.gigs import Application, Gig
from app.services.errors import ConcurrencyError, ConflictError, NotFoundError
from app.services.query_builder import (
    AnyOfIgnoreCase,
    Between,
    ContainsIgnoreCase,
    Equals,
    NotBefore,
    Predicate,
    SearchPlan,
)
from app.services.ranking import RankedGig, SortKey, rank
from app.services.text import query_terms, weighted_text_score


class InMemoryGigRepository:
    """Gig document store held in process memory, for local development and tests.

    Documents are stored serialized, so callers always work on their own copy
    and can only change stored state through ``replace_gig``. The version check
    and the swap in ``replace_gig`` happen without yielding to the event loop,
    which makes them atomic for coroutines sharing one loop.
    """

    def __init__(self) -> None:
        self._documents: dict[str, dict[str, Any]] = {}

    async def close(self) -> None:
        return None

    async def insert_gig(self, gig: Gig) -> Gig:
        if gig.id in self._documents:
            raise ConflictError("gig already exists")
        self._documents[gig.id] = gig.model_dump()
        return Gig.model_validate(self._documents[gig.id])

    async def get_gig(self, gig_id: str) -> Gig:
        # Yield like a network round trip would, so concurrent writers can interleave.
        await asyncio.sleep(0)
        document = self._documents.get(gig_id)
        if document is None:
            raise NotFoundError("gig not found")
        return Gig.model_validate(document)

    async def replace_gig(self, gig: Gig, *, expected_version: int) -> Gig:
        current = self._documents.get(gig.id)
        if current is None:
            raise NotFoundError("gig not found")
        if current["version"] != expected_version:
            raise ConcurrencyError("gig was modified concurrently; retry the operation")
        document = gig.model_dump()
        document["version"] = expected_version + 1
        # Views are only written by increment_views.
        document["views"] = current["views"]
        self._documents[gig.id] = document
        return Gig.model_validate(document)

    async def delete_gig(self, gig_id: str, *, expected_version: int) -> None:
        current = self._documents.get(gig_id)
        if current is None:
            raise NotFoundError("gig not found")
        if current["version"] != expected_version:
            raise ConcurrencyError("gig was modified concurrently; retry the operation")
        del self._documents[gig_id]

    async def increment_views(self, gig_id: str) -> None:
        document = self._documents.get(gig_id)
        if document is None:
            raise NotFoundError("gig not found")
        document["views"] += 1

    async def search(self, plan: SearchPlan, ordering: list[SortKey]) -> tuple[list[RankedGig], int]:
        terms = query_terms(plan.text_query)
        matched: list[RankedGig] = []
        for gig in self._iter_gigs():
            if not _matches(gig, plan.predicates):
                continue
            score: float | None = None
            if plan.text_query is not None:
                score = weighted_text_score(gig, terms)
                if score <= 0:
                    continue
            matched.append(RankedGig(gig=gig, score=score))
        ranked = rank(matched, ordering)
        return ranked[plan.skip : plan.skip + plan.limit], len(ranked)

    async def geo_candidates(self, plan: SearchPlan, *, cap: int) -> list[RankedGig]:
        if plan.geo is None:
            return []
        candidates: list[RankedGig] = []
        for gig in self._iter_gigs():
            if not _matches(gig, plan.predicates):
                continue
            distance_m = haversine_m(plan.geo.lat, plan.geo.lng, gig.location.lat, gig.location.lng)
            if distance_m <= plan.geo.max_distance_m:
                candidates.append(RankedGig(gig=gig, distance_m=distance_m))
        candidates.sort(key=lambda item: (item.distance_m, item.gig.id))
        return candidates[:cap]

    async def suggest(self, *, text: str, now: datetime, caps: Mapping[str, int]) -> list[tuple[str, str]]:
        needle = text.lower()
        found: dict[str, dict[str, str]] = {source: {} for source in caps}
        for gig in self._iter_gigs():
            if gig.status != "posted" or gig.expires_at is None or gig.expires_at < now:
                continue
            values = {
                "title": [gig.title],
                "category": [gig.category],
                "skill": [skill.name for skill in gig.skills],
            }
            for source, bucket in found.items():
                for value in values[source]:
                    key = value.lower()
                    if needle in key:
                        bucket[key] = min(bucket.get(key, value), value)
        return [
            (source, bucket[key])
            for source, bucket in found.items()
            for key in sorted(bucket)[: caps[source]]
        ]

    async def list_by_poster(
        self,
        *,
        poster_id: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Gig], int]:
        gigs = [
            gig
            for gig in self._iter_gigs()
            if gig.poster_id == poster_id and (status is None or gig.status == status)
        ]
        gigs.sort(key=lambda gig: (-gig.created_at.timestamp(), gig.id))
        return gigs[offset : offset + limit], len(gigs)

    async def list_by_applicant(
        self,
        *,
        applicant_id: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[tuple[Gig, Application]], int]:
        rows: list[tuple[Gig, Application]] = []
        for gig in self._iter_gigs():
            for application in gig.applications:
                if application.applicant_id != applicant_id:
                    continue
                if status is not None and application.status != status:
                    continue
                rows.append((gig, application))
        rows.sort(key=lambda row: (-row[1].applied_at.timestamp(), row[0].id))
        return rows[offset : offset + limit], len(rows)

    async def list_expired_ids(self, *, now: datetime, limit: int) -> list[str]:
        expired = [
            gig
            for gig in self._iter_gigs()
            if gig.status == "posted" and gig.expires_at is not None and gig.expires_at < now
        ]
        expired.sort(key=lambda gig: (gig.expires_at, gig.id))
        return [gig.id for gig in expired[:limit]]

    def _iter_gigs(self) -> list[Gig]:
        return [Gig.model_validate(document) for document in self._documents.values()]


def _matches(gig: Gig, predicates: list[Predicate]) -> bool:
    return all(_matches_predicate(gig, predicate) for predicate in predicates)


def _matches_predicate(gig: Gig, predicate: Predicate) -> bool:
    if isinstance(predicate, Equals):
        return any(value == predicate.value for value in _resolve(gig, predicate.field))
    if isinstance(predicate, AnyOfIgnoreCase):
        wanted = {value.lower() for value in predicate.values}
        return any(isinstance(value, str) and value.lower() in wanted for value in _resolve(gig, predicate.field))
    if isinstance(predicate, Between):
        for value in _resolve(gig, predicate.field):
            if value is None:
                continue
            if predicate.minimum is not None and value < predicate.minimum:
                continue
            if predicate.maximum is not None and value > predicate.maximum:
                continue
            return True
        return False
    if isinstance(predicate, ContainsIgnoreCase):
        needle = predicate.text.lower()
        return any(
            isinstance(value, str) and needle in value.lower()
            for field in predicate.fields
            for value in _resolve(gig, field)
        )
    if isinstance(predicate, NotBefore):
        return any(value is not None and value >= predicate.when for value in _resolve(gig, predicate.field))
    raise TypeError(f"unsupported predicate: {predicate!r}")


def _resolve(gig: Gig, path: str) -> list[Any]:
    values: list[Any] = [gig]
    for part in path.split("."):
        resolved: list[Any] = []
        for value in values:
            if value is None:
                continue
            attribute = getattr(value, part, None)
            if isinstance(attribute, list):
                resolved.extend(attribute)
            else:
                resolved.append(attribute)
        values = resolved
    return values
