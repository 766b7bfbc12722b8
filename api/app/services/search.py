from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime, timezone
from typing import TypeVar

from fastapi import Depends
from opentelemetry import trace

from app.core.config import Settings, get_settings
from app.schemas.search import (
    GigSearchResponse,
    SearchMeta,
    SearchPagination,
    SearchSuggestion,
    SearchSuggestionsResponse,
)
from app.services.constants import (
    DEFAULT_PAGE_LIMIT,
    DEFAULT_SUGGESTION_LIMIT,
    GEO_CANDIDATE_CAP,
    MAX_SUGGESTION_LIMIT,
    MIN_SUGGESTION_QUERY_LENGTH,
    SUGGESTION_SOURCE_CAPS,
)
from app.services.errors import StoreUnavailableError
from app.services.gigs import page_count
from app.services.query_builder import SearchPlan, build_search_plan
from app.services.ranking import RankedGig, rank, resolve_ordering, to_hit
from app.services.repository import GigRepository, get_repository
from app.services.text import matches_any_term

T = TypeVar("T")

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SearchService:
    def __init__(
        self,
        repository: GigRepository,
        *,
        store_timeout_seconds: float = 15.0,
        geo_candidate_cap: int = GEO_CANDIDATE_CAP,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.store_timeout_seconds = store_timeout_seconds
        self.geo_candidate_cap = geo_candidate_cap
        self.clock = clock

    async def search(
        self,
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
    ) -> GigSearchResponse:
        plan = build_search_plan(
            q=q,
            category=category,
            skills=skills,
            min_rate=min_rate,
            max_rate=max_rate,
            payment_type=payment_type,
            urgency=urgency,
            experience_level=experience_level,
            lat=lat,
            lng=lng,
            radius_km=radius_km,
            location=location,
            sort=sort,
            page=page,
            limit=limit,
            now=self.clock(),
        )
        with tracer.start_as_current_span("search.gigs") as span:
            span.set_attribute("search.sort", plan.sort)
            span.set_attribute("search.geo", plan.geo is not None)
            span.set_attribute("search.text", plan.query is not None)
            if plan.geo is not None:
                items, total = await self._geo_search(plan)
            else:
                ordering = resolve_ordering(plan.sort, has_text=plan.scored, has_geo=False)
                items, total = await self._store(self.repository.search(plan, ordering))
            span.set_attribute("search.total", total)

        logger.info(
            "gig search sort=%s geo=%s text=%s page=%s limit=%s total=%s",
            plan.sort,
            plan.geo is not None,
            plan.query is not None,
            plan.page,
            plan.limit,
            total,
        )
        pages = page_count(total, plan.limit)
        return GigSearchResponse(
            gigs=[to_hit(item) for item in items],
            pagination=SearchPagination(
                page=plan.page,
                limit=plan.limit,
                total=total,
                pages=pages,
                has_more=plan.page < pages,
            ),
            search_meta=SearchMeta(
                query=plan.query,
                filters=plan.filters,
                sort=plan.sort,
                results_found=total > 0,
            ),
        )

    async def suggest(
        self,
        *,
        q: str | None = None,
        limit: int = DEFAULT_SUGGESTION_LIMIT,
    ) -> SearchSuggestionsResponse:
        """Autocomplete over titles, categories and skill names of open gigs.

        Matches are case-insensitive substrings. Queries shorter than two
        characters return no suggestions. Each source is capped before the
        sources are merged in title, category, skill order, and a text seen
        from an earlier source is not repeated.
        """
        text = (q or "").strip()
        normalized_limit = min(MAX_SUGGESTION_LIMIT, max(1, limit))
        if len(text) < MIN_SUGGESTION_QUERY_LENGTH:
            return SearchSuggestionsResponse(query=text or None)

        with tracer.start_as_current_span("search.suggest"):
            rows = await self._store(
                self.repository.suggest(text=text, now=self.clock(), caps=SUGGESTION_SOURCE_CAPS)
            )

        seen: set[str] = set()
        suggestions: list[SearchSuggestion] = []
        for source, value in rows:
            if value.lower() in seen:
                continue
            seen.add(value.lower())
            suggestions.append(SearchSuggestion(text=value, source=source))
        logger.info("gig suggestions limit=%s found=%s", normalized_limit, len(suggestions))
        return SearchSuggestionsResponse(query=text, suggestions=suggestions[:normalized_limit])

    async def _geo_search(self, plan: SearchPlan) -> tuple[list[RankedGig], int]:
        candidates = await self._store(self.repository.geo_candidates(plan, cap=self.geo_candidate_cap))
        if len(candidates) >= self.geo_candidate_cap:
            logger.warning("geo candidate cap reached cap=%s", self.geo_candidate_cap)
        # Text is a secondary filter over the geo-bounded set, never a second index lookup.
        if plan.query is not None and not plan.secondary_text_terms:
            # Only stop words or punctuation: nothing to match, as on the text path.
            matched: list[RankedGig] = []
        else:
            matched = [item for item in candidates if matches_any_term(item.gig, plan.secondary_text_terms)]
        ordering = resolve_ordering(plan.sort, has_text=False, has_geo=True)
        ranked = rank(matched, ordering)
        return ranked[plan.skip : plan.skip + plan.limit], len(ranked)

    async def _store(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError("store timed out") from exc


def get_search_service(
    repository: GigRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> SearchService:
    return SearchService(repository, store_timeout_seconds=settings.store_timeout_seconds)
