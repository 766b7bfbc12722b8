from fastapi import APIRouter, Depends, Query

from app.api.errors import to_http_exception
from app.schemas.search import GigSearchResponse, SearchSuggestionsResponse
from app.services.constants import DEFAULT_PAGE_LIMIT, DEFAULT_SUGGESTION_LIMIT
from app.services.errors import MarketplaceError
from app.services.search import SearchService, get_search_service

router = APIRouter()


@router.get("/gigs", response_model=GigSearchResponse)
async def search_gigs(
    service: SearchService = Depends(get_search_service),
    q: str | None = Query(default=None),
    category: str | None = Query(default=None),
    skills: list[str] | None = Query(default=None),
    min_rate: float | None = Query(default=None),
    max_rate: float | None = Query(default=None),
    payment_type: str | None = Query(default=None),
    urgency: str | None = Query(default=None),
    experience_level: str | None = Query(default=None),
    lat: float | None = Query(default=None),
    lng: float | None = Query(default=None),
    radius: float | None = Query(default=None, description="km"),
    location: str | None = Query(default=None),
    sort: str = Query(default="relevance"),
    page: int = Query(default=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT),
) -> GigSearchResponse:
    try:
        return await service.search(
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
            radius_km=radius,
            location=location,
            sort=sort,
            page=page,
            limit=limit,
        )
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc


@router.get("/suggestions", response_model=SearchSuggestionsResponse)
async def search_suggestions(
    service: SearchService = Depends(get_search_service),
    q: str | None = Query(default=None),
    limit: int = Query(default=DEFAULT_SUGGESTION_LIMIT),
) -> SearchSuggestionsResponse:
    try:
        return await service.suggest(q=q, limit=limit)
    except MarketplaceError as exc:
        raise to_http_exception(exc) from exc
