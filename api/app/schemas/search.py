from typing import Any, Literal

from pydantic import BaseModel, Field

from app.schemas.gigs import (
    ExperienceLevel,
    GigCategory,
    GigLocation,
    GigStatus,
    PaymentInfo,
    SkillRequirement,
    Timeline,
    Urgency,
    UtcDatetime,
)

SearchSort = Literal["relevance", "date", "rate_high", "rate_low", "urgency", "distance"]
SuggestionSource = Literal["title", "category", "skill"]


class GigSearchHit(BaseModel):
    id: str
    poster_id: str
    title: str
    description: str
    category: GigCategory
    sub_category: str | None = None
    urgency: Urgency
    location: GigLocation
    skills: list[SkillRequirement] = Field(default_factory=list)
    payment: PaymentInfo
    timeline: Timeline
    status: GigStatus
    experience_level: ExperienceLevel
    tools_required: list[str] = Field(default_factory=list)
    applications_count: int = 0
    views: int = 0
    posted_at: UtcDatetime | None = None
    expires_at: UtcDatetime | None = None
    urgency_score: int
    distance: float | None = None
    score: float | None = None


class SearchPagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    has_more: bool


class SearchMeta(BaseModel):
    query: str | None = None
    filters: dict[str, Any] = Field(default_factory=dict)
    sort: SearchSort
    results_found: bool


class GigSearchResponse(BaseModel):
    gigs: list[GigSearchHit] = Field(default_factory=list)
    pagination: SearchPagination
    search_meta: SearchMeta


class SearchSuggestion(BaseModel):
    text: str
    source: SuggestionSource


class SearchSuggestionsResponse(BaseModel):
    query: str | None = None
    suggestions: list[SearchSuggestion] = Field(default_factory=list)
