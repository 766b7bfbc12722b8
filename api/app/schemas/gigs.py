from datetime import datetime, timezone
from typing import Annotated, Literal

from pydantic import AfterValidator, BaseModel, Field

GigStatus = Literal["draft", "posted", "active", "assigned", "in_progress", "completed", "cancelled", "expired"]
ApplicationStatus = Literal["pending", "accepted", "rejected", "withdrawn"]
Urgency = Literal["low", "medium", "high", "urgent"]
ExperienceLevel = Literal["entry", "intermediate", "experienced", "expert"]
Proficiency = Literal["beginner", "intermediate", "advanced", "expert"]
PaymentType = Literal["hourly", "fixed", "daily", "weekly"]
PaymentMethod = Literal["cash", "upi", "bank_transfer", "razorpay"]
PreferredTime = Literal["morning", "afternoon", "evening", "night", "anytime"]
GigCategory = Literal[
    "home_services",
    "repair_maintenance",
    "cleaning",
    "gardening",
    "tech_services",
    "tutoring",
    "photography",
    "event_services",
    "delivery",
    "personal_care",
    "pet_services",
    "automotive",
    "construction",
    "electrical",
    "plumbing",
    "painting",
    "moving",
    "handyman",
    "security",
    "other",
]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class GigLocation(BaseModel):
    lng: float = Field(..., ge=-180, le=180)
    lat: float = Field(..., ge=-90, le=90)
    address: str = Field(..., min_length=1)
    city: str | None = None
    state: str | None = None
    country: str = "India"
    pincode: str | None = None


class SkillRequirement(BaseModel):
    name: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    proficiency: Proficiency = "intermediate"
    is_required: bool = True


class PaymentInfo(BaseModel):
    rate: float = Field(..., ge=0)
    currency: str = "INR"
    payment_type: PaymentType
    payment_method: PaymentMethod
    total_budget: float | None = Field(default=None, ge=0)


class Timeline(BaseModel):
    start_date: UtcDatetime | None = None
    end_date: UtcDatetime | None = None
    deadline: UtcDatetime | None = None
    is_flexible: bool = False
    preferred_time: PreferredTime = "anytime"


class Application(BaseModel):
    id: str
    applicant_id: str
    applied_at: UtcDatetime
    status: ApplicationStatus = "pending"
    proposed_rate: float | None = Field(default=None, ge=0)
    message: str | None = Field(default=None, max_length=1000)
    estimated_duration: float | None = Field(default=None, ge=0)
    portfolio_links: list[str] = Field(default_factory=list)


class Gig(BaseModel):
    id: str
    poster_id: str
    title: str
    description: str
    category: GigCategory
    sub_category: str | None = None
    skills: list[SkillRequirement] = Field(default_factory=list)
    experience_level: ExperienceLevel = "intermediate"
    tools_required: list[str] = Field(default_factory=list)
    location: GigLocation
    service_radius: float | None = Field(default=None, ge=1, le=100)
    allows_remote: bool = False
    payment: PaymentInfo
    timeline: Timeline = Field(default_factory=Timeline)
    status: GigStatus = "draft"
    urgency: Urgency = "medium"
    posted_at: UtcDatetime | None = None
    expires_at: UtcDatetime | None = None
    completion_date: UtcDatetime | None = None
    assigned_to: str | None = None
    views: int = 0
    applications_count: int = 0
    applications: list[Application] = Field(default_factory=list)
    version: int = 0
    created_at: UtcDatetime
    updated_at: UtcDatetime


class GigCreateRequest(BaseModel):
    # Required fields are optional here so the lifecycle manager is the one place that enforces them.
    title: str | None = Field(default=None, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    category: GigCategory = "other"
    sub_category: str | None = None
    skills: list[SkillRequirement] = Field(default_factory=list)
    experience_level: ExperienceLevel = "intermediate"
    tools_required: list[str] = Field(default_factory=list)
    location: GigLocation | None = None
    service_radius: float | None = Field(default=None, ge=1, le=100)
    allows_remote: bool = False
    payment: PaymentInfo | None = None
    timeline: Timeline = Field(default_factory=Timeline)
    urgency: Urgency = "medium"
    expires_at: UtcDatetime | None = None


class GigUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1, max_length=2000)
    category: GigCategory | None = None
    sub_category: str | None = None
    skills: list[SkillRequirement] | None = None
    experience_level: ExperienceLevel | None = None
    tools_required: list[str] | None = None
    location: GigLocation | None = None
    service_radius: float | None = Field(default=None, ge=1, le=100)
    allows_remote: bool | None = None
    payment: PaymentInfo | None = None
    timeline: Timeline | None = None
    urgency: Urgency | None = None
    expires_at: UtcDatetime | None = None


class ApplyRequest(BaseModel):
    proposed_rate: float | None = Field(default=None, ge=0)
    message: str | None = Field(default=None, max_length=1000)
    estimated_duration: float | None = Field(default=None, ge=0)
    portfolio_links: list[str] = Field(default_factory=list)


class ApplicationSummary(BaseModel):
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    withdrawn: int = 0
    total: int = 0


class GigOut(Gig):
    application_summary: ApplicationSummary = Field(default_factory=ApplicationSummary)


class GigPage(BaseModel):
    gigs: list[GigOut] = Field(default_factory=list)
    page: int
    limit: int
    total: int
    pages: int


class ApplicationGigSummary(BaseModel):
    id: str
    title: str
    category: str
    status: GigStatus
    location: GigLocation
    payment: PaymentInfo
    poster_id: str


class ApplicantApplicationOut(BaseModel):
    application: Application
    gig: ApplicationGigSummary


class ApplicantApplicationPage(BaseModel):
    applications: list[ApplicantApplicationOut] = Field(default_factory=list)
    page: int
    limit: int
    total: int
    pages: int


class ExpireSweepOut(BaseModel):
    expired: int
