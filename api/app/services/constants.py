from datetime import timedelta

DEFAULT_EXPIRY = timedelta(days=30)
DEFAULT_RADIUS_KM = 15.0
MAX_RADIUS_KM = 500.0
DEFAULT_PAGE_LIMIT = 20
MIN_PAGE_LIMIT = 1
MAX_PAGE_LIMIT = 50
GEO_CANDIDATE_CAP = 1000
DEFAULT_SUGGESTION_LIMIT = 10
MAX_SUGGESTION_LIMIT = 20
MIN_SUGGESTION_QUERY_LENGTH = 2
# Per-source caps before suggestions are merged, in merge order.
SUGGESTION_SOURCE_CAPS = {"title": 5, "category": 3, "skill": 5}
METERS_PER_KM = 1000.0

GIG_STATUSES = (
    "draft",
    "posted",
    "active",
    "assigned",
    "in_progress",
    "completed",
    "cancelled",
    "expired",
)
APPLICATION_STATUSES = ("pending", "accepted", "rejected", "withdrawn")
URGENCY_LEVELS = ("low", "medium", "high", "urgent")
PAYMENT_TYPES = ("hourly", "fixed", "daily", "weekly")
EXPERIENCE_LEVELS = ("entry", "intermediate", "experienced", "expert")
SORT_MODES = ("relevance", "date", "rate_high", "rate_low", "urgency", "distance")

URGENCY_SCORES = {"urgent": 4, "high": 3, "medium": 2, "low": 1}
DEFAULT_URGENCY_SCORE = 2

# Store-side free-text weights; location fields rank lowest.
TEXT_FIELD_WEIGHTS = {
    "title": 10,
    "skills": 8,
    "category": 6,
    "description": 4,
    "sub_category": 3,
    "city": 2,
    "state": 2,
    "address": 1,
}

# "all" is what search forms send for an unset select box.
WILDCARD_FILTER_VALUE = "all"

GIG_CATEGORIES = (
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
)
