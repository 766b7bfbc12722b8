"""Gig lifecycle: creation, publishing, progress, completion, cancellation and expiry.

Every function mutates the gig it is handed in place. Persisting the result
atomically is the caller's job (see ``app.services.gigs``).
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from app.schemas.gigs import Gig
from app.services.constants import DEFAULT_EXPIRY
from app.services.errors import AuthorizationError, ConflictError, InvalidTransition, ValidationError

GIG_TRANSITIONS: dict[str, set[str]] = {
    "draft": {"posted"},
    "posted": {"assigned", "cancelled", "expired"},
    "assigned": {"in_progress", "completed", "cancelled"},
    "in_progress": {"completed", "cancelled"},
}
REQUIRED_GIG_FIELDS = ("title", "description", "location", "payment")
EDITABLE_GIG_FIELDS = {
    "title",
    "description",
    "category",
    "sub_category",
    "skills",
    "experience_level",
    "tools_required",
    "location",
    "service_radius",
    "allows_remote",
    "payment",
    "timeline",
    "urgency",
    "expires_at",
}
EDITABLE_STATUSES = {"draft", "posted"}
UNDELETABLE_STATUSES = {"assigned", "in_progress"}


def ensure_transition(*, from_status: str, to_status: str) -> None:
    allowed = GIG_TRANSITIONS.get(from_status)
    if not allowed or to_status not in allowed:
        raise InvalidTransition(f"invalid gig status transition: {from_status} -> {to_status}")


def ensure_owner(gig: Gig, acting_user_id: str) -> None:
    if acting_user_id != gig.poster_id:
        raise AuthorizationError("only the gig poster can perform this action")


def touch(gig: Gig, now: datetime) -> None:
    """Recompute server-side derived fields."""
    gig.applications_count = len(gig.applications)
    gig.updated_at = now


def is_expired(gig: Gig, *, now: datetime | None = None) -> bool:
    current = now or datetime.now(timezone.utc)
    return gig.expires_at is not None and gig.expires_at < current


def create_gig(
    poster_id: str,
    spec: Mapping[str, Any],
    *,
    publish: bool = True,
    now: datetime | None = None,
    expiry: timedelta = DEFAULT_EXPIRY,
) -> Gig:
    current = now or datetime.now(timezone.utc)
    if not poster_id or not poster_id.strip():
        raise ValidationError("poster_id is required")

    missing = [field for field in REQUIRED_GIG_FIELDS if not spec.get(field)]
    if missing:
        raise ValidationError(f"missing required fields: {', '.join(missing)}")

    payload = {key: value for key, value in spec.items() if key in EDITABLE_GIG_FIELDS and value is not None}
    try:
        gig = Gig.model_validate(
            {
                **payload,
                "id": str(uuid4()),
                "poster_id": poster_id,
                "status": "draft",
                "created_at": current,
                "updated_at": current,
            }
        )
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc

    _validate_schedule(gig, now=current)
    if publish:
        _publish(gig, now=current, expiry=expiry)
    touch(gig, current)
    return gig


def publish_gig(
    gig: Gig,
    acting_user_id: str,
    *,
    now: datetime | None = None,
    expiry: timedelta = DEFAULT_EXPIRY,
) -> Gig:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    ensure_transition(from_status=gig.status, to_status="posted")
    _validate_schedule(gig, now=current)
    _publish(gig, now=current, expiry=expiry)
    touch(gig, current)
    return gig


def update_gig(gig: Gig, acting_user_id: str, changes: Mapping[str, Any], *, now: datetime | None = None) -> Gig:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    if gig.status not in EDITABLE_STATUSES:
        raise ConflictError(f"gig cannot be edited while {gig.status}")

    rejected = sorted(set(changes) - EDITABLE_GIG_FIELDS)
    if rejected:
        raise ValidationError(f"fields are not editable: {', '.join(rejected)}")

    merged = gig.model_dump()
    merged.update({key: value for key, value in changes.items() if value is not None})
    try:
        updated = Gig.model_validate(merged)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc

    _validate_schedule(updated, now=current)
    if updated.status == "posted" and updated.expires_at is not None and updated.expires_at <= current:
        raise ValidationError("expires_at must be in the future")

    for field in EDITABLE_GIG_FIELDS:
        setattr(gig, field, getattr(updated, field))
    touch(gig, current)
    return gig


def start_gig(gig: Gig, acting_user_id: str, *, now: datetime | None = None) -> Gig:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    ensure_transition(from_status=gig.status, to_status="in_progress")
    gig.status = "in_progress"
    touch(gig, current)
    return gig


def complete_gig(gig: Gig, acting_user_id: str, *, now: datetime | None = None) -> Gig:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    ensure_transition(from_status=gig.status, to_status="completed")
    gig.status = "completed"
    gig.completion_date = current
    touch(gig, current)
    return gig


def cancel_gig(gig: Gig, acting_user_id: str, *, now: datetime | None = None) -> Gig:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    ensure_transition(from_status=gig.status, to_status="cancelled")
    gig.status = "cancelled"
    _reject_pending(gig)
    touch(gig, current)
    return gig


def expire_gig(gig: Gig, *, now: datetime | None = None) -> Gig:
    current = now or datetime.now(timezone.utc)
    if not is_expired(gig, now=current):
        raise ConflictError("gig has not reached expires_at")
    ensure_transition(from_status=gig.status, to_status="expired")
    gig.status = "expired"
    _reject_pending(gig)
    touch(gig, current)
    return gig


def ensure_deletable(gig: Gig, acting_user_id: str) -> None:
    ensure_owner(gig, acting_user_id)
    if gig.status in UNDELETABLE_STATUSES:
        raise ConflictError(f"gig cannot be deleted while {gig.status}")


def record_view(gig: Gig) -> Gig:
    gig.views += 1
    return gig


def _publish(gig: Gig, *, now: datetime, expiry: timedelta) -> None:
    if gig.expires_at is not None and gig.expires_at <= now:
        raise ValidationError("expires_at must be in the future")
    gig.status = "posted"
    gig.posted_at = now
    if gig.expires_at is None:
        gig.expires_at = now + expiry


def _validate_schedule(gig: Gig, *, now: datetime) -> None:
    timeline = gig.timeline
    if timeline.start_date and timeline.end_date and timeline.start_date >= timeline.end_date:
        raise ValidationError("start date must be before end date")
    if timeline.deadline and timeline.deadline < now:
        raise ValidationError("deadline cannot be in the past")


def _reject_pending(gig: Gig) -> None:
    for application in gig.applications:
        if application.status == "pending":
            application.status = "rejected"
