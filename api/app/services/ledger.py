"""Applications embedded in a gig.

A gig is the aggregate root for its applications: there is no way to change an
application other than through these functions, applied to the owning gig
inside a single atomic write.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from app.schemas.gigs import Application, ApplicationSummary, Gig
from app.services.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from app.services.lifecycle import ensure_owner, ensure_transition, is_expired, touch

APPLICATION_DETAIL_FIELDS = {"proposed_rate", "message", "estimated_duration", "portfolio_links"}


def apply(
    gig: Gig,
    applicant_id: str,
    details: Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> Application:
    current = now or datetime.now(timezone.utc)
    if not applicant_id or not applicant_id.strip():
        raise ValidationError("applicant_id is required")
    if gig.status != "posted" or is_expired(gig, now=current):
        raise ConflictError("gig not open")
    if applicant_id == gig.poster_id:
        raise ConflictError("self-application")
    if any(application.applicant_id == applicant_id for application in gig.applications):
        raise ConflictError("duplicate")

    fields = {key: value for key, value in (details or {}).items() if key in APPLICATION_DETAIL_FIELDS}
    try:
        application = Application(
            id=str(uuid4()),
            applicant_id=applicant_id,
            applied_at=current,
            status="pending",
            **fields,
        )
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc

    gig.applications.append(application)
    touch(gig, current)
    return application


def accept(gig: Gig, application_id: str, acting_user_id: str, *, now: datetime | None = None) -> Application:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    target = find_application(gig, application_id)
    if target.status != "pending":
        raise ConflictError("not pending")
    ensure_transition(from_status=gig.status, to_status="assigned")

    target.status = "accepted"
    for application in gig.applications:
        if application.id != target.id and application.status == "pending":
            application.status = "rejected"
    gig.assigned_to = target.applicant_id
    gig.status = "assigned"
    touch(gig, current)
    return target


def reject(gig: Gig, application_id: str, acting_user_id: str, *, now: datetime | None = None) -> Application:
    current = now or datetime.now(timezone.utc)
    ensure_owner(gig, acting_user_id)
    target = find_application(gig, application_id)
    if target.status != "pending":
        raise ConflictError("not pending")
    target.status = "rejected"
    touch(gig, current)
    return target


def withdraw(gig: Gig, application_id: str, applicant_id: str, *, now: datetime | None = None) -> Application:
    current = now or datetime.now(timezone.utc)
    target = find_application(gig, application_id)
    if target.applicant_id != applicant_id:
        raise AuthorizationError("only the applicant can withdraw this application")
    if target.status != "pending":
        raise ConflictError("not pending")
    # Kept in the ledger so the applicant cannot re-apply to the same gig.
    target.status = "withdrawn"
    touch(gig, current)
    return target


def find_application(gig: Gig, application_id: str) -> Application:
    for application in gig.applications:
        if application.id == application_id:
            return application
    raise NotFoundError("application not found")


def summarize(gig: Gig) -> ApplicationSummary:
    counts = Counter(application.status for application in gig.applications)
    return ApplicationSummary(
        pending=counts["pending"],
        accepted=counts["accepted"],
        rejected=counts["rejected"],
        withdrawn=counts["withdrawn"],
        total=len(gig.applications),
    )


def check_invariants(gig: Gig) -> None:
    applicant_ids = [application.applicant_id for application in gig.applications]
    if gig.poster_id in applicant_ids:
        raise ConflictError("invariant violated: poster applied to own gig")
    if len(set(applicant_ids)) != len(applicant_ids):
        raise ConflictError("invariant violated: duplicate application for applicant")
    if gig.applications_count != len(gig.applications):
        raise ConflictError("invariant violated: applications_count out of sync")

    accepted = [application for application in gig.applications if application.status == "accepted"]
    if len(accepted) > 1:
        raise ConflictError("invariant violated: more than one accepted application")

    if gig.status == "assigned" and not accepted:
        raise ConflictError("invariant violated: assigned gig without an accepted application")
    if accepted:
        if gig.assigned_to != accepted[0].applicant_id:
            raise ConflictError("invariant violated: assigned_to does not match accepted applicant")
        if gig.status in {"draft", "posted", "active", "expired"}:
            raise ConflictError(f"invariant violated: accepted application on {gig.status} gig")
    elif gig.assigned_to is not None:
        raise ConflictError("invariant violated: assigned_to set without an accepted application")
