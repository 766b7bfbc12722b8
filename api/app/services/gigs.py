"""Gig and application operations against the store.

Every mutation is a read-modify-write of one gig document: read it with its
``version``, apply a lifecycle or ledger function in memory, check the
invariants, and write it back only if ``version`` is unchanged. A lost race
surfaces as ``ConcurrencyError``; most operations re-read and retry, accept
never does, so of two concurrent accepts exactly one wins.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any, TypeVar

from fastapi import Depends
from opentelemetry import trace

from app.core.config import Settings, get_settings
from app.schemas.gigs import (
    ApplicantApplicationOut,
    ApplicantApplicationPage,
    Application,
    ApplicationGigSummary,
    Gig,
    GigOut,
    GigPage,
)
from app.services import ledger, lifecycle
from app.services.constants import DEFAULT_EXPIRY, DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, MIN_PAGE_LIMIT
from app.services.errors import (
    ConcurrencyError,
    ConflictError,
    InvalidTransition,
    NotFoundError,
    StoreUnavailableError,
)
from app.services.repository import GigRepository, get_repository

T = TypeVar("T")

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_gig_out(gig: Gig) -> GigOut:
    return GigOut(**gig.model_dump(), application_summary=ledger.summarize(gig))


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def clamp_page(page: int, limit: int) -> tuple[int, int]:
    return max(1, page), min(MAX_PAGE_LIMIT, max(MIN_PAGE_LIMIT, limit))


class GigService:
    def __init__(
        self,
        repository: GigRepository,
        *,
        store_timeout_seconds: float = 15.0,
        max_attempts: int = 3,
        expiry: timedelta = DEFAULT_EXPIRY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.repository = repository
        self.store_timeout_seconds = store_timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.expiry = expiry
        self.clock = clock

    async def create_gig(self, poster_id: str, spec: Mapping[str, Any], *, publish: bool = True) -> Gig:
        with tracer.start_as_current_span("gigs.create"):
            gig = lifecycle.create_gig(poster_id, spec, publish=publish, now=self.clock(), expiry=self.expiry)
            ledger.check_invariants(gig)
            saved = await self._store(self.repository.insert_gig(gig))
            logger.info("gig created gig_id=%s poster_id=%s status=%s", saved.id, poster_id, saved.status)
            return saved

    async def get_gig(self, gig_id: str, *, record_view: bool = False) -> Gig:
        with tracer.start_as_current_span("gigs.get") as span:
            span.set_attribute("gig.id", gig_id)
            if record_view:
                await self._store(self.repository.increment_views(gig_id))
            return await self._store(self.repository.get_gig(gig_id))

    async def publish_gig(self, gig_id: str, acting_user_id: str) -> Gig:
        gig, _ = await self._mutate(
            "publish",
            gig_id,
            lambda gig, now: lifecycle.publish_gig(gig, acting_user_id, now=now, expiry=self.expiry),
        )
        return gig

    async def update_gig(self, gig_id: str, acting_user_id: str, changes: Mapping[str, Any]) -> Gig:
        gig, _ = await self._mutate(
            "update",
            gig_id,
            lambda gig, now: lifecycle.update_gig(gig, acting_user_id, changes, now=now),
        )
        return gig

    async def start_gig(self, gig_id: str, acting_user_id: str) -> Gig:
        gig, _ = await self._mutate(
            "start", gig_id, lambda gig, now: lifecycle.start_gig(gig, acting_user_id, now=now)
        )
        return gig

    async def complete_gig(self, gig_id: str, acting_user_id: str) -> Gig:
        gig, _ = await self._mutate(
            "complete", gig_id, lambda gig, now: lifecycle.complete_gig(gig, acting_user_id, now=now)
        )
        return gig

    async def cancel_gig(self, gig_id: str, acting_user_id: str) -> Gig:
        gig, _ = await self._mutate(
            "cancel", gig_id, lambda gig, now: lifecycle.cancel_gig(gig, acting_user_id, now=now)
        )
        return gig

    async def delete_gig(self, gig_id: str, acting_user_id: str) -> None:
        with tracer.start_as_current_span("gigs.delete") as span:
            span.set_attribute("gig.id", gig_id)
            for attempt in range(1, self.max_attempts + 1):
                gig = await self._store(self.repository.get_gig(gig_id))
                lifecycle.ensure_deletable(gig, acting_user_id)
                try:
                    await self._store(self.repository.delete_gig(gig_id, expected_version=gig.version))
                except ConcurrencyError:
                    if attempt >= self.max_attempts:
                        raise
                    logger.info("gig delete retry gig_id=%s attempt=%s", gig_id, attempt)
                    continue
                logger.info("gig deleted gig_id=%s poster_id=%s", gig_id, acting_user_id)
                return

    async def apply(
        self,
        gig_id: str,
        applicant_id: str,
        details: Mapping[str, Any] | None = None,
    ) -> Application:
        _, application = await self._mutate(
            "apply",
            gig_id,
            lambda gig, now: ledger.apply(gig, applicant_id, details, now=now),
        )
        return application

    async def accept(self, gig_id: str, application_id: str, acting_user_id: str) -> tuple[Gig, Application]:
        return await self._mutate(
            "accept",
            gig_id,
            lambda gig, now: ledger.accept(gig, application_id, acting_user_id, now=now),
            retry=False,
        )

    async def reject(self, gig_id: str, application_id: str, acting_user_id: str) -> Application:
        _, application = await self._mutate(
            "reject",
            gig_id,
            lambda gig, now: ledger.reject(gig, application_id, acting_user_id, now=now),
        )
        return application

    async def withdraw(self, gig_id: str, application_id: str, applicant_id: str) -> Application:
        _, application = await self._mutate(
            "withdraw",
            gig_id,
            lambda gig, now: ledger.withdraw(gig, application_id, applicant_id, now=now),
        )
        return application

    async def list_posted_gigs(
        self,
        poster_id: str,
        *,
        status: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> GigPage:
        page, limit = clamp_page(page, limit)
        gigs, total = await self._store(
            self.repository.list_by_poster(
                poster_id=poster_id,
                status=status,
                limit=limit,
                offset=(page - 1) * limit,
            )
        )
        return GigPage(
            gigs=[to_gig_out(gig) for gig in gigs],
            page=page,
            limit=limit,
            total=total,
            pages=page_count(total, limit),
        )

    async def list_applications(
        self,
        applicant_id: str,
        *,
        status: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> ApplicantApplicationPage:
        page, limit = clamp_page(page, limit)
        rows, total = await self._store(
            self.repository.list_by_applicant(
                applicant_id=applicant_id,
                status=status,
                limit=limit,
                offset=(page - 1) * limit,
            )
        )
        return ApplicantApplicationPage(
            applications=[
                ApplicantApplicationOut(
                    application=application,
                    gig=ApplicationGigSummary(
                        id=gig.id,
                        title=gig.title,
                        category=gig.category,
                        status=gig.status,
                        location=gig.location,
                        payment=gig.payment,
                        poster_id=gig.poster_id,
                    ),
                )
                for gig, application in rows
            ],
            page=page,
            limit=limit,
            total=total,
            pages=page_count(total, limit),
        )

    async def expire_due_gigs(self, *, limit: int) -> int:
        """Persist ``posted -> expired`` for gigs past ``expires_at``; returns how many were expired."""
        with tracer.start_as_current_span("gigs.expire_due") as span:
            gig_ids = await self._store(self.repository.list_expired_ids(now=self.clock(), limit=limit))
            expired = 0
            for gig_id in gig_ids:
                try:
                    await self._mutate("expire", gig_id, lambda gig, now: lifecycle.expire_gig(gig, now=now))
                except (ConflictError, InvalidTransition, NotFoundError) as exc:
                    # Changed by another writer since it was listed.
                    logger.info("gig expiry skipped gig_id=%s reason=%s", gig_id, exc)
                    continue
                expired += 1
            span.set_attribute("gigs.expired", expired)
            logger.info("gig expiry sweep candidates=%s expired=%s", len(gig_ids), expired)
            return expired

    async def _mutate(
        self,
        operation: str,
        gig_id: str,
        change: Callable[[Gig, datetime], T],
        *,
        retry: bool = True,
    ) -> tuple[Gig, T]:
        attempts = self.max_attempts if retry else 1
        with tracer.start_as_current_span(f"gigs.{operation}") as span:
            span.set_attribute("gig.id", gig_id)
            for attempt in range(1, attempts + 1):
                gig = await self._store(self.repository.get_gig(gig_id))
                expected_version = gig.version
                result = change(gig, self.clock())
                ledger.check_invariants(gig)
                try:
                    saved = await self._store(self.repository.replace_gig(gig, expected_version=expected_version))
                except ConcurrencyError:
                    if attempt >= attempts:
                        span.set_attribute("gig.conflict", True)
                        logger.info("gig %s lost write race gig_id=%s attempts=%s", operation, gig_id, attempt)
                        raise
                    logger.info("gig %s retry gig_id=%s attempt=%s", operation, gig_id, attempt)
                    continue
                logger.info(
                    "gig %s gig_id=%s status=%s version=%s",
                    operation,
                    gig_id,
                    saved.status,
                    saved.version,
                )
                return saved, result
        raise ConcurrencyError("gig was modified concurrently; retry the operation")

    async def _store(self, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.store_timeout_seconds)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailableError("store timed out") from exc


def get_gig_service(
    repository: GigRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> GigService:
    return GigService(
        repository,
        store_timeout_seconds=settings.store_timeout_seconds,
        max_attempts=settings.mutation_max_attempts,
        expiry=timedelta(days=settings.gig_expiry_days),
    )
