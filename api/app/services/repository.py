from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import datetime
from functools import lru_cache
from typing import Any, Protocol

import asyncpg  # type: ignore[import-untyped]
from asyncpg import exceptions as pg_exc

from app.core.config import get_settings
from app.schemas.gigs import Application, Gig
from app.services.errors import ConcurrencyError, ConflictError, NotFoundError, StoreUnavailableError
from app.services.query_builder import (
    AnyOfIgnoreCase,
    Between,
    ContainsIgnoreCase,
    Equals,
    NotBefore,
    SearchPlan,
)
from app.services.ranking import RankedGig, SortKey, order_by_sql
from app.services.store import InMemoryGigRepository
from app.services.text import query_terms

# ts_rank weights in {D, C, B, A} order: location, description/sub-category, skills/category, title.
TEXT_RANK_WEIGHTS = "{0.1, 0.3, 0.6, 1.0}"
IMMUTABLE_COLUMNS = {"id", "poster_id", "views", "version", "created_at"}
PREDICATE_COLUMNS = {
    "status": "g.status",
    "category": "g.category",
    "urgency": "g.urgency",
    "experience_level": "g.experience_level",
    "payment.payment_type": "g.payment_type",
    "payment.rate": "g.payment_rate",
    "skills.name": "g.skill_names",
    "location.address": "g.address",
    "location.city": "g.city",
    "location.state": "g.state",
    "expires_at": "g.expires_at",
}
GIG_COLUMNS_SQL = """
  g.id::text as id,
  g.poster_id,
  g.title,
  g.description,
  g.category,
  g.sub_category,
  g.skills,
  g.experience_level,
  g.tools_required,
  g.location,
  g.service_radius,
  g.allows_remote,
  g.payment,
  g.timeline,
  g.status,
  g.urgency,
  g.posted_at,
  g.expires_at,
  g.completion_date,
  g.assigned_to,
  g.views,
  g.applications_count,
  g.applications,
  g.version,
  g.created_at,
  g.updated_at
"""


class GigRepository(Protocol):
    async def close(self) -> None: ...

    async def insert_gig(self, gig: Gig) -> Gig: ...

    async def get_gig(self, gig_id: str) -> Gig: ...

    async def replace_gig(self, gig: Gig, *, expected_version: int) -> Gig: ...

    async def delete_gig(self, gig_id: str, *, expected_version: int) -> None: ...

    async def increment_views(self, gig_id: str) -> None: ...

    async def search(self, plan: SearchPlan, ordering: list[SortKey]) -> tuple[list[RankedGig], int]: ...

    async def geo_candidates(self, plan: SearchPlan, *, cap: int) -> list[RankedGig]: ...

    async def suggest(self, *, text: str, now: datetime, caps: Mapping[str, int]) -> list[tuple[str, str]]: ...

    async def list_by_poster(
        self, *, poster_id: str, status: str | None, limit: int, offset: int
    ) -> tuple[list[Gig], int]: ...

    async def list_by_applicant(
        self, *, applicant_id: str, status: str | None, limit: int, offset: int
    ) -> tuple[list[tuple[Gig, Application]], int]: ...

    async def list_expired_ids(self, *, now: datetime, limit: int) -> list[str]: ...


class PostgresGigRepository:
    """Gig documents in Postgres: one row per gig, applications embedded as jsonb.

    Writes are compare-and-swap on the ``version`` column, so every mutation of
    a gig is a single atomic statement.
    """

    def __init__(
        self,
        database_url: str | None,
        min_pool_size: int,
        max_pool_size: int,
        command_timeout_seconds: float,
    ) -> None:
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.command_timeout_seconds = command_timeout_seconds
        self._pool: asyncpg.Pool | None = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    async def insert_gig(self, gig: Gig) -> Gig:
        pool = await self._get_pool()
        columns = self._gig_columns(gig)
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        values_sql = ", ".join(f"{bind(value)}{cast}" for value, cast in columns.values())
        try:
            await pool.execute(
                f"insert into gigs ({', '.join(columns)}) values ({values_sql})",
                *params,
            )
        except pg_exc.UniqueViolationError as exc:
            raise ConflictError("gig already exists") from exc
        return gig

    async def get_gig(self, gig_id: str) -> Gig:
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                select {GIG_COLUMNS_SQL}
                from gigs g
                where g.id = $1::uuid
                """,
                gig_id,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise NotFoundError("gig not found") from exc
        if not row:
            raise NotFoundError("gig not found")
        return self._gig_row_to_model(row)

    async def replace_gig(self, gig: Gig, *, expected_version: int) -> Gig:
        pool = await self._get_pool()
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        assignments = [
            f"{column} = {bind(value)}{cast}"
            for column, (value, cast) in self._gig_columns(gig).items()
            if column not in IMMUTABLE_COLUMNS
        ]
        try:
            saved = await pool.fetchrow(
                f"""
                update gigs
                set {', '.join(assignments)}, version = version + 1
                where id = {bind(gig.id)}::uuid
                  and version = {bind(expected_version)}
                returning version, views
                """,
                *params,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise NotFoundError("gig not found") from exc

        if saved is None:
            await self._raise_missing_or_stale(pool, gig.id)
        return gig.model_copy(update={"version": int(saved["version"]), "views": int(saved["views"])})

    async def delete_gig(self, gig_id: str, *, expected_version: int) -> None:
        pool = await self._get_pool()
        try:
            deleted = await pool.fetchval(
                "delete from gigs where id = $1::uuid and version = $2 returning id::text",
                gig_id,
                expected_version,
            )
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise NotFoundError("gig not found") from exc
        if deleted is None:
            await self._raise_missing_or_stale(pool, gig_id)

    async def increment_views(self, gig_id: str) -> None:
        pool = await self._get_pool()
        try:
            # Relaxed counter: no version bump, so it never conflicts with lifecycle writes.
            status = await pool.execute("update gigs set views = views + 1 where id = $1::uuid", gig_id)
        except (pg_exc.InvalidTextRepresentationError, asyncpg.DataError) as exc:
            raise NotFoundError("gig not found") from exc
        if status.endswith(" 0"):
            raise NotFoundError("gig not found")

    async def search(self, plan: SearchPlan, ordering: list[SortKey]) -> tuple[list[RankedGig], int]:
        pool = await self._get_pool()
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions = self._compile_predicates(plan, bind)
        score_sql = "null::double precision"
        if plan.text_query is not None:
            terms = query_terms(plan.text_query)
            if not terms:
                return [], 0
            tsquery = f"to_tsquery('simple', {bind(' | '.join(terms))})"
            conditions.append(f"g.search_vector @@ {tsquery}")
            score_sql = f"ts_rank('{TEXT_RANK_WEIGHTS}', g.search_vector, {tsquery})"

        where_sql = " and ".join(conditions) if conditions else "true"
        count_params = list(params)
        limit_token = bind(plan.limit)
        offset_token = bind(plan.skip)

        rows = await pool.fetch(
            f"""
            select {GIG_COLUMNS_SQL}, {score_sql} as score
            from gigs g
            where {where_sql}
            order by {order_by_sql(ordering)}
            limit {limit_token}
            offset {offset_token}
            """,
            *params,
        )
        total = await pool.fetchval(f"select count(*) from gigs g where {where_sql}", *count_params)
        return [
            RankedGig(gig=self._gig_row_to_model(row), score=self._coerce_float(row["score"])) for row in rows
        ], int(total or 0)

    async def geo_candidates(self, plan: SearchPlan, *, cap: int) -> list[RankedGig]:
        if plan.geo is None:
            return []
        pool = await self._get_pool()
        params: list[Any] = []

        def bind(value: Any) -> str:
            params.append(value)
            return f"${len(params)}"

        conditions = self._compile_predicates(plan, bind)
        origin = f"ll_to_earth({bind(plan.geo.lat)}, {bind(plan.geo.lng)})"
        radius = bind(plan.geo.max_distance_m)
        conditions.append(f"earth_box({origin}, {radius}) @> ll_to_earth(g.lat, g.lng)")
        conditions.append(f"earth_distance({origin}, ll_to_earth(g.lat, g.lng)) <= {radius}")
        where_sql = " and ".join(conditions)

        rows = await pool.fetch(
            f"""
            select {GIG_COLUMNS_SQL}, earth_distance({origin}, ll_to_earth(g.lat, g.lng)) as distance_m
            from gigs g
            where {where_sql}
            order by distance_m asc, g.id asc
            limit {bind(cap)}
            """,
            *params,
        )
        return [
            RankedGig(gig=self._gig_row_to_model(row), distance_m=float(row["distance_m"])) for row in rows
        ]

    async def suggest(self, *, text: str, now: datetime, caps: Mapping[str, int]) -> list[tuple[str, str]]:
        pool = await self._get_pool()
        visible = "g.status = 'posted' and g.expires_at >= $1"
        rows = await pool.fetch(
            f"""
            select source, value
            from (
              (
                select distinct on (lower(g.title)) 1 as source_rank, 'title' as source, g.title as value
                from gigs g
                where {visible} and g.title ilike $2
                order by lower(g.title), g.title
                limit $3
              )
              union all
              (
                select distinct on (lower(g.category)) 2, 'category', g.category
                from gigs g
                where {visible} and g.category ilike $2
                order by lower(g.category), g.category
                limit $4
              )
              union all
              (
                select distinct on (lower(s.name)) 3, 'skill', s.name
                from gigs g
                cross join lateral jsonb_to_recordset(g.skills) as s(name text)
                where {visible} and s.name ilike $2
                order by lower(s.name), s.name
                limit $5
              )
            ) suggestions
            order by source_rank, lower(value), value
            """,
            now,
            f"%{_escape_like(text)}%",
            caps.get("title", 0),
            caps.get("category", 0),
            caps.get("skill", 0),
        )
        return [(row["source"], row["value"]) for row in rows]

    async def list_by_poster(
        self,
        *,
        poster_id: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[Gig], int]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {GIG_COLUMNS_SQL}
            from gigs g
            where g.poster_id = $1
              and ($2::text is null or g.status = $2)
            order by g.created_at desc, g.id asc
            limit $3
            offset $4
            """,
            poster_id,
            status,
            limit,
            offset,
        )
        total = await pool.fetchval(
            "select count(*) from gigs where poster_id = $1 and ($2::text is null or status = $2)",
            poster_id,
            status,
        )
        return [self._gig_row_to_model(row) for row in rows], int(total or 0)

    async def list_by_applicant(
        self,
        *,
        applicant_id: str,
        status: str | None,
        limit: int,
        offset: int,
    ) -> tuple[list[tuple[Gig, Application]], int]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            select {GIG_COLUMNS_SQL}, a.value as application
            from gigs g
            cross join lateral jsonb_array_elements(g.applications) as a(value)
            where g.applications @> jsonb_build_array(jsonb_build_object('applicant_id', $1::text))
              and a.value->>'applicant_id' = $1
              and ($2::text is null or a.value->>'status' = $2)
            order by (a.value->>'applied_at')::timestamptz desc, g.id asc
            limit $3
            offset $4
            """,
            applicant_id,
            status,
            limit,
            offset,
        )
        total = await pool.fetchval(
            """
            select count(*)
            from gigs g
            cross join lateral jsonb_array_elements(g.applications) as a(value)
            where g.applications @> jsonb_build_array(jsonb_build_object('applicant_id', $1::text))
              and a.value->>'applicant_id' = $1
              and ($2::text is null or a.value->>'status' = $2)
            """,
            applicant_id,
            status,
        )
        return [
            (self._gig_row_to_model(row), Application.model_validate(self._coerce_json_dict(row["application"])))
            for row in rows
        ], int(total or 0)

    async def list_expired_ids(self, *, now: datetime, limit: int) -> list[str]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            """
            select id::text as id
            from gigs
            where status = 'posted'
              and expires_at < $1
            order by expires_at asc, id asc
            limit $2
            """,
            now,
            limit,
        )
        return [row["id"] for row in rows]

    async def _raise_missing_or_stale(self, pool: asyncpg.Pool, gig_id: str) -> None:
        exists = await pool.fetchval("select exists(select 1 from gigs where id = $1::uuid)", gig_id)
        if not exists:
            raise NotFoundError("gig not found")
        raise ConcurrencyError("gig was modified concurrently; retry the operation")

    @staticmethod
    def _compile_predicates(plan: SearchPlan, bind: Any) -> list[str]:
        conditions: list[str] = []
        for predicate in plan.predicates:
            if isinstance(predicate, Equals):
                conditions.append(f"{PREDICATE_COLUMNS[predicate.field]} = {bind(predicate.value)}")
            elif isinstance(predicate, AnyOfIgnoreCase):
                values = [value.lower() for value in predicate.values]
                conditions.append(f"{PREDICATE_COLUMNS[predicate.field]} && {bind(values)}::text[]")
            elif isinstance(predicate, Between):
                column = PREDICATE_COLUMNS[predicate.field]
                if predicate.minimum is not None:
                    conditions.append(f"{column} >= {bind(predicate.minimum)}")
                if predicate.maximum is not None:
                    conditions.append(f"{column} <= {bind(predicate.maximum)}")
            elif isinstance(predicate, ContainsIgnoreCase):
                token = bind(f"%{_escape_like(predicate.text)}%")
                matches = " or ".join(
                    f"coalesce({PREDICATE_COLUMNS[field]}, '') ilike {token}" for field in predicate.fields
                )
                conditions.append(f"({matches})")
            elif isinstance(predicate, NotBefore):
                conditions.append(f"{PREDICATE_COLUMNS[predicate.field]} >= {bind(predicate.when)}")
            else:
                raise TypeError(f"unsupported predicate: {predicate!r}")
        return conditions

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.database_url:
            raise StoreUnavailableError("GB_DATABASE_URL is required")

        if self._pool is not None:
            return self._pool

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=self.command_timeout_seconds,
            )
            return self._pool
        except Exception as exc:  # pragma: no cover - depends on environment
            raise StoreUnavailableError("database unavailable") from exc

    @staticmethod
    def _gig_columns(gig: Gig) -> dict[str, tuple[Any, str]]:
        document = gig.model_dump(mode="json")
        return {
            "id": (gig.id, "::uuid"),
            "poster_id": (gig.poster_id, ""),
            "title": (gig.title, ""),
            "description": (gig.description, ""),
            "category": (gig.category, ""),
            "sub_category": (gig.sub_category, "::text"),
            "skills": (json.dumps(document["skills"]), "::jsonb"),
            "skill_names": ([skill.name.lower() for skill in gig.skills], "::text[]"),
            "skills_text": (" ".join(skill.name for skill in gig.skills), ""),
            "experience_level": (gig.experience_level, ""),
            "tools_required": (list(gig.tools_required), "::text[]"),
            "location": (json.dumps(document["location"]), "::jsonb"),
            "lng": (gig.location.lng, "::double precision"),
            "lat": (gig.location.lat, "::double precision"),
            "address": (gig.location.address, ""),
            "city": (gig.location.city, "::text"),
            "state": (gig.location.state, "::text"),
            "service_radius": (gig.service_radius, "::double precision"),
            "allows_remote": (gig.allows_remote, "::boolean"),
            "payment": (json.dumps(document["payment"]), "::jsonb"),
            "payment_rate": (gig.payment.rate, "::double precision"),
            "payment_type": (gig.payment.payment_type, ""),
            "timeline": (json.dumps(document["timeline"]), "::jsonb"),
            "status": (gig.status, ""),
            "urgency": (gig.urgency, ""),
            "posted_at": (gig.posted_at, "::timestamptz"),
            "expires_at": (gig.expires_at, "::timestamptz"),
            "completion_date": (gig.completion_date, "::timestamptz"),
            "assigned_to": (gig.assigned_to, "::text"),
            "views": (gig.views, "::integer"),
            "applications": (json.dumps(document["applications"]), "::jsonb"),
            "applications_count": (len(gig.applications), "::integer"),
            "version": (gig.version, "::integer"),
            "created_at": (gig.created_at, "::timestamptz"),
            "updated_at": (gig.updated_at, "::timestamptz"),
        }

    def _gig_row_to_model(self, row: asyncpg.Record) -> Gig:
        return Gig.model_validate(
            {
                "id": row["id"],
                "poster_id": row["poster_id"],
                "title": row["title"],
                "description": row["description"],
                "category": row["category"],
                "sub_category": row["sub_category"],
                "skills": self._coerce_json_list(row["skills"]),
                "experience_level": row["experience_level"],
                "tools_required": list(row["tools_required"] or []),
                "location": self._coerce_json_dict(row["location"]),
                "service_radius": self._coerce_float(row["service_radius"]),
                "allows_remote": bool(row["allows_remote"]),
                "payment": self._coerce_json_dict(row["payment"]),
                "timeline": self._coerce_json_dict(row["timeline"]),
                "status": row["status"],
                "urgency": row["urgency"],
                "posted_at": row["posted_at"],
                "expires_at": row["expires_at"],
                "completion_date": row["completion_date"],
                "assigned_to": row["assigned_to"],
                "views": int(row["views"]),
                "applications_count": int(row["applications_count"]),
                "applications": self._coerce_json_list(row["applications"]),
                "version": int(row["version"]),
                "created_at": row["created_at"],
                "updated_at": row["updated_at"],
            }
        )

    @staticmethod
    def _coerce_float(value: Any) -> float | None:
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _coerce_json_list(value: Any) -> list[dict[str, Any]]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return []
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @staticmethod
    def _coerce_json_dict(value: Any) -> dict[str, Any]:
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                return {}
        if not isinstance(value, dict):
            return {}
        return value


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@lru_cache
def get_repository() -> GigRepository:
    settings = get_settings()
    if settings.storage_backend == "memory":
        return InMemoryGigRepository()
    return PostgresGigRepository(
        database_url=settings.database_url,
        min_pool_size=settings.database_pool_min_size,
        max_pool_size=settings.database_pool_max_size,
        command_timeout_seconds=settings.store_timeout_seconds,
    )
