from __future__ import annotations

import asyncio
import os
from collections.abc import Iterator
from pathlib import Path

import asyncpg  # type: ignore[import-untyped]
import pytest

from app.services import ledger, lifecycle
from app.services.errors import ConcurrencyError, ConflictError, NotFoundError
from app.services.gigs import GigService
from app.services.repository import PostgresGigRepository
from app.services.search import SearchService
from conftest import NOW, ORIGIN_LAT, ORIGIN_LNG, POSTER, gig_spec, run

MIGRATION = Path(__file__).resolve().parents[2] / "db" / "migrations" / "0001_gigs.sql"


@pytest.fixture(scope="session")
def database_url() -> str:
    url = os.getenv("GB_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not url:
        pytest.skip("integration tests require GB_DATABASE_URL or DATABASE_URL")
    return url


@pytest.fixture
def repository(database_url: str) -> Iterator[PostgresGigRepository]:
    run(_reset_schema(database_url))
    yield PostgresGigRepository(
        database_url=database_url,
        min_pool_size=1,
        max_pool_size=4,
        command_timeout_seconds=15,
    )


def test_insert_get_and_compare_and_swap(repository: PostgresGigRepository) -> None:
    async def scenario() -> None:
        try:
            gig = await repository.insert_gig(lifecycle.create_gig(POSTER, gig_spec(), now=NOW))
            loaded = await repository.get_gig(gig.id)
            assert loaded.title == gig.title
            assert loaded.location.lat == pytest.approx(ORIGIN_LAT)
            assert loaded.expires_at == gig.expires_at

            stale = await repository.get_gig(gig.id)
            ledger.apply(loaded, "worker-b", now=NOW)
            saved = await repository.replace_gig(loaded, expected_version=loaded.version)
            assert saved.version == 1

            ledger.apply(stale, "worker-c", now=NOW)
            with pytest.raises(ConcurrencyError):
                await repository.replace_gig(stale, expected_version=stale.version)

            await repository.increment_views(gig.id)
            current = await repository.get_gig(gig.id)
            assert current.views == 1
            assert current.version == 1
            assert [application.applicant_id for application in current.applications] == ["worker-b"]

            with pytest.raises(NotFoundError):
                await repository.get_gig("not-a-uuid")
        finally:
            await repository.close()

    run(scenario())


def test_concurrent_accepts_have_one_winner(repository: PostgresGigRepository) -> None:
    service = GigService(repository, clock=lambda: NOW)

    async def scenario() -> list[object]:
        try:
            gig = await service.create_gig(POSTER, gig_spec())
            b = await service.apply(gig.id, "worker-b")
            c = await service.apply(gig.id, "worker-c")
            return list(
                await asyncio.gather(
                    service.accept(gig.id, b.id, POSTER),
                    service.accept(gig.id, c.id, POSTER),
                    return_exceptions=True,
                )
            )
        finally:
            await repository.close()

    results = run(scenario())

    failures = [result for result in results if isinstance(result, BaseException)]
    assert len(failures) == 1
    # Interleaved writers lose the version check; a serialized loser finds its application rejected.
    assert isinstance(failures[0], (ConcurrencyError, ConflictError))


def test_search_paths(repository: PostgresGigRepository) -> None:
    service = GigService(repository, clock=lambda: NOW)
    search = SearchService(repository, clock=lambda: NOW)

    async def scenario() -> None:
        try:
            near = await service.create_gig(POSTER, gig_spec(title="Kitchen cleaning"))
            await service.create_gig(
                POSTER,
                gig_spec(
                    title="Lawn mowing",
                    description="Front yard",
                    category="gardening",
                    skills=[{"name": "Mowing", "category": "gardening"}],
                ),
            )
            await service.create_gig(
                POSTER,
                gig_spec(location={"lat": ORIGIN_LAT + 1, "lng": ORIGIN_LNG, "address": "Far"}),
            )

            geo = await search.search(q="cleaning", lat=ORIGIN_LAT, lng=ORIGIN_LNG, radius_km=5, sort="distance")
            assert [hit.id for hit in geo.gigs] == [near.id]
            assert geo.gigs[0].distance == 0.0

            text = await search.search(q="cleaning")
            assert text.pagination.total == 2
            assert all(hit.score is not None and hit.score > 0 for hit in text.gigs)

            skills = await search.search(skills="MOWING")
            assert skills.pagination.total == 1

            page_one = await search.search(sort="date", page=1, limit=2)
            page_two = await search.search(sort="date", page=2, limit=2)
            everything = await search.search(sort="date", limit=4)
            assert [hit.id for hit in page_one.gigs + page_two.gigs] == [hit.id for hit in everything.gigs]
        finally:
            await repository.close()

    run(scenario())


async def _reset_schema(database_url: str) -> None:
    conn = await asyncpg.connect(database_url)
    try:
        await conn.execute("drop table if exists gigs")
        await conn.execute(MIGRATION.read_text())
    finally:
        await conn.close()


def test_non_ascii_text_and_suggestions(repository: PostgresGigRepository) -> None:
    service = GigService(repository, clock=lambda: NOW)
    search = SearchService(repository, clock=lambda: NOW)

    async def scenario() -> None:
        try:
            cafe = await service.create_gig(POSTER, gig_spec(title="Café counter staff", skills=[]))
            hindi = await service.create_gig(POSTER, gig_spec(title="Flat help", description="सफाई सेवा for flat"))

            assert [hit.id for hit in (await search.search(q="CAFÉ")).gigs] == [cafe.id]
            assert [hit.id for hit in (await search.search(q="सफाई")).gigs] == [hindi.id]

            suggestions = await search.suggest(q="caf")
            assert [(item.text, item.source) for item in suggestions.suggestions] == [("Café counter staff", "title")]
        finally:
            await repository.close()

    run(scenario())
