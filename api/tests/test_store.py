from __future__ import annotations

from datetime import timedelta

import pytest

from app.services import ledger, lifecycle
from app.services.errors import ConcurrencyError, ConflictError, NotFoundError
from app.services.query_builder import build_search_plan
from app.services.ranking import resolve_ordering
from app.services.store import InMemoryGigRepository
from conftest import NOW, ORIGIN_LAT, ORIGIN_LNG, POSTER, gig_spec, run


def _insert(repository: InMemoryGigRepository, **overrides):
    return run(repository.insert_gig(lifecycle.create_gig(POSTER, gig_spec(**overrides), now=NOW)))


def test_replace_is_compare_and_swap(memory_repository: InMemoryGigRepository) -> None:
    gig = _insert(memory_repository)
    first = run(memory_repository.get_gig(gig.id))
    second = run(memory_repository.get_gig(gig.id))

    first.title = "Updated by first writer"
    saved = run(memory_repository.replace_gig(first, expected_version=first.version))
    assert saved.version == gig.version + 1

    second.title = "Updated by second writer"
    with pytest.raises(ConcurrencyError):
        run(memory_repository.replace_gig(second, expected_version=second.version))

    assert run(memory_repository.get_gig(gig.id)).title == "Updated by first writer"


def test_returned_documents_are_copies(memory_repository: InMemoryGigRepository) -> None:
    gig = _insert(memory_repository)
    loaded = run(memory_repository.get_gig(gig.id))
    ledger.apply(loaded, "worker-b", now=NOW)

    assert run(memory_repository.get_gig(gig.id)).applications == []


def test_insert_twice_conflicts(memory_repository: InMemoryGigRepository) -> None:
    gig = _insert(memory_repository)
    with pytest.raises(ConflictError):
        run(memory_repository.insert_gig(gig))


def test_increment_views_does_not_bump_version(memory_repository: InMemoryGigRepository) -> None:
    gig = _insert(memory_repository)
    run(memory_repository.increment_views(gig.id))
    run(memory_repository.increment_views(gig.id))

    loaded = run(memory_repository.get_gig(gig.id))
    assert loaded.views == 2
    assert loaded.version == gig.version


def test_replace_keeps_views_counted_after_read(memory_repository: InMemoryGigRepository) -> None:
    gig = _insert(memory_repository)
    loaded = run(memory_repository.get_gig(gig.id))
    run(memory_repository.increment_views(gig.id))

    loaded.title = "Retitled"
    saved = run(memory_repository.replace_gig(loaded, expected_version=loaded.version))

    assert saved.views == 1
    assert run(memory_repository.get_gig(gig.id)).views == 1


def test_missing_gig(memory_repository: InMemoryGigRepository) -> None:
    with pytest.raises(NotFoundError):
        run(memory_repository.get_gig("nope"))
    with pytest.raises(NotFoundError):
        run(memory_repository.increment_views("nope"))
    with pytest.raises(NotFoundError):
        run(memory_repository.delete_gig("nope", expected_version=0))


def test_delete_checks_version(memory_repository: InMemoryGigRepository) -> None:
    gig = _insert(memory_repository)
    with pytest.raises(ConcurrencyError):
        run(memory_repository.delete_gig(gig.id, expected_version=gig.version + 1))
    run(memory_repository.delete_gig(gig.id, expected_version=gig.version))
    with pytest.raises(NotFoundError):
        run(memory_repository.get_gig(gig.id))


def test_search_scores_weighted_fields(memory_repository: InMemoryGigRepository) -> None:
    in_title = _insert(memory_repository, title="Plumber needed", description="Leaking tap in kitchen")
    in_description = _insert(
        memory_repository,
        title="Kitchen help",
        description="Looking for a plumber to check the sink",
        category="plumbing",
    )
    _insert(memory_repository, title="Garden weeding", description="Weekly garden care", category="gardening")

    plan = build_search_plan(q="plumber", now=NOW)
    rows, total = run(memory_repository.search(plan, resolve_ordering("relevance", has_text=True, has_geo=False)))

    assert total == 2
    assert [row.gig.id for row in rows] == [in_title.id, in_description.id]
    assert rows[0].score > rows[1].score > 0


def test_search_applies_baseline_filters(memory_repository: InMemoryGigRepository) -> None:
    visible = _insert(memory_repository)
    _insert(memory_repository, expires_at=NOW + timedelta(hours=1))
    run(memory_repository.insert_gig(lifecycle.create_gig(POSTER, gig_spec(), publish=False, now=NOW)))

    plan = build_search_plan(now=NOW + timedelta(hours=2))
    rows, total = run(memory_repository.search(plan, resolve_ordering("date", has_text=False, has_geo=False)))

    assert total == 1
    assert [row.gig.id for row in rows] == [visible.id]


def test_search_skill_filter_is_case_insensitive(memory_repository: InMemoryGigRepository) -> None:
    wiring = _insert(memory_repository, skills=[{"name": "Wiring", "category": "electrical"}])
    _insert(memory_repository, skills=[{"name": "Painting", "category": "painting"}])

    plan = build_search_plan(skills=["wiring", "tiling"], now=NOW)
    rows, total = run(memory_repository.search(plan, resolve_ordering("date", has_text=False, has_geo=False)))

    assert total == 1
    assert rows[0].gig.id == wiring.id


def test_geo_candidates_are_bounded_and_nearest_first(memory_repository: InMemoryGigRepository) -> None:
    near = _insert(memory_repository, location={"lat": ORIGIN_LAT + 0.01, "lng": ORIGIN_LNG, "address": "Near"})
    nearest = _insert(memory_repository, location={"lat": ORIGIN_LAT, "lng": ORIGIN_LNG, "address": "Here"})
    _insert(memory_repository, location={"lat": ORIGIN_LAT + 1.0, "lng": ORIGIN_LNG, "address": "Far away"})

    plan = build_search_plan(lat=ORIGIN_LAT, lng=ORIGIN_LNG, radius_km=5, now=NOW)
    candidates = run(memory_repository.geo_candidates(plan, cap=10))

    assert [item.gig.id for item in candidates] == [nearest.id, near.id]
    assert candidates[0].distance_m == pytest.approx(0.0)
    assert 1000 < candidates[1].distance_m < 1200

    assert len(run(memory_repository.geo_candidates(plan, cap=1))) == 1


def test_list_by_applicant_returns_newest_first(memory_repository: InMemoryGigRepository) -> None:
    first = _insert(memory_repository)
    second = _insert(memory_repository)
    for gig, applied_at in ((first, NOW), (second, NOW + timedelta(minutes=5))):
        loaded = run(memory_repository.get_gig(gig.id))
        ledger.apply(loaded, "worker-b", now=applied_at)
        run(memory_repository.replace_gig(loaded, expected_version=loaded.version))

    rows, total = run(
        memory_repository.list_by_applicant(applicant_id="worker-b", status=None, limit=10, offset=0)
    )

    assert total == 2
    assert [gig.id for gig, _ in rows] == [second.id, first.id]
    assert all(application.applicant_id == "worker-b" for _, application in rows)


def test_list_expired_ids(memory_repository: InMemoryGigRepository) -> None:
    soon = _insert(memory_repository, expires_at=NOW + timedelta(hours=1))
    _insert(memory_repository)

    assert run(memory_repository.list_expired_ids(now=NOW + timedelta(hours=2), limit=10)) == [soon.id]
    assert run(memory_repository.list_expired_ids(now=NOW, limit=10)) == []


def test_suggest_caps_each_source(memory_repository: InMemoryGigRepository) -> None:
    for index in range(4):
        _insert(memory_repository, title=f"Painting job {index}", category="painting", skills=[])

    rows = run(memory_repository.suggest(text="paint", now=NOW, caps={"title": 2, "category": 3, "skill": 5}))

    assert rows == [("title", "Painting job 0"), ("title", "Painting job 1"), ("category", "painting")]
