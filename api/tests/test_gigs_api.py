from __future__ import annotations

from typing import Any

from fastapi.testclient import TestClient

from app.main import app
from app.services.errors import StoreUnavailableError
from app.services.gigs import get_gig_service
from conftest import ORIGIN_LAT, ORIGIN_LNG, POSTER, gig_spec

POSTER_HEADERS = {"X-User-Id": POSTER}


def _as(user_id: str) -> dict[str, str]:
    return {"X-User-Id": user_id}


def _create(client: TestClient, **overrides: Any) -> dict[str, Any]:
    response = client.post("/gigs", json=gig_spec(**overrides), headers=POSTER_HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def test_create_requires_identity_header(api_client: TestClient) -> None:
    response = api_client.post("/gigs", json=gig_spec())
    assert response.status_code == 401


def test_create_and_fetch_gig_records_view(api_client: TestClient) -> None:
    created = _create(api_client)
    assert created["status"] == "posted"
    assert created["poster_id"] == POSTER
    assert created["application_summary"]["total"] == 0

    first = api_client.get(f"/gigs/{created['id']}")
    second = api_client.get(f"/gigs/{created['id']}")

    assert first.status_code == 200
    assert first.json()["views"] == 1
    assert second.json()["views"] == 2


def test_create_draft_and_publish(api_client: TestClient) -> None:
    response = api_client.post("/gigs?publish=false", json=gig_spec(), headers=POSTER_HEADERS)
    assert response.status_code == 201
    gig_id = response.json()["id"]
    assert response.json()["status"] == "draft"

    forbidden = api_client.post(f"/gigs/{gig_id}/publish", headers=_as("worker-b"))
    assert forbidden.status_code == 403

    published = api_client.post(f"/gigs/{gig_id}/publish", headers=POSTER_HEADERS)
    assert published.status_code == 200
    assert published.json()["status"] == "posted"

    again = api_client.post(f"/gigs/{gig_id}/publish", headers=POSTER_HEADERS)
    assert again.status_code == 409


def test_create_missing_fields_is_unprocessable(api_client: TestClient) -> None:
    spec = gig_spec()
    spec.pop("payment")
    response = api_client.post("/gigs", json=spec, headers=POSTER_HEADERS)
    assert response.status_code == 422
    assert "payment" in response.json()["detail"]


def test_unknown_gig_is_not_found(api_client: TestClient) -> None:
    assert api_client.get("/gigs/does-not-exist").status_code == 404


def test_application_accept_flow(api_client: TestClient) -> None:
    gig = _create(api_client)

    b = api_client.post(f"/gigs/{gig['id']}/applications", json={"proposed_rate": 450}, headers=_as("worker-b"))
    c = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=_as("worker-c"))
    assert b.status_code == 201
    assert c.status_code == 201
    assert b.json()["status"] == "pending"

    duplicate = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=_as("worker-b"))
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "duplicate"

    own = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=POSTER_HEADERS)
    assert own.status_code == 409

    not_owner = api_client.post(
        f"/gigs/{gig['id']}/applications/{b.json()['id']}/accept", headers=_as("worker-c")
    )
    assert not_owner.status_code == 403

    accepted = api_client.post(f"/gigs/{gig['id']}/applications/{b.json()['id']}/accept", headers=POSTER_HEADERS)
    assert accepted.status_code == 200
    body = accepted.json()
    assert body["status"] == "assigned"
    assert body["assigned_to"] == "worker-b"
    assert body["application_summary"] == {
        "pending": 0,
        "accepted": 1,
        "rejected": 1,
        "withdrawn": 0,
        "total": 2,
    }

    late = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=_as("worker-d"))
    assert late.status_code == 409
    assert late.json()["detail"] == "gig not open"


def test_reject_and_withdraw(api_client: TestClient) -> None:
    gig = _create(api_client)
    b = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=_as("worker-b")).json()
    c = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=_as("worker-c")).json()

    rejected = api_client.post(f"/gigs/{gig['id']}/applications/{b['id']}/reject", headers=POSTER_HEADERS)
    assert rejected.json()["status"] == "rejected"

    wrong_user = api_client.post(f"/gigs/{gig['id']}/applications/{c['id']}/withdraw", headers=_as("worker-b"))
    assert wrong_user.status_code == 403

    withdrawn = api_client.post(f"/gigs/{gig['id']}/applications/{c['id']}/withdraw", headers=_as("worker-c"))
    assert withdrawn.status_code == 200
    assert withdrawn.json()["status"] == "withdrawn"

    missing = api_client.post(f"/gigs/{gig['id']}/applications/nope/reject", headers=POSTER_HEADERS)
    assert missing.status_code == 404


def test_lifecycle_endpoints(api_client: TestClient) -> None:
    gig = _create(api_client)
    application = api_client.post(f"/gigs/{gig['id']}/applications", json={}, headers=_as("worker-b")).json()

    assert api_client.post(f"/gigs/{gig['id']}/complete", headers=POSTER_HEADERS).status_code == 409

    api_client.post(f"/gigs/{gig['id']}/applications/{application['id']}/accept", headers=POSTER_HEADERS)
    assert api_client.delete(f"/gigs/{gig['id']}", headers=POSTER_HEADERS).status_code == 409
    assert api_client.patch(f"/gigs/{gig['id']}", json={"title": "x"}, headers=POSTER_HEADERS).status_code == 409

    started = api_client.post(f"/gigs/{gig['id']}/start", headers=POSTER_HEADERS)
    assert started.json()["status"] == "in_progress"

    completed = api_client.post(f"/gigs/{gig['id']}/complete", headers=POSTER_HEADERS)
    assert completed.json()["status"] == "completed"
    assert completed.json()["completion_date"] is not None


def test_update_cancel_and_delete(api_client: TestClient) -> None:
    gig = _create(api_client)

    updated = api_client.patch(
        f"/gigs/{gig['id']}",
        json={"urgency": "urgent", "payment": {"rate": 650, "payment_type": "daily", "payment_method": "cash"}},
        headers=POSTER_HEADERS,
    )
    assert updated.status_code == 200
    assert updated.json()["urgency"] == "urgent"
    assert updated.json()["payment"]["rate"] == 650
    assert updated.json()["version"] == gig["version"] + 1

    cancelled = api_client.post(f"/gigs/{gig['id']}/cancel", headers=POSTER_HEADERS)
    assert cancelled.json()["status"] == "cancelled"

    assert api_client.delete(f"/gigs/{gig['id']}", headers=_as("worker-b")).status_code == 403
    assert api_client.delete(f"/gigs/{gig['id']}", headers=POSTER_HEADERS).status_code == 204
    assert api_client.get(f"/gigs/{gig['id']}").status_code == 404


def test_search_endpoint(api_client: TestClient) -> None:
    cleaning = _create(api_client)
    _create(
        api_client,
        title="Ceiling fan installation",
        description="Install two fans",
        category="electrical",
        skills=[{"name": "Wiring", "category": "electrical"}],
        location={"lat": ORIGIN_LAT + 0.5, "lng": ORIGIN_LNG, "address": "Far"},
    )

    response = api_client.get(
        "/search/gigs",
        params={"q": "cleaning", "lat": ORIGIN_LAT, "lng": ORIGIN_LNG, "radius": 5, "sort": "distance"},
    )
    assert response.status_code == 200
    body = response.json()
    assert [hit["id"] for hit in body["gigs"]] == [cleaning["id"]]
    assert body["gigs"][0]["distance"] == 0.0
    assert body["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1, "has_more": False}
    assert body["search_meta"]["sort"] == "distance"

    by_skill = api_client.get("/search/gigs", params={"skills": "wiring", "limit": 500})
    assert by_skill.json()["pagination"]["limit"] == 50
    assert by_skill.json()["pagination"]["total"] == 1

    assert api_client.get("/search/gigs", params={"lat": ORIGIN_LAT}).status_code == 422
    assert api_client.get("/search/gigs", params={"min_rate": 10, "max_rate": 1}).status_code == 422
    assert api_client.get("/search/gigs", params={"sort": "nope"}).status_code == 422


def test_me_endpoints(api_client: TestClient) -> None:
    first = _create(api_client)
    _create(api_client, title="Second job")
    api_client.post(f"/gigs/{first['id']}/applications", json={"message": "Keen"}, headers=_as("worker-b"))

    mine = api_client.get("/me/gigs", headers=POSTER_HEADERS)
    assert mine.status_code == 200
    assert mine.json()["total"] == 2

    applications = api_client.get("/me/applications", headers=_as("worker-b"))
    assert applications.status_code == 200
    body = applications.json()
    assert body["total"] == 1
    assert body["applications"][0]["gig"]["id"] == first["id"]
    assert body["applications"][0]["application"]["message"] == "Keen"

    assert api_client.get("/me/gigs").status_code == 401


def test_expire_sweep_endpoint(api_client: TestClient) -> None:
    _create(api_client)
    response = api_client.post("/maintenance/expire-gigs", params={"limit": 10})
    assert response.status_code == 200
    assert response.json() == {"expired": 0}


def test_store_unavailable_maps_to_503(api_client: TestClient) -> None:
    class UnavailableService:
        async def get_gig(self, gig_id: str, *, record_view: bool = False) -> None:
            raise StoreUnavailableError("database unavailable")

    app.dependency_overrides[get_gig_service] = lambda: UnavailableService()
    response = api_client.get("/gigs/anything")
    assert response.status_code == 503
    assert response.json()["detail"] == "database unavailable"


def test_suggestions_endpoint(api_client: TestClient) -> None:
    _create(
        api_client,
        title="Ceiling fan installation",
        category="electrical",
        skills=[{"name": "Wiring", "category": "electrical"}],
    )

    response = api_client.get("/search/suggestions", params={"q": "wir", "limit": 50})
    assert response.status_code == 200
    assert response.json() == {"query": "wir", "suggestions": [{"text": "Wiring", "source": "skill"}]}

    assert api_client.get("/search/suggestions").json() == {"query": None, "suggestions": []}
