from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Iterator
from datetime import datetime, timezone
from typing import Any, TypeVar

import pytest
from fastapi.testclient import TestClient

from app.core.config import get_settings
from app.main import app
from app.services.repository import get_repository
from app.services.store import InMemoryGigRepository

T = TypeVar("T")

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
POSTER = "poster-a"

# Bengaluru, near MG Road.
ORIGIN_LAT = 12.9716
ORIGIN_LNG = 77.5946


def run(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def gig_spec(**overrides: Any) -> dict[str, Any]:
    spec: dict[str, Any] = {
        "title": "Deep cleaning for 2BHK flat",
        "description": "Kitchen and two bathrooms need a thorough clean before move-in.",
        "category": "cleaning",
        "skills": [{"name": "Deep Cleaning", "category": "cleaning"}],
        "location": {
            "lng": ORIGIN_LNG,
            "lat": ORIGIN_LAT,
            "address": "12 Residency Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560025",
        },
        "payment": {"rate": 500, "payment_type": "hourly", "payment_method": "upi"},
        "urgency": "medium",
    }
    spec.update(overrides)
    return spec


@pytest.fixture
def make_spec() -> Callable[..., dict[str, Any]]:
    return gig_spec


@pytest.fixture
def memory_repository() -> InMemoryGigRepository:
    return InMemoryGigRepository()


@pytest.fixture
def api_client(memory_repository: InMemoryGigRepository) -> Iterator[TestClient]:
    get_settings.cache_clear()
    app.dependency_overrides[get_repository] = lambda: memory_repository
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        get_settings.cache_clear()
