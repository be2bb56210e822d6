from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.api import app, get_clock, get_store
from app.models import Venue
from tests.conftest import FakeStore, at_time

NOW = at_time("saturday", 22, 15)


@pytest.fixture
def store():
    return FakeStore(
        [
            Venue(
                id="v1",
                name="The Crown",
                opening_hours={"saturday": "12:00pm-11:30pm"},
                hot_now=True,
                popularity_score=88,
            ),
            Venue(id="v2", name="The Anchor", opening_hours={"saturday": "Closed"}),
            Venue(id="v3", name="Open House"),
        ],
        check_ins=[("v1", NOW - timedelta(minutes=20))],
    )


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_list_venues_marks_open_now(client):
    resp = client.get("/venues")
    assert resp.status_code == 200
    by_id = {v["id"]: v for v in resp.json()}
    assert by_id["v1"]["open_now"] is True
    assert by_id["v2"]["open_now"] is False
    assert by_id["v3"]["open_now"] is True


def test_list_venues_filters(client):
    resp = client.get("/venues", params={"open_now": "false"})
    assert [v["id"] for v in resp.json()] == ["v2"]

    resp = client.get("/venues", params={"hot_now": "true"})
    assert [v["id"] for v in resp.json()] == ["v1"]


def test_get_venue(client):
    resp = client.get("/venues/v1")
    assert resp.status_code == 200
    assert resp.json()["name"] == "The Crown"
    assert resp.json()["popularity_score"] == 88


def test_get_missing_venue_is_404(client):
    resp = client.get("/venues/nope")
    assert resp.status_code == 404


def test_refresh_then_gated(client, store):
    status = client.get("/popularity/status").json()
    assert status == {"last_run": None, "due": True}

    resp = client.post("/popularity/refresh")
    assert resp.status_code == 200
    body = resp.json()
    assert body["ran"] is True
    assert body["open_count"] == 2
    assert body["closed_count"] == 1
    assert body["succeeded"] == 3
    assert body["failed"] == 0
    assert "results" not in body

    assert store.venues["v2"].popularity_score == 0
    assert 0 <= store.venues["v1"].popularity_score <= 100

    assert client.post("/popularity/refresh").json() == {"ran": False}
    assert client.get("/popularity/status").json()["due"] is False

    assert client.post("/popularity/refresh", params={"force": "true"}).json()["ran"] is True
    assert len(store.runs) == 2
