import pytest
from fastapi.testclient import TestClient

from diamond_crawler.apis.app import app, get_backend
from diamond_crawler.models import SearchRange


@pytest.fixture
def client(fast_env):
    fast_env.setenv("DIAMOND_WINDOW_CAP", "20")
    fast_env.setenv("DIAMOND_PAGE_SIZE", "10")
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_shapes(client):
    shapes = client.get("/shapes").json()["shapes"]
    assert shapes["round"] == "RD"
    assert shapes["cushion"] == "CU"


def test_crawl_returns_records_and_summary(client, fake_backend, items_factory):
    items = items_factory(50, "100", "600")
    app.dependency_overrides[get_backend] = lambda: fake_backend(items, window_cap=20)

    resp = client.post("/crawl", json={"shape": "round", "min_price": "100", "max_price": "600"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["records"] == 50
    assert body["gaps"] == []
    assert body["leaves"] >= 3
    assert sorted(r["id"] for r in body["items"]) == sorted(i.id for i in items)


def test_crawl_can_skip_records(client, fake_backend, items_factory):
    app.dependency_overrides[get_backend] = lambda: fake_backend(items_factory(10, "100", "600"))
    body = client.post("/crawl", json={"min_price": "100", "max_price": "600", "include_records": False}).json()
    assert body["records"] == 10
    assert "items" not in body


def test_crawl_rejects_unknown_shape(client):
    resp = client.post("/crawl", json={"shape": "triangle"})
    assert resp.status_code == 422


def test_crawl_reports_unreachable_backend(client, fake_backend, items_factory):
    backend = fake_backend(items_factory(10, "100", "600"), fail_ranges=[SearchRange("100", "600")])
    app.dependency_overrides[get_backend] = lambda: backend
    resp = client.post("/crawl", json={"min_price": "100", "max_price": "600"})
    assert resp.status_code == 502


def test_malformed_environment_is_rejected(client, monkeypatch):
    monkeypatch.setenv("DIAMOND_WINDOW_CAP", "lots")
    resp = client.post("/crawl", json={"shape": "round"})
    assert resp.status_code == 422
    assert "lots" in resp.json()["detail"]
