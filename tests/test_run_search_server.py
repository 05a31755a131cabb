import threading

import pytest

from insta_prospector.core.config import ConfigurationError
from insta_prospector.core.rate_limit import RateLimiter, RateLimitExceeded
from insta_prospector.jobs import run_search_server
from insta_prospector.models import ProfileType


class DummyPipeline:
    def __init__(self, exc=None):
        self.exc = exc
        self.calls = []

    def run(self, **kwargs):
        self.calls.append(kwargs)
        if self.exc is not None:
            raise self.exc
        return {"runId": "run-1", "queryCount": 8, "failures": [], "leads": []}


@pytest.fixture
def pipeline(monkeypatch):
    dummy = DummyPipeline()
    monkeypatch.setattr(run_search_server, "get_pipeline", lambda: dummy)
    return dummy


@pytest.fixture(autouse=True)
def limiter(monkeypatch):
    fresh = RateLimiter(max_requests=50)
    monkeypatch.setattr(run_search_server, "_rate_limiter", fresh)
    return fresh


@pytest.fixture
def client():
    return run_search_server.app.test_client()


HEADERS = {"X-Actor-Id": "user-1"}


def test_health_endpoint(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.get_json()["status"] == "ok"


def test_requires_actor_header(client, pipeline):
    response = client.post("/search-instagram", json={"keywords": "fuerza", "profileType": "PT"})
    assert response.status_code == 401
    assert pipeline.calls == []


def test_validates_payload(client, pipeline):
    assert client.post("/search-instagram", json={}, headers=HEADERS).status_code == 400
    assert client.post("/search-instagram", json={"keywords": "fuerza"}, headers=HEADERS).status_code == 400
    assert (
        client.post("/search-instagram", json={"keywords": "fuerza", "profileType": "Yoga"}, headers=HEADERS).status_code
        == 400
    )
    assert (
        client.post(
            "/search-instagram",
            json={"keywords": "fuerza", "profileType": "PT", "count": "many"},
            headers=HEADERS,
        ).status_code
        == 400
    )
    for count in ("inf", "-inf", "1e400"):
        response = client.post(
            "/search-instagram",
            json={"keywords": "fuerza", "profileType": "PT", "count": count},
            headers=HEADERS,
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "count must be numeric"
    assert pipeline.calls == []


def test_runs_pipeline_with_clamped_count(client, pipeline):
    payload = {
        "keywords": " fuerza polanco ",
        "profileType": "Center",
        "location": "CDMX, Mexico",
        "count": 500,
        "actor": "ana.lopez@harbiz.io",
    }
    response = client.post("/search-instagram", json=payload, headers=HEADERS)

    assert response.status_code == 200
    assert response.get_json()["runId"] == "run-1"
    call = pipeline.calls[0]
    assert call["actor_id"] == "user-1"
    assert call["actor_contact"] == "ana.lopez@harbiz.io"
    assert call["keywords"] == "fuerza polanco"
    assert call["profile_type"] is ProfileType.CENTER
    assert call["count"] == 100
    assert call["location"] == "CDMX, Mexico"
    assert call["check_rate_limit"] is False


def test_default_count_and_actor_email_header(client, pipeline):
    headers = dict(HEADERS, **{"X-Actor-Email": "luis@harbiz.io"})
    client.post("/search-instagram", json={"keywords": "fuerza", "profileType": "PT", "country": "Mexico"}, headers=headers)

    call = pipeline.calls[0]
    assert call["count"] == 20
    assert call["actor_contact"] == "luis@harbiz.io"
    assert call["country"] == "Mexico"


@pytest.mark.parametrize(
    "exc, status",
    [
        (RateLimitExceeded("user-1"), 429),
        (ValueError("location is required (or provide country)"), 400),
        (ConfigurationError("SERPER_API_KEY must be set in the environment."), 500),
        (RuntimeError("Failed to create search run"), 500),
    ],
)
def test_maps_errors_to_status_codes(client, monkeypatch, exc, status):
    monkeypatch.setattr(run_search_server, "get_pipeline", lambda: DummyPipeline(exc))
    response = client.post("/search-instagram", json={"keywords": "fuerza", "profileType": "PT"}, headers=HEADERS)

    assert response.status_code == status
    assert response.get_json()["error"] == str(exc)


def test_rate_limiter_is_shared(monkeypatch):
    monkeypatch.setattr(run_search_server, "_rate_limiter", None)
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")

    limiter = run_search_server.get_rate_limiter()

    assert run_search_server.get_rate_limiter() is limiter
    assert limiter.max_requests == 2


def test_invalid_requests_count_against_quota(client, pipeline, monkeypatch):
    monkeypatch.setattr(run_search_server, "_rate_limiter", RateLimiter(max_requests=1))

    first = client.post("/search-instagram", json={"keywords": "fuerza"}, headers=HEADERS)
    second = client.post("/search-instagram", json={"keywords": "fuerza", "profileType": "PT"}, headers=HEADERS)

    assert first.status_code == 400
    assert second.status_code == 429
    assert pipeline.calls == []


def test_admitted_request_is_counted_once(client, pipeline, limiter):
    client.post("/search-instagram", json={"keywords": "fuerza", "profileType": "PT"}, headers=HEADERS)

    assert limiter.store.get("user-1").count == 1


def test_concurrent_first_requests_share_one_limiter(monkeypatch):
    monkeypatch.setattr(run_search_server, "_rate_limiter", None)
    barrier = threading.Barrier(8)
    seen = []

    def build():
        barrier.wait()
        seen.append(run_search_server.get_rate_limiter())

    threads = [threading.Thread(target=build) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(seen) == 8
    assert len({id(limiter) for limiter in seen}) == 1
